from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .config import Settings
from .datamodels import Category, Story
from .errors import RemoteError
from .reconcile import CollectionCache

logger = logging.getLogger("stories")

CATEGORIES_TABLE = "categories"
STORIES_TABLE = "stories"

USER_AGENT = "stories-tui/0.1"


class RemoteGateway:
    """Reads categories and stories from the remote PostgREST API.

    Network methods (``fetch_*``, ``probe_connectivity``) are blocking and
    never retry. The ``read_*`` accessors only touch the local cache.
    """

    def __init__(
        self,
        settings: Settings,
        cache: CollectionCache,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.base_url = f"{settings.supabase_url}/rest/v1"
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(
            {
                "apikey": self.settings.supabase_anon_key,
                "Authorization": f"Bearer {self.settings.supabase_anon_key}",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        return s

    def _query(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{table}"
        logger.debug("Querying %s with %s", url, params)
        try:
            resp = self.session.get(url, params=params, timeout=self.settings.http_timeout)
            resp.raise_for_status()
            rows = resp.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise RemoteError(f"Query on {table} failed: {e}", status_code=status) from e
        except requests.RequestException as e:
            raise RemoteError(f"Could not reach remote for {table}: {e}") from e
        except ValueError as e:
            raise RemoteError(f"Invalid response body for {table}: {e}") from e
        if not isinstance(rows, list):
            raise RemoteError(f"Unexpected response shape for {table}")
        return rows

    def fetch_categories(self) -> List[Category]:
        rows = self._query(CATEGORIES_TABLE, {"select": "*", "order": "name.asc"})
        try:
            categories = [Category.from_dict(row) for row in rows]
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed category row: {e}") from e
        categories.sort(key=lambda c: c.name)
        logger.info("Fetched %d categories from remote", len(categories))
        return categories

    def fetch_stories(self) -> List[Story]:
        rows = self._query(STORIES_TABLE, {"select": "*", "order": "idx.asc"})
        try:
            stories = [Story.from_dict(row) for row in rows]
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed story row: {e}") from e
        stories.sort(key=lambda s: s.idx)
        logger.info("Fetched %d stories from remote", len(stories))
        return stories

    def fetch_story_by_idx(self, idx: int) -> Optional[str]:
        """Return the content of the story with this ``idx``, or None if there is none."""
        rows = self._query(
            STORIES_TABLE, {"select": "content", "idx": f"eq.{idx}", "limit": 1}
        )
        if not rows:
            logger.info("No story with idx %s", idx)
            return None
        return rows[0].get("content") or ""

    def probe_connectivity(self) -> bool:
        url = f"{self.base_url}/{CATEGORIES_TABLE}"
        try:
            resp = self.session.head(
                url,
                params={"select": "*"},
                headers={"Prefer": "count=exact"},
                timeout=self.settings.probe_timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.info("Connectivity probe failed: %s", e)
            return False
        logger.debug("Connectivity probe OK")
        return True

    # --- Fetch with cache fallback ---
    def load_categories(self) -> List[Category]:
        try:
            return self.cache.merge_categories(self.fetch_categories())
        except RemoteError as e:
            logger.warning("Falling back to cached categories: %s", e)
            return self.read_cached_categories()

    def load_stories(self) -> List[Story]:
        try:
            return self.cache.merge_stories(self.fetch_stories())
        except RemoteError as e:
            logger.warning("Falling back to cached stories: %s", e)
            return self.read_cached_stories()

    # --- Cache-only reads ---
    def read_cached_categories(self) -> List[Category]:
        return sorted(self.cache.read_categories(), key=lambda c: c.name)

    def read_cached_stories(self) -> List[Story]:
        return sorted(self.cache.read_stories(), key=lambda s: s.idx)

    def read_stories_by_category(self, category_id: str) -> List[Story]:
        return [s for s in self.read_cached_stories() if s.category_id == category_id]

    def read_story_by_id(self, story_id: str) -> Optional[Story]:
        for story in self.cache.read_stories():
            if story.id == story_id:
                return story
        return None

    def read_featured_stories(self) -> List[Story]:
        every = self.settings.featured_every
        if every <= 0:
            return []
        return [s for s in self.read_cached_stories() if s.idx % every == 0]

    def read_next_story(self, story_id: str) -> Optional[Story]:
        """Return the story after ``story_id`` within its category, ordered by idx."""
        current = self.read_story_by_id(story_id)
        if current is None:
            return None
        siblings = self.read_stories_by_category(current.category_id)
        for position, story in enumerate(siblings[:-1]):
            if story.id == story_id:
                return siblings[position + 1]
        return None

    def read_uncategorized_stories(self) -> List[Story]:
        known = {c.id for c in self.cache.read_categories()}
        return [s for s in self.read_cached_stories() if s.category_id not in known]

    def close(self) -> None:
        self.session.close()
