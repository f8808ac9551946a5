from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

# --- Configuration ---
CONFIG_PATH = os.path.expanduser("~/.config/stories/config.json")
CACHE_DIR = os.path.expanduser("~/.cache/stories")

HTTP_TIMEOUT = 15
PROBE_TIMEOUT = 5
SYNC_TIMEOUT = 30.0
FEATURED_EVERY = 5
ABOUT_STORY_IDX = 9999

URL_ENV_VAR = "SUPABASE_URL"
KEY_ENV_VAR = "SUPABASE_ANON_KEY"

DEFAULT_CONFIG: Dict[str, Any] = {
    "supabase_url": "",
    "supabase_anon_key": "",
    "cache_dir": CACHE_DIR,
    "http_timeout": HTTP_TIMEOUT,
    "probe_timeout": PROBE_TIMEOUT,
    "sync_timeout": SYNC_TIMEOUT,
    "featured_every": FEATURED_EVERY,
    "about_story_idx": ABOUT_STORY_IDX,
}

# --- Logging ---
logger = logging.getLogger("stories")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/stories_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def ensure_config_file_exists(path: str = CONFIG_PATH) -> None:
    """Write the default config file if the user's config file is not found."""
    if os.path.exists(path):
        return
    logger.info("Config file not found at %s, creating default.", path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(DEFAULT_CONFIG, f, indent=2)
    except OSError as e:
        logger.error("Failed to create default config file: %s", e)


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load the main configuration file."""
    ensure_config_file_exists(path)
    try:
        with open(path, "r") as f:
            config = json.load(f)
            logger.info("Loaded config from %s", path)
            return config
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return {}


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(config, f, indent=2)
        logger.info("Saved config to %s", path)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", path, e)


def _number(config: Mapping[str, Any], key: str, cast: type) -> Any:
    value = config.get(key, DEFAULT_CONFIG[key])
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid value for '%s': %r", key, value)
        return DEFAULT_CONFIG[key]


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    cache_dir: str = CACHE_DIR
    http_timeout: float = HTTP_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    sync_timeout: float = SYNC_TIMEOUT
    featured_every: int = FEATURED_EVERY
    about_story_idx: int = ABOUT_STORY_IDX

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Build settings from the config file, letting the environment override the remote."""
        environ = os.environ if environ is None else environ
        url = environ.get(URL_ENV_VAR) or config.get("supabase_url") or ""
        key = environ.get(KEY_ENV_VAR) or config.get("supabase_anon_key") or ""
        return cls(
            supabase_url=url.rstrip("/"),
            supabase_anon_key=key,
            cache_dir=os.path.expanduser(config.get("cache_dir") or CACHE_DIR),
            http_timeout=_number(config, "http_timeout", float),
            probe_timeout=_number(config, "probe_timeout", float),
            sync_timeout=_number(config, "sync_timeout", float),
            featured_every=_number(config, "featured_every", int),
            about_story_idx=_number(config, "about_story_idx", int),
        )

    def require_remote(self) -> None:
        if not self.has_remote:
            raise ConfigError(
                f"Missing remote configuration. Set {URL_ENV_VAR} and {KEY_ENV_VAR} "
                f"or add supabase_url/supabase_anon_key to {CONFIG_PATH}."
            )
