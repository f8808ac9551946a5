from __future__ import annotations

import logging
from typing import Any, List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, ListItem, ListView, Rule, Static
from textual.worker import Worker, WorkerState

from .datamodels import Story
from .errors import RemoteError
from .events import SyncComplete, SyncEvent
from .messages import SyncStatusChanged
from .screens import PageScreen, StoryViewScreen
from .services import Services
from .widgets import (
    FEATURED,
    UNCATEGORIZED,
    CategoryListItem,
    ErrorMessage,
    StoryListItem,
    SyncIndicator,
)

logger = logging.getLogger("stories")

KEYBINDINGS_HINT = "[b]r[/] refresh  [b]a[/] about  [b]x[/] reset"


class StoriesApp(App):
    TITLE = "Stories"
    SUB_TITLE = "Offline-first story reader"

    CSS = """
    #left { width: 30%; }
    #right { width: 1fr; }
    .pane-title { text-style: bold; padding: 0 1; }
    .story-idx { width: 6; color: $text-muted; }
    .story-title { width: 1fr; }
    .story-author { width: 24; color: $text-muted; }
    SyncIndicator { dock: bottom; height: 1; padding: 0 1; }
    SyncIndicator.syncing { color: $warning; }
    SyncIndicator.sync-error { color: $error; }
    SyncIndicator.sync-ok { color: $success; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("a", "about", "About"),
        Binding("x", "reset", "Reset local data"),
        Binding("ctrl+l", "toggle_left_pane", "Toggle Categories"),
    ]

    def __init__(self, services: Services, auto_sync: bool = True, **kwargs: Any):
        super().__init__(**kwargs)
        self.services = services
        self.auto_sync = auto_sync
        self.current_key: Optional[str] = FEATURED

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main"):
            with Vertical(id="left"):
                yield Static("Categories", classes="pane-title")
                yield ListView(id="categories-list")
            yield Rule(orientation="vertical")
            with Vertical(id="right"):
                yield Static("Stories", classes="pane-title")
                yield ListView(id="stories-list")
        yield SyncIndicator()
        yield Footer()

    def on_mount(self) -> None:
        self.services.bus.subscribe(self._on_sync_event)
        self.query_one(SyncIndicator).set_keybindings(KEYBINDINGS_HINT)
        self.reload_from_cache()
        self.query_one("#categories-list").focus()
        if self.auto_sync:
            self.services.sync.start_auto_sync()

    def on_unmount(self) -> None:
        self.services.bus.unsubscribe(self._on_sync_event)

    def _on_sync_event(self, event: SyncEvent) -> None:
        self.post_message(SyncStatusChanged(event))

    def on_sync_status_changed(self, message: SyncStatusChanged) -> None:
        self.query_one(SyncIndicator).show_event(message.event)
        if isinstance(message.event, SyncComplete):
            self.reload_from_cache()

    def reload_from_cache(self) -> None:
        gateway = self.services.gateway
        view = self.query_one("#categories-list", ListView)
        view.clear()
        view.append(CategoryListItem(FEATURED, "Featured"))
        for category in gateway.read_cached_categories():
            view.append(CategoryListItem(category.id, category.name))
        if gateway.read_uncategorized_stories():
            view.append(CategoryListItem(UNCATEGORIZED, "Uncategorized"))
        self._show_stories(self.current_key)

    def _stories_for(self, key: Optional[str]) -> List[Story]:
        gateway = self.services.gateway
        if key == FEATURED:
            return gateway.read_featured_stories()
        if key == UNCATEGORIZED:
            return gateway.read_uncategorized_stories()
        return gateway.read_stories_by_category(key)

    def _show_stories(self, key: Optional[str]) -> None:
        self.current_key = key
        stories_list = self.query_one("#stories-list", ListView)
        stories_list.clear()
        stories = self._stories_for(key)
        if not stories:
            empty = ErrorMessage("No stories cached yet.", "Press r to sync.")
            stories_list.append(ListItem(empty))
            return
        for story in stories:
            stories_list.append(StoryListItem(story))

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, CategoryListItem):
            self._show_stories(event.item.category_key)
        elif isinstance(event.item, StoryListItem):
            self.push_screen(StoryViewScreen(event.item.story, self.services.gateway))

    def action_refresh(self) -> None:
        self.run_worker(
            self.services.sync.manual_refresh(), name="manual_refresh", exit_on_error=False
        )

    def action_reset(self) -> None:
        if self.services.sync.clear_all_data():
            self.notify("Local data cleared.")
            self.reload_from_cache()
        else:
            self.notify("Could not clear local data.", severity="error")

    def action_about(self) -> None:
        idx = self.services.settings.about_story_idx
        self.run_worker(
            lambda: self.services.gateway.fetch_story_by_idx(idx),
            name="about_loader",
            thread=True,
            exit_on_error=False,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if getattr(event.worker, "name", None) != "about_loader":
            return
        if event.state is WorkerState.SUCCESS:
            content = event.worker.result
            if content is None:
                self.notify("The about page is not available.")
                return
            self.push_screen(PageScreen("About", content))
        elif event.state is WorkerState.ERROR:
            error = event.worker.error
            logger.error("About page failed to load: %s", error)
            if isinstance(error, RemoteError):
                self.notify("The about page needs a connection.", severity="warning")
            else:
                self.notify(f"Unable to load the about page: {error}", severity="error")

    def action_toggle_left_pane(self) -> None:
        left_pane = self.query_one("#left")
        left_pane.display = not left_pane.display
