from __future__ import annotations

from typing import Optional

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import ListItem, Static
from rich.text import Text

from .datamodels import Story
from .events import SyncComplete, SyncError, SyncEvent, SyncProgress, SyncStart, describe

FEATURED = "__featured__"
UNCATEGORIZED = "__uncategorized__"


# --- UI Widgets ---
class CategoryListItem(ListItem):
    def __init__(self, key: str, heading: str):
        super().__init__()
        self.category_key = key
        self.heading = heading

    def compose(self) -> ComposeResult:
        yield Static(self.heading)


class StoryListItem(ListItem):
    def __init__(self, story: Story):
        super().__init__()
        self.story = story

    def compose(self) -> ComposeResult:
        with Horizontal(classes="story-container"):
            yield Static(str(self.story.idx), classes="story-idx")
            yield Static(self.story.title, classes="story-title")
            yield Static(self.story.author, classes="story-author")


class SyncIndicator(Static):
    """Status line that mirrors the latest sync event."""

    status = reactive("")
    keybinding_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def set_keybindings(self, hint: str) -> None:
        self.keybinding_hint = hint

    def show_event(self, event: SyncEvent) -> None:
        self.set_class(isinstance(event, (SyncStart, SyncProgress)), "syncing")
        self.set_class(isinstance(event, SyncError), "sync-error")
        self.set_class(isinstance(event, SyncComplete), "sync-ok")
        self.status = describe(event) or ""

    def update_display(self) -> None:
        items = [item for item in (self.status, self.keybinding_hint) if item]
        self.update(" | ".join(items))

    def watch_status(self, status: str) -> None:
        self.update_display()

    def watch_keybinding_hint(self, keybinding_hint: str) -> None:
        self.update_display()


class ErrorMessage(Static):
    def __init__(self, message: str, detail: Optional[str] = None):
        text = message if not detail else f"{message}\n{detail}"
        super().__init__(Text(text, style="bold red"))
