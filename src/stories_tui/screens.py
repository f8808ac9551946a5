from __future__ import annotations

from typing import Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.screen import Screen
from textual.widgets import Footer, Header, Markdown

from .datamodels import Story
from .gateway import RemoteGateway


# --- Story screen ---
class StoryViewScreen(Screen):
    BINDINGS = [
        Binding("escape,q,b,left", "app.pop_screen", "Back"),
        Binding("n", "next_story", "Next story"),
        Binding("down", "scroll_down", "Scroll Down"),
        Binding("up", "scroll_up", "Scroll Up"),
    ]

    def __init__(self, story: Story, gateway: RemoteGateway):
        super().__init__()
        self.story = story
        self.gateway = gateway

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(Markdown("", id="story-markdown"), id="story-scroll")
        yield Footer()

    def on_mount(self) -> None:
        self.show_story(self.story)
        self.query_one("#story-scroll").focus()

    def show_story(self, story: Story) -> None:
        self.story = story
        self.title = story.title
        byline = f"{story.author} - " if story.author else ""
        self.sub_title = f"{byline}~{story.reading_minutes} min read"
        self.query_one("#story-markdown", Markdown).update(
            f"# {story.title}\n\n{story.content}"
        )
        self.query_one("#story-scroll").scroll_home(animate=False)

    def action_next_story(self) -> None:
        next_story: Optional[Story] = self.gateway.read_next_story(self.story.id)
        if next_story is None:
            self.notify("This is the last story in the category.")
            return
        self.show_story(next_story)

    def action_scroll_down(self) -> None:
        self.query_one("#story-scroll").scroll_down()

    def action_scroll_up(self) -> None:
        self.query_one("#story-scroll").scroll_up()


class PageScreen(Screen):
    """A static markdown page, such as the about page."""

    BINDINGS = [Binding("escape,q,b,left", "app.pop_screen", "Back")]

    def __init__(self, heading: str, content: str):
        super().__init__()
        self.heading = heading
        self.content = content

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(Markdown(self.content, id="page-markdown"), id="page-scroll")
        yield Footer()

    def on_mount(self) -> None:
        self.title = self.heading
