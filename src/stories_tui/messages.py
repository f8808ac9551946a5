from textual.message import Message

from .events import SyncEvent


class SyncStatusChanged(Message):
    """A sync lifecycle event to show in the UI."""
    def __init__(self, event: SyncEvent) -> None:
        self.event = event
        super().__init__()
