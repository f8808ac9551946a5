from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
WORDS_PER_MINUTE = 200


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, returning the epoch for missing or bad values."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return EPOCH
    else:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


# --- Data models ---
@dataclass
class Category:
    id: str
    name: str
    poster_url: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Category":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            poster_url=row.get("poster_url"),
            updated_at=_optional_str(row.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Story:
    id: str
    idx: int
    title: str = ""
    author: str = ""
    content: str = ""
    category_id: Optional[str] = None
    poster_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Story":
        try:
            idx = int(row.get("idx") or 0)
        except (TypeError, ValueError):
            idx = 0
        return cls(
            id=str(row["id"]),
            idx=idx,
            title=row.get("title") or "",
            author=row.get("author") or "",
            content=row.get("content") or "",
            category_id=_optional_str(row.get("category_id")),
            poster_url=row.get("poster_url"),
            created_at=_optional_str(row.get("created_at")),
            updated_at=_optional_str(row.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def reading_minutes(self) -> int:
        return max(1, round(len(self.content.split()) / WORDS_PER_MINUTE))
