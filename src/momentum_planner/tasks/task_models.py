# src/momentum_planner/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..errors import ValidationError


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Strict variant used for user/model input."""
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"invalid status {raw!r} (expected one of: {allowed})") from None


def parse_timestamp(raw: str, *, field: str = "time") -> datetime:
    """
    Parse an RFC 3339 date-time with an explicit UTC offset.

    Naive timestamps are rejected: every stored time must carry its offset
    so that the model's local time is echoed back unchanged.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"{field} is required (RFC 3339, e.g. 2024-05-01T10:00:00+08:00)")
    text = raw.strip()
    if " " in text and "T" not in text:
        text = text.replace(" ", "T", 1)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"Invalid {field} format: {raw!r} (expected RFC 3339, e.g. 2024-05-01T10:00:00+08:00)"
        ) from None
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValidationError(f"Invalid {field} format: {raw!r} (missing timezone offset)")
    return dt


def format_timestamp(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat()


def format_clock(dt: datetime) -> str:
    """HH:MM in the timestamp's own offset."""
    return dt.strftime("%H:%M")


@dataclass(slots=True)
class Task:
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    status: TaskStatus = TaskStatus.PENDING
    reminded: bool = False

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and self.end_time > start

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
            "status": self.status.value,
            "reminded": self.reminded,
        }
