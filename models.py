from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class FetchStatus(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    error = "error"


class InsightsStatus(str, Enum):
    empty = "empty"
    loading = "loading"
    ready = "ready"
    error = "error"


class ChangeKind(str, Enum):
    new = "new"
    updated = "updated"
    deleted = "deleted"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SessionSlot(Base, TimestampMixin):
    """Keyed client-side slot; only the signed login identity is stored here."""

    __tablename__ = "session_slots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
