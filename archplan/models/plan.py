"""Architectural plan model."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base

MIN_PLAN_LENGTH = 100


class PlanTooShortError(ValueError):
    pass


class Plan(Base):
    """Generated architectural plan. Rows are immutable; regeneration inserts a new one."""

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    @validates("content")
    def validate_content(self, key: str, value: str | None) -> str:
        if value is None or len(value) < MIN_PLAN_LENGTH:
            raise PlanTooShortError(
                f"Plan content must be at least {MIN_PLAN_LENGTH} characters"
            )
        return value
