"""Presentation and slide ORM models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Presentation(Base):
    """A deck: the user's prompt plus the outlines, layout and slides derived from it."""

    __tablename__ = "presentations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(
        Text, nullable=False, default="", comment="Prompt text supplied by the user"
    )
    document_content: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Extracted text of an uploaded source document"
    )
    n_slides: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    language: Mapped[str] = mapped_column(String(50), nullable=False, default="English")
    layout: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Selected template group with per-slide schemas"
    )
    structure: Mapped[list[int] | None] = mapped_column(
        JSON, nullable=True, comment="Layout index chosen for each slide"
    )
    outlines: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    slides: Mapped[list[Slide]] = relationship(
        back_populates="presentation",
        cascade="all, delete-orphan",
        order_by="Slide.index",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Presentation(id={self.id}, n_slides={self.n_slides})>"


class Slide(Base):
    __tablename__ = "slides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    presentation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("presentations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    layout_group: Mapped[str] = mapped_column(String(255), nullable=False)
    layout: Mapped[str] = mapped_column(String(255), nullable=False)
    # "index" shadows SQL keywords on some backends
    index: Mapped[int] = mapped_column("slide_index", Integer, nullable=False)
    speaker_note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    presentation: Mapped[Presentation] = relationship(back_populates="slides")

    def __repr__(self) -> str:
        return f"<Slide(presentation_id={self.presentation_id}, index={self.index})>"
