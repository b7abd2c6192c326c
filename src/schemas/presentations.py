"""Presentation, outline, layout and slide schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OutlineItem(BaseModel):
    """Natural-language brief for one slide."""

    id: str | None = None
    content: str = Field(..., description="What the slide should say")
    is_streaming: bool = False

    model_config = ConfigDict(extra="ignore")


class LayoutSlide(BaseModel):
    """One slide template: an id plus the JSON schema its content must match."""

    id: str = Field(..., min_length=1)
    name: str | None = None
    description: str | None = None
    json_schema: dict[str, Any] = Field(default_factory=dict)


class LayoutPayload(BaseModel):
    """Template group selected for a presentation.

    ``ordered`` layouts are applied in sequence (slide i uses layout i, the
    last layout repeating); unordered layouts cycle.
    """

    name: str = Field(..., min_length=1)
    ordered: bool = False
    slides: list[LayoutSlide] = Field(default_factory=list)


class PresentationCreate(BaseModel):
    content: str = Field(default="", max_length=20_000)
    document_content: str | None = Field(default=None, max_length=500_000)
    n_slides: int = Field(default=8, ge=1, le=50)
    language: str = Field(default="English", max_length=50)
    title: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(extra="forbid")


class PrepareRequest(BaseModel):
    """Outlines and layout a presentation needs before slides can stream."""

    outlines: list[OutlineItem] = Field(..., min_length=1)
    layout: LayoutPayload
    structure: list[int] | None = Field(
        default=None, description="Explicit layout index per slide"
    )
    title: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(extra="forbid")


class SlideResponse(BaseModel):
    id: UUID
    presentation_id: UUID
    layout_group: str
    layout: str
    index: int
    speaker_note: str = ""
    content: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class PresentationResponse(BaseModel):
    id: UUID
    title: str | None = None
    content: str = ""
    document_content: str | None = None
    n_slides: int
    language: str
    layout: LayoutPayload | None = None
    structure: list[int] | None = None
    outlines: list[OutlineItem] | None = None
    slides: list[SlideResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_ready(self) -> bool:
        """True once outlines and at least one layout slide are stored."""
        return bool(self.outlines) and bool(self.layout and self.layout.slides)


class PresentationMeta(BaseModel):
    """Snapshot sent before generation starts."""

    id: UUID
    title: str | None
    language: str
    n_slides: int
    layout: str
