"""Test doubles for the store and model backend, plus presentation builders."""

import json
import uuid
from collections.abc import AsyncGenerator, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from core.config import Settings
from core.exceptions import PersistenceError, PresentationNotFoundError
from schemas.presentations import (
    LayoutPayload,
    LayoutSlide,
    OutlineItem,
    PrepareRequest,
    PresentationCreate,
    PresentationResponse,
    SlideResponse,
)
from services.generation.exceptions import BackendStreamError
from services.generation.job import SlideResult


SLIDE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "bullets": {"type": "array", "items": {"type": "string"}, "minItems": 2},
    },
}


class FakeBackend:
    """Scripted ``InferenceBackend``.

    Replies with ``reply(input)`` split into small chunks. When ``fail_on`` is
    a substring of the input the stream raises instead.
    """

    def __init__(
        self,
        reply: str | None = None,
        *,
        fail_on: str | None = None,
        chunk_size: int = 3,
    ) -> None:
        self.reply = reply
        self.fail_on = fail_on
        self.chunk_size = chunk_size
        self.calls: list[tuple[str, str, Mapping[str, Any] | None]] = []

    def respond(self, input: str) -> str:
        if self.reply is not None:
            return self.reply
        outline = input.rsplit("## SLIDE OUTLINE:\n", 1)[-1]
        return f'{{"title": "{outline}", "bullets": ["a", "b"]}}'

    async def stream(
        self,
        instructions: str,
        input: str,
        shape_hint: Mapping[str, Any] | None = None,
    ) -> AsyncGenerator[str, None]:
        self.calls.append((instructions, input, shape_hint))
        if self.fail_on is not None and self.fail_on in input:
            raise BackendStreamError("scripted failure")
        text = self.respond(input)
        for start in range(0, len(text), self.chunk_size):
            yield text[start : start + self.chunk_size]


class InMemoryPresentationStore:
    """``PresentationStore`` kept in a dict; ``fail_commit`` simulates a DB outage."""

    def __init__(self) -> None:
        self.presentations: dict[UUID, PresentationResponse] = {}
        self.fail_commit = False
        self.commits: list[list[SlideResult]] = []

    def add(self, presentation: PresentationResponse) -> PresentationResponse:
        self.presentations[presentation.id] = presentation
        return presentation

    async def create_presentation(
        self, presentation_in: PresentationCreate
    ) -> PresentationResponse:
        now = datetime.now(UTC)
        return self.add(
            PresentationResponse(
                id=uuid.uuid4(),
                created_at=now,
                updated_at=now,
                **presentation_in.model_dump(),
            )
        )

    async def get_presentation(
        self, presentation_id: UUID
    ) -> PresentationResponse | None:
        return self.presentations.get(presentation_id)

    async def prepare_presentation(
        self, presentation_id: UUID, prepare_in: PrepareRequest
    ) -> PresentationResponse:
        current = self.presentations.get(presentation_id)
        if current is None:
            raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
        return self.add(
            current.model_copy(
                update={
                    "outlines": prepare_in.outlines,
                    "layout": prepare_in.layout,
                    "structure": prepare_in.structure,
                    "n_slides": len(prepare_in.outlines),
                    "title": prepare_in.title or current.title,
                }
            )
        )

    async def save_outlines(
        self, presentation_id: UUID, outlines: Sequence[OutlineItem], title: str | None
    ) -> PresentationResponse:
        current = self.presentations[presentation_id]
        return self.add(
            current.model_copy(
                update={
                    "outlines": list(outlines),
                    "n_slides": len(outlines),
                    "title": title,
                }
            )
        )

    async def list_slides(self, presentation_id: UUID) -> list[SlideResponse]:
        current = self.presentations.get(presentation_id)
        if current is None:
            raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
        return sorted(current.slides, key=lambda slide: slide.index)

    async def commit_slides(
        self,
        presentation_id: UUID,
        layout_group: str,
        results: Sequence[SlideResult],
        outlines: Sequence[OutlineItem] | None = None,
        title: str | None = None,
        slide_ids: Sequence[UUID] | None = None,
    ) -> PresentationResponse:
        if self.fail_commit:
            raise PersistenceError("database unavailable")
        self.commits.append(list(results))
        slides = [
            SlideResponse(
                id=slide_ids[i] if slide_ids is not None else uuid.uuid4(),
                presentation_id=presentation_id,
                layout_group=layout_group,
                layout=result.layout_id,
                index=result.index,
                speaker_note=result.speaker_note,
                content=result.content,
            )
            for i, result in enumerate(results)
        ]
        current = self.presentations[presentation_id]
        update: dict[str, Any] = {"slides": slides, "title": title}
        if outlines is not None:
            update["outlines"] = list(outlines)
        return self.add(current.model_copy(update=update))


def make_presentation(
    outlines: Sequence[str] = ("Intro", "Market", "Team"),
    *,
    schemas: Sequence[dict[str, Any]] = (SLIDE_SCHEMA,),
    ordered: bool = False,
    title: str | None = None,
    content: str = "Widgets for everyone",
    document_content: str | None = None,
) -> PresentationResponse:
    return PresentationResponse(
        id=uuid.uuid4(),
        title=title,
        content=content,
        document_content=document_content,
        n_slides=len(outlines),
        language="English",
        layout=LayoutPayload(
            name="general",
            ordered=ordered,
            slides=[
                LayoutSlide(id=f"layout-{i}", json_schema=schema)
                for i, schema in enumerate(schemas)
            ],
        )
        if schemas
        else None,
        outlines=[OutlineItem(content=text) for text in outlines] or None,
    )


def make_settings(**overrides: Any) -> Settings:
    defaults: dict[str, Any] = {
        "PRIORITY_START_DELAY_MS": 0,
        "MAX_PRIORITY_START_DELAY_MS": 0,
        "MIN_DELTA_INTERVAL_MS": 0,
        "PRESENTATION_READY_MAX_RETRIES": 1,
        "PRESENTATION_READY_RETRY_DELAY_MS": 0,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)  # type: ignore[call-arg]


def parse_sse(body: str) -> list[dict[str, Any]]:
    """Decode every ``data:`` line of an SSE body, skipping comment lines."""
    return [
        json.loads(line[len("data: ") :])
        for line in body.split("\n")
        if line.startswith("data: ")
    ]
