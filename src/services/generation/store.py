"""Storage collaborator for the generation services.

Services depend on the ``PresentationStore`` protocol. The SQLAlchemy adapter
opens a short-lived session per operation, so a long-running stream never holds
a request-scoped session across model calls.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import PersistenceError, PresentationNotFoundError
from crud import presentations as presentations_crud
from models.presentations import Slide
from schemas.presentations import (
    OutlineItem,
    PrepareRequest,
    PresentationCreate,
    PresentationResponse,
    SlideResponse,
)
from services.generation.job import SlideResult


logger = logging.getLogger(__name__)


class PresentationStore(Protocol):
    async def create_presentation(
        self, presentation_in: PresentationCreate
    ) -> PresentationResponse: ...

    async def get_presentation(
        self, presentation_id: UUID
    ) -> PresentationResponse | None: ...

    async def prepare_presentation(
        self, presentation_id: UUID, prepare_in: PrepareRequest
    ) -> PresentationResponse: ...

    async def save_outlines(
        self, presentation_id: UUID, outlines: Sequence[OutlineItem], title: str | None
    ) -> PresentationResponse: ...

    async def list_slides(self, presentation_id: UUID) -> list[SlideResponse]: ...

    async def commit_slides(
        self,
        presentation_id: UUID,
        layout_group: str,
        results: Sequence[SlideResult],
        outlines: Sequence[OutlineItem] | None = None,
        title: str | None = None,
        slide_ids: Sequence[UUID] | None = None,
    ) -> PresentationResponse:
        """Replace all slides of a presentation; raises ``PersistenceError``."""
        ...


class SqlAlchemyPresentationStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_presentation(
        self, presentation_in: PresentationCreate
    ) -> PresentationResponse:
        async with self._session_factory() as db:
            presentation = await presentations_crud.create_presentation(
                db, presentation_in
            )
            return PresentationResponse.model_validate(presentation)

    async def get_presentation(
        self, presentation_id: UUID
    ) -> PresentationResponse | None:
        async with self._session_factory() as db:
            presentation = await presentations_crud.get_presentation_by_id(
                db, presentation_id
            )
            if presentation is None:
                return None
            return PresentationResponse.model_validate(presentation)

    async def prepare_presentation(
        self, presentation_id: UUID, prepare_in: PrepareRequest
    ) -> PresentationResponse:
        async with self._session_factory() as db:
            presentation = await presentations_crud.get_presentation_by_id(
                db, presentation_id
            )
            if presentation is None:
                raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
            presentation = await presentations_crud.prepare_presentation(
                db, presentation, prepare_in
            )
            return PresentationResponse.model_validate(presentation)

    async def save_outlines(
        self, presentation_id: UUID, outlines: Sequence[OutlineItem], title: str | None
    ) -> PresentationResponse:
        payload = [outline.model_dump(exclude={"is_streaming"}) for outline in outlines]
        try:
            async with self._session_factory() as db:
                presentation = await presentations_crud.update_outlines(
                    db, presentation_id, payload, title
                )
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to save outlines") from exc
        if presentation is None:
            raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
        return PresentationResponse.model_validate(presentation)

    async def list_slides(self, presentation_id: UUID) -> list[SlideResponse]:
        """Stored slides in ``slide_index`` order."""
        async with self._session_factory() as db:
            presentation = await presentations_crud.get_presentation_by_id(
                db, presentation_id
            )
            if presentation is None:
                raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
            slides = await presentations_crud.list_slides(db, presentation_id)
            return [SlideResponse.model_validate(slide) for slide in slides]

    async def commit_slides(
        self,
        presentation_id: UUID,
        layout_group: str,
        results: Sequence[SlideResult],
        outlines: Sequence[OutlineItem] | None = None,
        title: str | None = None,
        slide_ids: Sequence[UUID] | None = None,
    ) -> PresentationResponse:
        slides = [
            Slide(
                id=slide_ids[position] if slide_ids is not None else uuid.uuid4(),
                presentation_id=presentation_id,
                layout_group=layout_group,
                layout=result.layout_id,
                index=result.index,
                speaker_note=result.speaker_note,
                content=result.content,
            )
            for position, result in enumerate(results)
        ]
        outline_payload = (
            [outline.model_dump(exclude={"is_streaming"}) for outline in outlines]
            if outlines is not None
            else None
        )
        try:
            async with self._session_factory() as db:
                presentation = await presentations_crud.replace_slides_for_presentation(
                    db, presentation_id, slides, outline_payload, title
                )
                if presentation is None:
                    raise PresentationNotFoundError(
                        f"Presentation {presentation_id} not found"
                    )
                response = PresentationResponse.model_validate(presentation)
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist slides for %s", presentation_id)
            raise PersistenceError("Failed to persist generated slides") from exc
        logger.info("Committed %d slides for %s", len(slides), presentation_id)
        return response
