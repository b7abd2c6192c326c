"""CRUD operations for presentations and their slides."""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.presentations import Presentation, Slide
from schemas.presentations import PrepareRequest, PresentationCreate


async def create_presentation(
    db: AsyncSession, presentation_in: PresentationCreate
) -> Presentation:
    presentation = Presentation(**presentation_in.model_dump())
    db.add(presentation)
    await db.commit()
    return await get_presentation_by_id(db, presentation.id)  # type: ignore[return-value]


async def get_presentation_by_id(
    db: AsyncSession, presentation_id: UUID
) -> Presentation | None:
    """Load a presentation with its slides, refreshing any identity-map copy."""
    result = await db.execute(
        select(Presentation)
        .where(Presentation.id == presentation_id)
        .options(selectinload(Presentation.slides))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def prepare_presentation(
    db: AsyncSession, presentation: Presentation, prepare_in: PrepareRequest
) -> Presentation:
    """Store outlines, layout and (optionally) an explicit structure."""
    presentation.outlines = [
        outline.model_dump(exclude={"is_streaming"}) for outline in prepare_in.outlines
    ]
    presentation.layout = prepare_in.layout.model_dump()
    presentation.structure = prepare_in.structure
    presentation.n_slides = len(prepare_in.outlines)
    if prepare_in.title:
        presentation.title = prepare_in.title
    await db.commit()
    return await get_presentation_by_id(db, presentation.id)  # type: ignore[return-value]


async def update_outlines(
    db: AsyncSession,
    presentation_id: UUID,
    outlines: list[dict[str, Any]],
    title: str | None,
) -> Presentation | None:
    presentation = await db.get(Presentation, presentation_id)
    if presentation is None:
        return None
    presentation.outlines = outlines
    presentation.n_slides = len(outlines)
    presentation.title = title
    await db.commit()
    return await get_presentation_by_id(db, presentation_id)


async def replace_slides_for_presentation(
    db: AsyncSession,
    presentation_id: UUID,
    slides: Sequence[Slide],
    outlines: list[dict[str, Any]] | None = None,
    title: str | None = None,
) -> Presentation | None:
    """Replace every stored slide of a presentation in one transaction.

    Existing slides are deleted and the new set inserted together with any
    outline/title update; on failure nothing is changed.

    Returns:
        The refreshed presentation, or None if it does not exist
    """
    presentation = await get_presentation_by_id(db, presentation_id)
    if presentation is None:
        return None
    try:
        # delete-orphan cascade removes the previous slides on flush
        presentation.slides = list(slides)
        if outlines is not None:
            presentation.outlines = outlines
        if title is not None:
            presentation.title = title
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return await get_presentation_by_id(db, presentation_id)


async def list_slides(db: AsyncSession, presentation_id: UUID) -> list[Slide]:
    result = await db.execute(
        select(Slide)
        .where(Slide.presentation_id == presentation_id)
        .order_by(Slide.index)
    )
    return list(result.scalars().all())
