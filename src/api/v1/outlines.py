from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from core.exceptions import PresentationNotFoundError
from dependencies.generation import StoreDep, get_outline_stream_service
from schemas.presentation_streaming import SSE_HEADERS
from services.generation.outline_stream import OutlineStreamService


router = APIRouter(prefix="/outlines", tags=["outlines"])


@router.get(
    "/stream/{presentation_id}",
    response_class=StreamingResponse,
    summary="Stream outline generation via Server-Sent Events",
)
async def stream_outlines(
    presentation_id: UUID,
    store: StoreDep,
    service: Annotated[OutlineStreamService, Depends(get_outline_stream_service)],
) -> StreamingResponse:
    presentation = await store.get_presentation(presentation_id)
    if presentation is None:
        raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
    return StreamingResponse(
        service.stream(presentation),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
