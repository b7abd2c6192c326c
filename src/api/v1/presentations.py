"""Presentation endpoints: create, prepare, fetch and stream slide generation."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from core.exceptions import PresentationNotFoundError
from dependencies.generation import StoreDep, get_presentation_stream_service
from schemas.api import ApiResponse
from schemas.presentation_streaming import SSE_HEADERS
from schemas.presentations import (
    PrepareRequest,
    PresentationCreate,
    PresentationResponse,
    SlideResponse,
)
from services.generation.presentation_stream import PresentationStreamService


router = APIRouter(prefix="/presentations", tags=["presentations"])


@router.post(
    "",
    response_model=ApiResponse[PresentationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a presentation from a prompt and optional document text",
)
async def create_presentation(
    payload: PresentationCreate, store: StoreDep
) -> ApiResponse[PresentationResponse]:
    presentation = await store.create_presentation(payload)
    return ApiResponse(data=presentation, message="Presentation created")


@router.get(
    "/{presentation_id}",
    response_model=ApiResponse[PresentationResponse],
    summary="Fetch a presentation with its slides",
)
async def get_presentation(
    presentation_id: UUID, store: StoreDep
) -> ApiResponse[PresentationResponse]:
    presentation = await store.get_presentation(presentation_id)
    if presentation is None:
        raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
    return ApiResponse(data=presentation, message="Presentation retrieved")


@router.get(
    "/{presentation_id}/slides",
    response_model=ApiResponse[list[SlideResponse]],
    summary="List the stored slides of a presentation in order",
)
async def list_presentation_slides(
    presentation_id: UUID, store: StoreDep
) -> ApiResponse[list[SlideResponse]]:
    slides = await store.list_slides(presentation_id)
    return ApiResponse(data=slides, message="Slides retrieved")


@router.post(
    "/{presentation_id}/prepare",
    response_model=ApiResponse[PresentationResponse],
    summary="Store outlines and the selected layout before generation",
)
async def prepare_presentation(
    presentation_id: UUID, payload: PrepareRequest, store: StoreDep
) -> ApiResponse[PresentationResponse]:
    presentation = await store.prepare_presentation(presentation_id, payload)
    return ApiResponse(data=presentation, message="Presentation prepared")


@router.get(
    "/{presentation_id}/stream",
    response_class=StreamingResponse,
    summary="Stream slide generation via Server-Sent Events",
)
async def stream_presentation(
    presentation_id: UUID,
    service: Annotated[
        PresentationStreamService, Depends(get_presentation_stream_service)
    ],
) -> StreamingResponse:
    """Generate every slide concurrently and stream progress.

    Event JSON envelope (sent in `data:` lines): ``{"type": ..., "data": {...}}``
      meta: presentation id, title, language, n_slides, layout name
      slides_init: placeholder slides for every index
      slide_delta: {index, path, value} partial field text
      slide / progress: one each per finished slide, in completion order
      slides_complete: {total}, after every slide event
      complete: {presentation}, after the slides are saved
      error: {error_code, message}, terminal
    """
    # Unknown ids fail with 404 here, before the stream opens
    presentation = await service.load(presentation_id)
    return StreamingResponse(
        service.stream(presentation),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
