"""Dependency providers for the generation services.

Backends are built once in the application lifespan and kept on
``app.state``; tests swap any of these providers via
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from core.config import Settings, get_settings
from dependencies.db import AsyncSessionLocal
from services.ai.backend import InferenceBackend
from services.generation.outline_stream import OutlineStreamService
from services.generation.presentation_stream import PresentationStreamService
from services.generation.store import PresentationStore, SqlAlchemyPresentationStore


def get_presentation_store() -> PresentationStore:
    return SqlAlchemyPresentationStore(AsyncSessionLocal)


def _backend_from_state(request: Request, name: str) -> InferenceBackend:
    backend = getattr(request.app.state, name, None)
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Model backend is not configured",
        )
    return backend


def get_slides_backend(request: Request) -> InferenceBackend:
    return _backend_from_state(request, "slides_backend")


def get_outline_backend(request: Request) -> InferenceBackend:
    return _backend_from_state(request, "outline_backend")


StoreDep = Annotated[PresentationStore, Depends(get_presentation_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_presentation_stream_service(
    store: StoreDep,
    backend: Annotated[InferenceBackend, Depends(get_slides_backend)],
    settings: SettingsDep,
) -> PresentationStreamService:
    return PresentationStreamService(store, backend, settings)


def get_outline_stream_service(
    store: StoreDep,
    backend: Annotated[InferenceBackend, Depends(get_outline_backend)],
    settings: SettingsDep,
) -> OutlineStreamService:
    return OutlineStreamService(store, backend, settings)
