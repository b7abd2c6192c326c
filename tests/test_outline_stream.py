"""Tests for the outline generation SSE stream."""

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any
from unittest.mock import AsyncMock

import pytest

from core.exceptions import PersistenceError
from fakes import FakeBackend, InMemoryPresentationStore, make_settings, parse_sse
from schemas.presentation_streaming import HEARTBEAT
from schemas.presentations import PresentationCreate
from services.generation.outline_stream import (
    OutlineStreamService,
    extract_outline_contents,
    fallback_outlines,
    placeholder_outlines,
)


OUTLINE_REPLY = '{"slides": [{"content": "Why widgets"}, {"content": "How we win"}]}'


class StallingBackend:
    async def stream(
        self,
        instructions: str,
        input: str,
        shape_hint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        yield '{"slides": [{"content": "Wh'
        await asyncio.sleep(10)
        yield "y\"}]}"


class ClosingBackend:
    """Streams until told otherwise and records when its stream is closed."""

    def __init__(self) -> None:
        self.closed = False

    async def stream(
        self,
        instructions: str,
        input: str,
        shape_hint: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        try:
            yield '{"slides": [{"content": "Wh'
            while True:
                yield "y"
        finally:
            self.closed = True


async def run_stream(service: OutlineStreamService, presentation) -> list[str]:
    return [chunk async for chunk in service.stream(presentation)]


@pytest.mark.asyncio
async def test_generated_outlines_are_streamed_and_saved(
    store: InMemoryPresentationStore,
) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(content="Widgets for everyone", n_slides=2)
    )
    service = OutlineStreamService(store, FakeBackend(OUTLINE_REPLY), make_settings())

    chunks = await run_stream(service, presentation)
    events = parse_sse("".join(chunks))
    types = [event["type"] for event in events]

    assert chunks[0] == HEARTBEAT
    assert [e["data"]["message"] for e in events[:2]] == [
        "Preparing outline generation",
        "Generating outlines",
    ]
    assert types[-3:] == ["outline", "outline", "complete"]
    assert "".join(e["data"]["chunk"] for e in events if e["type"] == "chunk") == (
        OUTLINE_REPLY
    )

    deltas = [e["data"] for e in events if e["type"] == "outline_delta"]
    assert deltas[-1] == {"index": 1, "content": "How we win"}
    assert {"index": 0, "content": "Why widgets"} in deltas

    saved = events[-1]["data"]["presentation"]
    assert [o["content"] for o in saved["outlines"]] == ["Why widgets", "How we win"]
    assert saved["title"] == "Why widgets"
    assert store.presentations[presentation.id].n_slides == 2


@pytest.mark.asyncio
async def test_existing_title_is_kept(store: InMemoryPresentationStore) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(content="Widgets", n_slides=2, title="Widget Co")
    )
    service = OutlineStreamService(store, FakeBackend(OUTLINE_REPLY), make_settings())

    events = parse_sse("".join(await run_stream(service, presentation)))

    assert events[-1]["data"]["presentation"]["title"] == "Widget Co"


@pytest.mark.asyncio
async def test_backend_failure_falls_back_to_source_sentences(
    store: InMemoryPresentationStore,
) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(
            content="Widgets for everyone. We sell to retailers.\nShort", n_slides=3
        )
    )
    service = OutlineStreamService(
        store, FakeBackend(fail_on="REQUIREMENTS"), make_settings()
    )

    events = parse_sse("".join(await run_stream(service, presentation)))

    assert [e["data"]["content"] for e in events if e["type"] == "outline"] == [
        "Widgets for everyone",
        "We sell to retailers",
        "Slide 3: Key point from your pitch deck",
    ]
    assert events[-1]["type"] == "complete"


@pytest.mark.asyncio
async def test_timeout_falls_back_to_document(store: InMemoryPresentationStore) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(
            content="Make it punchy",
            document_content="Revenue doubled last year",
            n_slides=1,
        )
    )
    service = OutlineStreamService(
        store, StallingBackend(), make_settings(SLIDE_JOB_TIMEOUT_SECONDS=0.01)
    )

    events = parse_sse("".join(await run_stream(service, presentation)))

    assert {"index": 0, "content": "Wh"} in [
        e["data"] for e in events if e["type"] == "outline_delta"
    ]
    outlines = [e["data"]["content"] for e in events if e["type"] == "outline"]
    assert outlines == ["Revenue doubled last year"]


@pytest.mark.asyncio
async def test_empty_source_uses_placeholders(store: InMemoryPresentationStore) -> None:
    presentation = await store.create_presentation(PresentationCreate(n_slides=2))
    backend = FakeBackend(OUTLINE_REPLY)
    service = OutlineStreamService(store, backend, make_settings())

    events = parse_sse("".join(await run_stream(service, presentation)))

    assert [e["data"]["message"] for e in events if e["type"] == "status"] == [
        "Preparing outline generation"
    ]
    assert [e["data"]["content"] for e in events if e["type"] == "outline"] == [
        "Slide 1",
        "Slide 2",
    ]
    assert backend.calls == []


@pytest.mark.asyncio
async def test_save_failure_ends_with_error(store: InMemoryPresentationStore) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(content="Widgets", n_slides=2)
    )
    store.save_outlines = AsyncMock(side_effect=PersistenceError("db down"))
    service = OutlineStreamService(store, FakeBackend(OUTLINE_REPLY), make_settings())

    events = parse_sse("".join(await run_stream(service, presentation)))

    assert events[-1]["type"] == "error"
    assert events[-1]["data"]["error_code"] == "persist_failed"
    assert "complete" not in [e["type"] for e in events]


def test_placeholder_outlines() -> None:
    assert placeholder_outlines(3) == ["Slide 1", "Slide 2", "Slide 3"]


def test_fallback_outlines_pads_with_generic_points() -> None:
    assert fallback_outlines("tiny. bits", 2) == [
        "Slide 1: Key point from your pitch deck",
        "Slide 2: Key point from your pitch deck",
    ]


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"slides": [{"content": "a"}, {"content": 1}, "x", {"content": "b"}]}, ["a", "b"]),
        ({"slides": "nope"}, []),
        (["a"], []),
    ],
)
def test_extract_outline_contents(payload: object, expected: list[str]) -> None:
    assert extract_outline_contents(payload) == expected


@pytest.mark.asyncio
async def test_disconnect_closes_model_stream(store: InMemoryPresentationStore) -> None:
    presentation = await store.create_presentation(
        PresentationCreate(content="Widgets for everyone", n_slides=2)
    )
    backend = ClosingBackend()
    service = OutlineStreamService(store, backend, make_settings())

    stream = service.stream(presentation)
    async for chunk in stream:
        if '"chunk"' in chunk:
            break
    assert backend.closed is False

    await stream.aclose()

    assert backend.closed is True
    assert store.presentations[presentation.id].outlines is None
