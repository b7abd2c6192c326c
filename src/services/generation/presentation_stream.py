"""Server-sent event stream for generating every slide of a presentation.

Event order on the wire::

    : heartbeat
    meta -> slides_init -> (slide_delta | slide | progress)* -> slides_complete
    -> complete | error

``slides_complete`` follows every ``slide`` event and ``complete`` is sent
only after the replace-all commit succeeds. Preconditions and persistence
failures end the stream with a terminal ``error`` event instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from uuid import UUID

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger
from core.exceptions import (
    DomainError,
    PresentationNotFoundError,
)
from schemas.presentation_streaming import HEARTBEAT, PresentationSseEvent
from schemas.presentations import LayoutPayload, PresentationMeta, PresentationResponse
from services.ai.backend import InferenceBackend
from services.generation.job import GenerationJob, SlideResult
from services.generation.orchestrator import OrchestratorOptions, SlideOrchestrator
from services.generation.prompts import combine_source_context
from services.generation.shapes import TargetShape, build_placeholder
from services.generation.store import PresentationStore
from services.generation.structure import build_structure_mapping
from services.streaming.delta_parsers import DeltaEvent


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


class QueueEventSink:
    """Turns orchestrator callbacks into SSE events on an asyncio queue."""

    def __init__(
        self,
        queue: asyncio.Queue[PresentationSseEvent | None],
        slide_ids: list[UUID],
        layout_group: str,
    ) -> None:
        self._queue = queue
        self._slide_ids = slide_ids
        self._layout_group = layout_group

    def delta(self, event: DeltaEvent) -> None:
        self._queue.put_nowait(
            PresentationSseEvent(
                type="slide_delta",
                data={"index": event.unit_index, "path": event.path, "value": event.value},
            )
        )

    def slide_completed(self, result: SlideResult, completed: int, total: int) -> None:
        slide = slide_payload(
            self._slide_ids[result.index],
            result.index,
            self._layout_group,
            result.layout_id,
            result.content,
            result.speaker_note,
        )
        self._queue.put_nowait(
            PresentationSseEvent(type="slide", data={"index": result.index, "slide": slide})
        )
        self._queue.put_nowait(
            PresentationSseEvent(
                type="progress",
                data={"completed": completed, "total": total, "index": result.index},
            )
        )


def slide_payload(
    slide_id: UUID,
    index: int,
    layout_group: str,
    layout_id: str,
    content: Any,
    speaker_note: str = "",
) -> dict[str, Any]:
    return {
        "id": str(slide_id),
        "index": index,
        "layout_group": layout_group,
        "layout": layout_id,
        "speaker_note": speaker_note,
        "content": content if isinstance(content, dict) else {"content": content},
    }


def resolve_title(presentation: PresentationResponse) -> str | None:
    """Existing title, else the first outline's text."""
    if presentation.title:
        return presentation.title
    if presentation.outlines and presentation.outlines[0].content:
        return presentation.outlines[0].content
    return None


def build_jobs(presentation: PresentationResponse) -> list[GenerationJob]:
    layout: LayoutPayload = presentation.layout  # type: ignore[assignment]
    outlines = presentation.outlines or []
    mapping = build_structure_mapping(
        len(outlines),
        len(layout.slides),
        ordered=layout.ordered,
        saved=presentation.structure,
    )
    shapes = [TargetShape.from_json_schema(slide.json_schema) for slide in layout.slides]
    source_context = combine_source_context(
        presentation.content, presentation.document_content
    )
    return [
        GenerationJob(
            unit_index=index,
            outline=outline.content,
            shape_index=mapping[index],
            shape=shapes[mapping[index]],
            layout_id=layout.slides[mapping[index]].id,
            json_schema=layout.slides[mapping[index]].json_schema,
            source_context=source_context,
        )
        for index, outline in enumerate(outlines)
    ]


class PresentationStreamService:
    def __init__(
        self,
        store: PresentationStore,
        backend: InferenceBackend,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.backend = backend
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._clock = clock

    async def load(self, presentation_id: UUID) -> PresentationResponse:
        presentation = await self.store.get_presentation(presentation_id)
        if presentation is None:
            raise PresentationNotFoundError(f"Presentation {presentation_id} not found")
        return presentation

    async def wait_until_ready(
        self, presentation: PresentationResponse
    ) -> PresentationResponse | None:
        """Poll until outlines and a layout are stored; None if they never are."""
        attempts = max(1, self.settings.PRESENTATION_READY_MAX_RETRIES)
        delay = self.settings.PRESENTATION_READY_RETRY_DELAY_MS / 1000.0
        for attempt in range(attempts):
            if presentation.is_ready:
                return presentation
            if attempt == attempts - 1:
                break
            await self._sleep(delay)
            presentation = await self.load(presentation.id)
        return None

    async def stream(self, presentation: PresentationResponse) -> AsyncIterator[str]:
        task: asyncio.Task[list[SlideResult]] | None = None
        try:
            yield HEARTBEAT

            try:
                ready = await self.wait_until_ready(presentation)
            except PresentationNotFoundError:
                yield PresentationSseEvent.error(
                    "not_found", "Presentation was deleted"
                ).to_sse()
                return
            if ready is None:
                structured_logger.warning(
                    "Presentation never became ready", presentation_id=str(presentation.id)
                )
                yield PresentationSseEvent.error(
                    "not_ready", "Presentation is missing outlines or layout"
                ).to_sse()
                return
            presentation = ready
            layout: LayoutPayload = presentation.layout  # type: ignore[assignment]

            jobs = build_jobs(presentation)
            slide_ids = [uuid.uuid4() for _ in jobs]
            placeholders = [
                slide_payload(
                    slide_ids[job.unit_index],
                    job.unit_index,
                    layout.name,
                    job.layout_id,
                    build_placeholder(job.shape),
                )
                for job in jobs
            ]

            meta = PresentationMeta(
                id=presentation.id,
                title=presentation.title,
                language=presentation.language,
                n_slides=len(jobs),
                layout=layout.name,
            )
            yield PresentationSseEvent(type="meta", data=meta.model_dump(mode="json")).to_sse()
            yield PresentationSseEvent(
                type="slides_init", data={"slides": placeholders}
            ).to_sse()

            queue: asyncio.Queue[PresentationSseEvent | None] = asyncio.Queue()
            orchestrator = SlideOrchestrator(
                self.backend,
                QueueEventSink(queue, slide_ids, layout.name),
                OrchestratorOptions.from_settings(self.settings),
                sleep=self._sleep,
                clock=self._clock,
            )
            structured_logger.info(
                "Starting slide generation",
                presentation_id=str(presentation.id),
                slide_count=len(jobs),
            )
            task = asyncio.create_task(orchestrator.run(jobs), name="slide-orchestrator")
            task.add_done_callback(lambda _: queue.put_nowait(None))

            heartbeat_interval = self.settings.SSE_HEARTBEAT_INTERVAL_SECONDS
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
                except TimeoutError:
                    yield HEARTBEAT
                    continue
                if event is None:
                    break
                yield event.to_sse()

            results = task.result()
            yield PresentationSseEvent(
                type="slides_complete", data={"total": len(results)}
            ).to_sse()

            try:
                committed = await self.store.commit_slides(
                    presentation.id,
                    layout.name,
                    results,
                    outlines=presentation.outlines,
                    title=resolve_title(presentation),
                    slide_ids=slide_ids,
                )
            except DomainError as exc:
                structured_logger.error(
                    "Slide commit failed",
                    presentation_id=str(presentation.id),
                    error_type=exc.__class__.__name__,
                )
                yield PresentationSseEvent.error(
                    "persist_failed", "Generated slides could not be saved"
                ).to_sse()
                return

            yield PresentationSseEvent(
                type="complete",
                data={"presentation": committed.model_dump(mode="json")},
            ).to_sse()
        except Exception:
            logger.exception("Slide stream failed for %s", presentation.id)
            yield PresentationSseEvent.error(
                "internal_error", "Slide generation failed"
            ).to_sse()
        finally:
            if task is not None and not task.done():
                task.cancel()
                # Workers finish tearing down before the stream closes
                with contextlib.suppress(asyncio.CancelledError):
                    await task
