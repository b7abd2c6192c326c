"""Server-sent event stream for generating a presentation's slide outlines."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger
from core.exceptions import DomainError
from schemas.presentation_streaming import HEARTBEAT, PresentationSseEvent
from schemas.presentations import OutlineItem, PresentationResponse
from services.ai.backend import InferenceBackend
from services.generation.exceptions import GenerationError
from services.generation.prompts import OUTLINE_INSTRUCTIONS, build_outline_prompt
from services.generation.repair import parse_repaired_json
from services.generation.store import PresentationStore
from services.streaming.delta_parsers import DeltaEvent, OutlineDeltaParser


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

MIN_FALLBACK_SENTENCE_CHARS = 10
_SENTENCE_SPLIT = re.compile(r"[\n.]+")


def placeholder_outlines(n_slides: int) -> list[str]:
    return [f"Slide {n}" for n in range(1, n_slides + 1)]


def fallback_outlines(source: str, n_slides: int) -> list[str]:
    """Outline text cut from the source itself when generation fails."""
    sentences = [
        s.strip()
        for s in _SENTENCE_SPLIT.split(source)
        if len(s.strip()) > MIN_FALLBACK_SENTENCE_CHARS
    ]
    return [
        sentences[i] if i < len(sentences) else f"Slide {i + 1}: Key point from your pitch deck"
        for i in range(n_slides)
    ]


def extract_outline_contents(payload: object) -> list[str]:
    if not isinstance(payload, dict):
        return []
    slides = payload.get("slides")
    if not isinstance(slides, list):
        return []
    return [
        item["content"]
        for item in slides
        if isinstance(item, dict) and isinstance(item.get("content"), str)
    ]


class OutlineStreamService:
    def __init__(
        self,
        store: PresentationStore,
        backend: InferenceBackend,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.backend = backend
        self.settings = settings or get_settings()
        self._clock = clock

    async def stream(self, presentation: PresentationResponse) -> AsyncIterator[str]:
        try:
            yield HEARTBEAT
            yield _status("Preparing outline generation")

            prompt_content = presentation.content.strip()
            document_content = (presentation.document_content or "").strip()
            if not prompt_content and not document_content:
                contents = placeholder_outlines(presentation.n_slides)
            else:
                yield _status("Generating outlines")
                contents = []
                async with aclosing(self._generate(presentation, contents)) as events:
                    async for event in events:
                        yield event
                if not contents:
                    structured_logger.warning(
                        "Outline generation fell back to source sentences",
                        presentation_id=str(presentation.id),
                    )
                    contents = fallback_outlines(
                        document_content or prompt_content, presentation.n_slides
                    )

            outlines = [OutlineItem(content=content) for content in contents]
            for index, outline in enumerate(outlines):
                yield PresentationSseEvent(
                    type="outline", data={"index": index, "content": outline.content}
                ).to_sse()

            title = presentation.title or (outlines[0].content if outlines else None)
            try:
                saved = await self.store.save_outlines(presentation.id, outlines, title)
            except DomainError:
                logger.exception("Failed to save outlines for %s", presentation.id)
                yield PresentationSseEvent.error(
                    "persist_failed", "Outlines could not be saved"
                ).to_sse()
                return

            yield PresentationSseEvent(
                type="complete", data={"presentation": saved.model_dump(mode="json")}
            ).to_sse()
        except Exception:
            logger.exception("Outline stream failed for %s", presentation.id)
            yield PresentationSseEvent.error(
                "internal_error", "Outline generation failed"
            ).to_sse()

    async def _generate(
        self, presentation: PresentationResponse, contents: list[str]
    ) -> AsyncIterator[str]:
        """Stream model output as SSE text, filling ``contents`` on success."""
        pending: list[DeltaEvent] = []
        parser = OutlineDeltaParser(
            pending.append,
            min_interval_ms=self.settings.MIN_DELTA_INTERVAL_MS,
            clock=self._clock,
        )
        prompt = build_outline_prompt(
            presentation.content,
            presentation.document_content,
            presentation.n_slides,
            presentation.language,
        )
        chunks: list[str] = []
        timeout = self.settings.SLIDE_JOB_TIMEOUT_SECONDS
        # The deadline covers model calls only, not time spent by the consumer
        deadline = None if timeout is None else asyncio.get_running_loop().time() + timeout
        try:
            async with aclosing(
                self.backend.stream(OUTLINE_INSTRUCTIONS, prompt)
            ) as tokens:
                while True:
                    try:
                        async with asyncio.timeout_at(deadline):
                            token = await anext(tokens)
                    except StopAsyncIteration:
                        break
                    parser.push(token)
                    chunks.append(token)
                    for event in pending:
                        yield _outline_delta(event)
                    pending.clear()
                    yield PresentationSseEvent(
                        type="chunk", data={"chunk": token}
                    ).to_sse()
            parser.finish()
            for event in pending:
                yield _outline_delta(event)
            contents.extend(extract_outline_contents(parse_repaired_json("".join(chunks))))
        except TimeoutError:
            logger.warning("Outline generation timed out for %s", presentation.id)
        except GenerationError as exc:
            logger.warning(
                "Outline generation failed for %s: %s", presentation.id, exc.error_code
            )


def _status(message: str) -> str:
    return PresentationSseEvent(type="status", data={"message": message}).to_sse()


def _outline_delta(event: DeltaEvent) -> str:
    return PresentationSseEvent(
        type="outline_delta", data={"index": event.unit_index, "content": event.value}
    ).to_sse()
