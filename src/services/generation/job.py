"""One slide's generation request and its success/fallback state machine.

``Pending -> Streaming -> Succeeded | FallbackApplied``. A job never raises for
backend, parse or deadline failures: it always returns a structurally valid
``SlideResult``, falling back to schema-derived content when needed. Only
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import aclosing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from core.config import Settings
from core.error_handler import StructuredLogger
from core.observability import get_tracer
from services.ai.backend import InferenceBackend
from services.generation.exceptions import (
    BackendStreamError,
    GenerationError,
    JobTimeoutError,
    JsonRepairError,
)
from services.generation.prompts import SLIDES_INSTRUCTIONS, build_slide_prompt
from services.generation.repair import parse_repaired_json
from services.generation.shapes import TargetShape, build_fallback
from services.streaming.delta_parsers import DeltaEvent, SlideDeltaParser


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)
tracer = get_tracer(__name__)

_PATH_KEYS = re.compile(r"[^.\[\]]+")

SPEAKER_NOTE_KEY = "__speaker_note__"
# Fields resolved elsewhere or not shown while streaming
HIDDEN_DELTA_KEYS = frozenset(
    {
        SPEAKER_NOTE_KEY,
        "__image_url__",
        "__image_prompt__",
        "__icon_url__",
        "__icon_query__",
    }
)


class JobState(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    SUCCEEDED = "succeeded"
    FALLBACK_APPLIED = "fallback_applied"


@dataclass(frozen=True, slots=True)
class JobOptions:
    min_delta_interval_ms: float = 40
    timeout_seconds: float | None = None
    max_source_chars: int = 8000
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_settings(cls, settings: Settings) -> JobOptions:
        return cls(
            min_delta_interval_ms=settings.MIN_DELTA_INTERVAL_MS,
            timeout_seconds=settings.SLIDE_JOB_TIMEOUT_SECONDS,
            max_source_chars=settings.MAX_SOURCE_DOCUMENT_CHARS,
        )


@dataclass(slots=True)
class SlideResult:
    """Final content for one slide, real or fallback."""

    index: int
    layout_id: str
    speaker_note: str
    content: dict[str, Any]
    state: JobState


def is_hidden_path(path: str | None) -> bool:
    """True when any key segment of ``path`` is a hidden field name."""
    if path is None:
        return False
    return any(key in HIDDEN_DELTA_KEYS for key in _PATH_KEYS.findall(path))


@dataclass(slots=True)
class GenerationJob:
    unit_index: int
    outline: str
    shape_index: int
    shape: TargetShape
    layout_id: str
    json_schema: Mapping[str, Any] = field(default_factory=dict)
    source_context: str | None = None
    state: JobState = JobState.PENDING

    async def run(
        self,
        backend: InferenceBackend,
        on_delta: Callable[[DeltaEvent], None],
        options: JobOptions | None = None,
    ) -> SlideResult:
        options = options or JobOptions()
        with tracer.start_as_current_span("slide_job") as span:
            span.set_attribute("slide.index", self.unit_index)
            span.set_attribute("slide.shape_index", self.shape_index)
            result = await self._run(backend, on_delta, options)
            span.set_attribute("slide.outcome", result.state.value)
            return result

    async def _run(
        self,
        backend: InferenceBackend,
        on_delta: Callable[[DeltaEvent], None],
        options: JobOptions,
    ) -> SlideResult:
        def forward(event: DeltaEvent) -> None:
            if not is_hidden_path(event.path):
                on_delta(event)

        parser = SlideDeltaParser(
            self.unit_index,
            forward,
            min_interval_ms=options.min_delta_interval_ms,
            clock=options.clock,
        )
        prompt = build_slide_prompt(
            self.outline, self.source_context, max_source_chars=options.max_source_chars
        )
        self.state = JobState.STREAMING
        chunks: list[str] = []
        try:
            async with (
                asyncio.timeout(options.timeout_seconds),
                aclosing(
                    backend.stream(SLIDES_INSTRUCTIONS, prompt, self.json_schema)
                ) as tokens,
            ):
                async for token in tokens:
                    parser.push(token)
                    chunks.append(token)
            open_path = parser.finish()
            if open_path is not None:
                logger.debug(
                    "Slide %s stream ended inside field %s", self.unit_index, open_path
                )
            content = parse_repaired_json("".join(chunks))
            if not isinstance(content, dict):
                raise JsonRepairError("Slide content must be a JSON object")
        except TimeoutError:
            return self._fallback(JobTimeoutError())
        except GenerationError as exc:
            return self._fallback(exc)
        except Exception as exc:
            return self._fallback(BackendStreamError(f"{exc.__class__.__name__}: {exc}"))

        self.state = JobState.SUCCEEDED
        return self._result(content)

    def _fallback(self, error: GenerationError) -> SlideResult:
        structured_logger.warning(
            "Slide generation fell back to schema defaults",
            slide_index=self.unit_index,
            error_code=error.error_code,
        )
        self.state = JobState.FALLBACK_APPLIED
        return self._result(build_fallback(self.shape, self.outline))

    def _result(self, content: dict[str, Any]) -> SlideResult:
        note = content.pop(SPEAKER_NOTE_KEY, None)
        return SlideResult(
            index=self.unit_index,
            layout_id=self.layout_id,
            speaker_note=note if isinstance(note, str) else "",
            content=content,
            state=self.state,
        )
