"""Schemas for slide and outline SSE streaming."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


HEARTBEAT = ": heartbeat\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


class PresentationSseEvent(BaseModel):
    """Canonical SSE envelope for presentation generation streams.

    Slide stream order: ``meta``, ``slides_init``, interleaved ``slide_delta`` /
    ``slide`` / ``progress``, then ``slides_complete`` and finally ``complete``
    (or a terminal ``error``). Outline streams use ``status``,
    ``outline_delta``, ``chunk``, ``outline`` and ``complete``.
    """

    type: Literal[
        "meta",
        "slides_init",
        "slide_delta",
        "slide",
        "progress",
        "slides_complete",
        "complete",
        "error",
        "status",
        "outline_delta",
        "chunk",
        "outline",
    ]
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json()}\n\n"

    @classmethod
    def error(cls, error_code: str, message: str) -> PresentationSseEvent:
        """Terminal error event carrying a stable machine-readable code."""
        return cls(type="error", data={"error_code": error_code, "message": message})
