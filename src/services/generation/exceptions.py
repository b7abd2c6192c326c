"""Error taxonomy for the slide generation pipeline.

None of these escape a generation job: they select the fallback path and are
logged with their ``error_code`` so fallbacks can be counted by cause.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class GenerationError(Exception):
    """Base class for slide generation errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class BackendStreamError(GenerationError):
    def __init__(self, message: str = "Model stream failed") -> None:
        super().__init__(message=message, error_code="backend_error")


class JsonRepairError(GenerationError):
    def __init__(self, message: str = "Model output is not valid JSON") -> None:
        super().__init__(message=message, error_code="repair_failed")


class JobTimeoutError(GenerationError):
    def __init__(self, message: str = "Slide generation exceeded its deadline") -> None:
        super().__init__(message=message, error_code="job_timeout")
