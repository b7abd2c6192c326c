"""Init file for AI services."""

from .backend import InferenceBackend, PydanticAIBackend
from .model_factory import get_outline_model, get_slides_model


__all__ = [
    "InferenceBackend",
    "PydanticAIBackend",
    "get_outline_model",
    "get_slides_model",
]
