"""Expose commonly used ORM models at package level.

These re-exports are intentional so callers can import from
``models`` (e.g. `from models import Presentation`). The `F401` noqa
suppresses unused-import warnings for the explicit re-exports.
"""

from .base import Base  # noqa: F401
from .presentations import Presentation, Slide  # noqa: F401
