"""Incremental JSON parsing for token streams."""

from .delta_parsers import DeltaEvent, OutlineDeltaParser, SlideDeltaParser


__all__ = ["DeltaEvent", "OutlineDeltaParser", "SlideDeltaParser"]
