"""Field path tracking for partially received JSON documents.

The tracker only sees structural characters (braces, brackets, commas) and the
boundaries of key/value strings. It never looks ahead and never fails: stray
or mismatched closers are ignored so a malformed model response degrades into
missing deltas rather than an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ContainerKind = Literal["object", "array"]


@dataclass(frozen=True, slots=True)
class KeySegment:
    """Object member step, rendered as ``.name``."""

    name: str


@dataclass(frozen=True, slots=True)
class IndexSegment:
    """Array element step, rendered as ``[index]``."""

    index: int


PathSegment = KeySegment | IndexSegment


def build_field_path(segments: list[PathSegment]) -> str:
    """Render segments as a dot/bracket path such as ``items[2].value``."""
    path = ""
    for segment in segments:
        if isinstance(segment, KeySegment):
            path = f"{path}.{segment.name}" if path else segment.name
        else:
            path = f"{path}[{segment.index}]"
    return path


class FieldPathTracker:
    """Mirror of the container nesting with the path segment for each level.

    Every container frame records whether it pushed a path segment on entry, so
    the container depth always equals the number of markers and closing a
    container pops its segment only if one was pushed.
    """

    def __init__(self) -> None:
        self._containers: list[ContainerKind] = []
        self._segments: list[PathSegment] = []
        self._markers: list[bool] = []
        self._array_indices: list[int] = []
        self._expecting_key: list[bool] = []
        self.pending_key: str | None = None

    @property
    def depth(self) -> int:
        return len(self._containers)

    @property
    def top(self) -> ContainerKind | None:
        return self._containers[-1] if self._containers else None

    @property
    def segments(self) -> list[PathSegment]:
        return list(self._segments)

    def expecting_key(self) -> bool:
        """True when the next string inside the current object is a member name."""
        return self.top == "object" and self._expecting_key[-1]

    def take_value_segment(self) -> PathSegment | None:
        """Consume the segment addressing the value that is about to open."""
        if self.pending_key is not None:
            key = self.pending_key
            self.pending_key = None
            return KeySegment(key)
        if self.top == "array":
            return IndexSegment(self._array_indices[-1])
        return None

    def enter(self, kind: ContainerKind) -> None:
        segment = self.take_value_segment()
        if segment is not None:
            self._segments.append(segment)
        self._markers.append(segment is not None)
        self._containers.append(kind)
        if kind == "array":
            self._array_indices.append(0)
        else:
            self._expecting_key.append(True)

    def exit(self, kind: ContainerKind) -> None:
        if self.top != kind:
            return
        if kind == "array":
            self._array_indices.pop()
        else:
            self._expecting_key.pop()
        self._containers.pop()
        if self._markers.pop():
            self._segments.pop()

    def separator(self) -> None:
        """Handle ``,``: next array element, or next object member name."""
        if self.top == "array":
            self._array_indices[-1] += 1
        elif self.top == "object":
            self._expecting_key[-1] = True

    def key_closed(self, name: str) -> None:
        self.pending_key = name
        if self._expecting_key:
            self._expecting_key[-1] = False

    def value_path(self) -> str | None:
        """Path of a value string opening now; None for an unaddressable value."""
        segment = self.take_value_segment()
        segments = [*self._segments, segment] if segment is not None else self._segments
        return build_field_path(segments) or None

    def discard_pending_key(self) -> None:
        """Drop a key whose value turned out not to be a string or container."""
        self.pending_key = None
