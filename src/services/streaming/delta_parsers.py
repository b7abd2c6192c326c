"""Delta parsers that surface field values while a model response is streaming.

Both parsers consume arbitrary text chunks from a JSON document that is still
arriving token by token and report growing string values through a callback:

* ``OutlineDeltaParser`` (coarse) reports one value per slide: the designated
  field (``content``) of every entry in the designated list (``slides``).
* ``SlideDeltaParser`` (fine) reports every string leaf of a slide document by
  its field path, e.g. ``items[0].heading``.

Emission is throttled per slide or per path. Closing a value string always
force-emits its final value, so a complete stream never loses the last
characters of a field. Parsers never raise on malformed input; a stream cut
off mid-value simply leaves that value incomplete, which ``finish`` reports.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from services.streaming.decoder import JsonStringDecoder
from services.streaming.paths import FieldPathTracker
from services.streaming.throttle import DeltaThrottle


DEFAULT_MIN_DELTA_INTERVAL_MS = 40


@dataclass(frozen=True, slots=True)
class DeltaEvent:
    """Incremental value update. ``path`` is None for coarse, slide-level deltas."""

    unit_index: int
    value: str
    path: str | None = None


DeltaCallback = Callable[[DeltaEvent], None]
_StringKind = Literal["key", "value", "field"]


class _DeltaParserBase:
    """Character loop shared by both parser variants."""

    def __init__(self) -> None:
        self._tracker = FieldPathTracker()
        self._decoder: JsonStringDecoder | None = None
        self._kind: _StringKind | None = None
        self._buffer = ""

    def push(self, chunk: str) -> None:
        """Consume the next chunk of model output."""
        for char in chunk:
            if self._decoder is not None:
                self._string_char(self._decoder, char)
            else:
                self._structural_char(char)

    def _structural_char(self, char: str) -> None:
        if char == '"':
            self._decoder = JsonStringDecoder()
            self._buffer = ""
            if self._tracker.expecting_key():
                self._kind = "key"
            else:
                self._open_value()
        elif char == ":":
            return
        elif char == "{":
            self._tracker.enter("object")
        elif char == "[":
            self._enter_array()
        elif char == "}":
            self._tracker.exit("object")
        elif char == "]":
            self._exit_array()
        elif char == ",":
            self._tracker.separator()
        elif not char.isspace():
            # number, literal or stray token: the pending key is not a string key
            self._tracker.discard_pending_key()

    def _string_char(self, decoder: JsonStringDecoder, char: str) -> None:
        text = decoder.feed(char)
        if text:
            self._append(text)
        if decoder.closed:
            if self._kind == "key":
                self._tracker.key_closed(self._buffer)
            else:
                self._value_closed()
            self._decoder = None
            self._kind = None
            self._buffer = ""

    def _flush_open_value(self) -> bool:
        """Append the literal tail of a truncated escape; True if a value is open."""
        if self._decoder is None or self._kind == "key":
            return False
        tail = self._decoder.flush()
        if tail:
            self._append(tail)
        return True

    def _enter_array(self) -> None:
        self._tracker.enter("array")

    def _exit_array(self) -> None:
        self._tracker.exit("array")

    def _open_value(self) -> None:
        raise NotImplementedError

    def _append(self, text: str) -> None:
        raise NotImplementedError

    def _value_closed(self) -> None:
        raise NotImplementedError


class SlideDeltaParser(_DeltaParserBase):
    """Field-level parser for one slide's JSON document."""

    def __init__(
        self,
        unit_index: int,
        on_delta: DeltaCallback,
        *,
        min_interval_ms: float = DEFAULT_MIN_DELTA_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self.unit_index = unit_index
        self._on_delta = on_delta
        self._throttle: DeltaThrottle[str] = DeltaThrottle(min_interval_ms, clock)
        self._active_path: str | None = None

    def finish(self) -> str | None:
        """Flush pending escape text and return the path left open, if any."""
        if not self._flush_open_value():
            return None
        return self._active_path

    def _open_value(self) -> None:
        self._kind = "value"
        self._active_path = self._tracker.value_path()

    def _append(self, text: str) -> None:
        if self._kind == "key":
            self._buffer += text
            return
        if self._active_path is None:
            return
        self._buffer += text
        self._offer(self._active_path)

    def _value_closed(self) -> None:
        if self._active_path is not None:
            self._offer(self._active_path, force=True)
        self._active_path = None

    def _offer(self, path: str, force: bool = False) -> None:
        if self._throttle.offer(path, self._buffer, force=force):
            self._on_delta(DeltaEvent(self.unit_index, self._buffer, path))


class OutlineDeltaParser(_DeltaParserBase):
    """Slide-level parser for a ``{"slides": [{"content": ...}, ...]}`` document.

    The slide index advances each time a new ``content`` value opens anywhere
    inside the ``slides`` list, so the n-th content string belongs to slide n.
    """

    def __init__(
        self,
        on_delta: DeltaCallback,
        *,
        min_interval_ms: float = DEFAULT_MIN_DELTA_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        list_key: str = "slides",
        field_key: str = "content",
    ) -> None:
        super().__init__()
        self._on_delta = on_delta
        self._throttle: DeltaThrottle[int] = DeltaThrottle(min_interval_ms, clock)
        self._list_key = list_key
        self._field_key = field_key
        self._list_depth: int | None = None
        self._current_index = -1
        self._contents: dict[int, str] = {}

    @property
    def contents(self) -> list[str]:
        """Snapshot of every slide's accumulated text, in slide order."""
        return [self._contents[i] for i in sorted(self._contents)]

    def finish(self) -> int | None:
        """Flush pending escape text and return the slide left open, if any."""
        if not self._flush_open_value() or self._kind != "field":
            return None
        return self._current_index

    def _enter_array(self) -> None:
        if self._list_depth is None and self._tracker.pending_key == self._list_key:
            self._list_depth = self._tracker.depth
        self._tracker.enter("array")

    def _exit_array(self) -> None:
        if self._tracker.top == "array" and self._tracker.depth - 1 == self._list_depth:
            self._list_depth = None
        self._tracker.exit("array")

    def _open_value(self) -> None:
        key = self._tracker.pending_key
        self._tracker.take_value_segment()
        if key == self._field_key and self._list_depth is not None:
            self._kind = "field"
            self._current_index += 1
            self._contents.setdefault(self._current_index, "")
        else:
            self._kind = "value"

    def _append(self, text: str) -> None:
        if self._kind != "field":
            self._buffer += text
            return
        index = self._current_index
        self._contents[index] += text
        self._offer(index)

    def _value_closed(self) -> None:
        if self._kind == "field":
            self._offer(self._current_index, force=True)

    def _offer(self, index: int, force: bool = False) -> None:
        content = self._contents[index]
        if self._throttle.offer(index, content, force=force):
            self._on_delta(DeltaEvent(index, content))
