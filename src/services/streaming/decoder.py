"""Incremental decoder for the body of one JSON string literal."""

from __future__ import annotations


_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_REPLACEMENT = "\ufffd"


class JsonStringDecoder:
    """Decode a string literal one character at a time.

    Feed every character after the opening quote. ``feed`` returns the decoded
    text produced by that character (often empty while an escape is pending)
    and sets ``closed`` once the unescaped closing quote arrives.

    ``\\uXXXX`` escapes are buffered until exactly four hex digits are seen.
    A non-hex character in the middle of one flushes the literal ``\\u`` plus
    the digits read so far and is then decoded as an ordinary character, so a
    quote still terminates the string. UTF-16 surrogate pairs are joined and
    unpaired surrogates decode to U+FFFD.
    """

    def __init__(self) -> None:
        self.closed = False
        self._escape = False
        self._unicode: str | None = None
        self._high_surrogate: str | None = None

    def feed(self, char: str) -> str:
        if self.closed:
            return ""
        if self._unicode is not None:
            if char in _HEX_DIGITS:
                self._unicode += char
                if len(self._unicode) < 4:
                    return ""
                code_unit = int(self._unicode, 16)
                self._unicode = None
                return self._code_unit(code_unit)
            literal = "\\u" + self._unicode
            self._unicode = None
            return self._emit(literal) + self.feed(char)
        if self._escape:
            self._escape = False
            if char == "u":
                self._unicode = ""
                return ""
            return self._emit(_SIMPLE_ESCAPES.get(char, char))
        if char == "\\":
            self._escape = True
            return ""
        if char == '"':
            self.closed = True
            return self._emit("")
        return self._emit(char)

    def flush(self) -> str:
        """Literal text of any escape left open by a truncated stream."""
        pending = ""
        if self._escape:
            pending = "\\"
        elif self._unicode is not None:
            pending = "\\u" + self._unicode
        self._escape = False
        self._unicode = None
        return self._emit(pending)

    def _code_unit(self, code_unit: int) -> str:
        if 0xD800 <= code_unit <= 0xDBFF:
            prefix = self._emit("")
            self._high_surrogate = chr(code_unit)
            return prefix
        if 0xDC00 <= code_unit <= 0xDFFF:
            if self._high_surrogate is None:
                return _REPLACEMENT
            high = ord(self._high_surrogate)
            self._high_surrogate = None
            return chr(0x10000 + ((high - 0xD800) << 10) + (code_unit - 0xDC00))
        return self._emit(chr(code_unit))

    def _emit(self, text: str) -> str:
        if self._high_surrogate is None:
            return text
        self._high_surrogate = None
        return _REPLACEMENT + text
