"""
Compact JSON decoding and encoding for scrubbed messages and records.

Re-encoding a scrubbed document must not make it longer than the message it
came from. The standard encoder rewrites number literals (``1e22`` becomes
``1e+22``, ``1e999`` becomes ``Infinity``), so numbers are decoded into
int/float subclasses that remember the text they were parsed from, and the
encoder writes that text back. Lone surrogate escapes (``"\\ud800"``) are
written back as escapes, since the raw character cannot be encoded as UTF-8.
"""

import json
import re
from typing import Any, Iterator

_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")


class FloatLiteral(float):
    """A float that re-encodes as the literal it was parsed from."""

    def __new__(cls, text: str):
        value = super().__new__(cls, text)
        value.literal = text
        return value


class IntLiteral(int):
    """An int that re-encodes as the literal it was parsed from."""

    def __new__(cls, text: str):
        value = super().__new__(cls, text)
        value.literal = text
        return value


def decode_document(text: str) -> Any:
    """
    Parse JSON text, keeping number literals.

    Raises:
        ValueError: If the text is not valid JSON.
        TypeError: If the text is not a string.
    """
    return json.loads(
        text,
        parse_float=FloatLiteral,
        parse_int=IntLiteral,
        parse_constant=FloatLiteral,
    )


def _escape_surrogate(match: re.Match) -> str:
    return f"\\u{ord(match.group()):04x}"


def _iterencode(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        yield "{"
        for index, (key, item) in enumerate(value.items()):
            if index:
                yield ","
            yield json.dumps(key if isinstance(key, str) else str(key), ensure_ascii=False)
            yield ":"
            yield from _iterencode(item)
        yield "}"
    elif isinstance(value, (list, tuple)):
        yield "["
        for index, item in enumerate(value):
            if index:
                yield ","
            yield from _iterencode(item)
        yield "]"
    elif isinstance(value, (IntLiteral, FloatLiteral)):
        yield value.literal
    else:
        yield json.dumps(value, ensure_ascii=False)


def encode_document(document: Any) -> str:
    """Compact JSON without ASCII escaping; always encodable as UTF-8."""
    return _SURROGATE_RE.sub(_escape_surrogate, "".join(_iterencode(document)))
