"""
Redaction rules - what a Redactor removes from a message.

Every rule only deletes content. A message never grows as a result of
applying a rule, so the byte counts reported per stream show how much
sensitive content was removed.

Rule kinds:
    - PatternRule: a literal substring or regular expression
    - StructuredPathRule: a JSONPath expression selecting nodes of a JSON message
    - PiiRule: spans that scrubadub's detectors flag as PII
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Pattern, Union

import scrubadub
from jsonpath_ng.ext import parse as parse_jsonpath

logger = logging.getLogger(__name__)


@dataclass
class PatternRule:
    """A literal (plain match) or compiled regex whose matches are deleted."""
    pattern: Union[str, Pattern[str]]

    def apply(self, message: str) -> tuple[str, bool]:
        if isinstance(self.pattern, str):
            if not self.pattern:
                return message, False
            result = message.replace(self.pattern, "")
        else:
            result = self.pattern.sub("", message)
        return result, result != message


@dataclass
class StructuredPathRule:
    """
    A JSONPath expression identifying nodes to delete from a parsed document.

    Uses jsonpath-ng's extended parser, so filter expressions such as
    ``$.users[?(@.admin == true)]`` are accepted along with plain paths like
    ``$..password``.
    """
    expression: str
    _compiled: Any = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self._compiled = parse_jsonpath(self.expression)

    def matches(self, document: Any) -> bool:
        return bool(self._compiled.find(document))

    def delete(self, document: Any) -> Any:
        """Remove every matching node in place; returns the document."""
        list_removals: dict[int, tuple[list, set[int]]] = {}

        for match in self._compiled.find(document):
            parent = match.context.value if match.context is not None else None
            if isinstance(parent, dict):
                for key in getattr(match.path, "fields", ()):
                    parent.pop(key, None)
            elif isinstance(parent, list) and parent:
                entry = list_removals.setdefault(id(parent), (parent, set()))
                entry[1].add(_list_index(match.path) % len(parent))

        # Back to front so earlier indexes stay valid
        for parent, indexes in list_removals.values():
            for index in sorted(indexes, reverse=True):
                del parent[index]

        return document


def _list_index(path: Any) -> int:
    # jsonpath-ng >= 1.7 stores indexes as a tuple
    indices = getattr(path, "indices", None)
    return indices[0] if indices else path.index


class PiiRule:
    """
    Delete spans detected by scrubadub (emails, credentials, URLs, ...).

    Unlike scrubadub's own ``clean()``, which substitutes placeholders such as
    ``{{EMAIL}}``, the detected text is removed outright.
    """

    def __init__(self, scrubber: "scrubadub.Scrubber | None" = None):
        self._scrubber = scrubber or scrubadub.Scrubber()

    def apply(self, message: str) -> tuple[str, bool]:
        if not message:
            return message, False

        try:
            spans = sorted((f.beg, f.end) for f in self._scrubber.iter_filth(message))
        except Exception as e:
            logger.warning(f"Scrubadub error (leaving message unchanged): {e}")
            return message, False

        if not spans:
            return message, False

        pieces = []
        cursor = 0
        for beg, end in spans:
            if beg > cursor:
                pieces.append(message[cursor:beg])
            cursor = max(cursor, end)
        pieces.append(message[cursor:])

        result = "".join(pieces)
        return result, result != message
