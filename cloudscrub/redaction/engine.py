"""
Redactor - removes sensitive content from a single log message.

Rules run in a fixed order for every event:
1. Structured path rules, on a JSON parse of the message
2. The pattern rule, on the resulting text
3. PII detection (scrubadub), on the resulting text

Structured rules go first: substituting text inside a document that has
already been parsed and re-encoded can break its syntax, while substituting
before parsing can only make the parse fail, which is handled by leaving the
message untouched.
"""

import logging
from typing import Any, Iterable, Optional

from ..jsoncodec import decode_document, encode_document
from .rules import PatternRule, PiiRule, StructuredPathRule

logger = logging.getLogger(__name__)


def apply_pattern(message: str, rule: Optional[PatternRule]) -> tuple[str, bool]:
    """
    Remove all occurrences of a pattern from a message.

    Returns:
        A tuple of (new_message, changed). ``changed`` is True only when the
        result differs from the input.

    Example:
        apply_pattern("this is IT!", PatternRule("is"))
        # ("th  IT!", True)
    """
    if rule is None:
        return message, False
    return rule.apply(message)


def apply_structured(
    message: str,
    rules: Iterable[StructuredPathRule],
    raw_output: bool = False,
) -> tuple[Any, bool]:
    """
    Delete nodes matching JSONPath rules from a JSON message.

    Args:
        message: The log message, possibly a JSON document.
        rules: Structured path rules to apply, in order.
        raw_output: Return the decoded document instead of a string.

    Returns:
        A tuple of (result, changed). If the message is not valid JSON it is
        returned unchanged with ``changed=False``. Otherwise ``result`` is the
        decoded document when ``raw_output`` is set, the re-encoded document
        when anything was deleted, or the original string when nothing was.
    """
    rules = list(rules)
    if not rules and not raw_output:
        return message, False

    try:
        document = decode_document(message)
    except (TypeError, ValueError) as e:
        logger.debug(f"JSON parser failure: {e!r}")
        return message, False

    changed = False
    for rule in rules:
        # Find before deleting so untouched messages are not re-encoded
        if rule.matches(document):
            changed = True
            document = rule.delete(document)

    if raw_output:
        return document, changed
    if changed:
        return encode_document(document), True
    return message, False


class Redactor:
    """
    Applies a configured rule set to messages.

    Example:
        redactor = Redactor(
            structured_rules=[StructuredPathRule("$..password")],
            pattern_rule=PatternRule(re.compile(r"AKIA[A-Z0-9]{16}")),
        )
        message, changed = redactor.redact('{"user": "bob", "password": "x"}')
        # message: '{"user":"bob"}'
        # changed: True
    """

    def __init__(
        self,
        structured_rules: Optional[Iterable[StructuredPathRule]] = None,
        pattern_rule: Optional[PatternRule] = None,
        pii_rule: Optional[PiiRule] = None,
    ):
        self.structured_rules = list(structured_rules or [])
        self.pattern_rule = pattern_rule
        self.pii_rule = pii_rule

    @classmethod
    def from_config(cls, config) -> "Redactor":
        """Build a Redactor from a ScrubConfig."""
        return cls(
            structured_rules=[StructuredPathRule(p) for p in config.scrub_jsonpaths],
            pattern_rule=PatternRule(config.scrub_pattern) if config.scrub_pattern else None,
            pii_rule=PiiRule() if config.scrub_pii else None,
        )

    def redact(self, message: str) -> tuple[str, bool]:
        """
        Redact a message.

        Returns:
            A tuple of (redacted_message, was_redacted).
        """
        changed = False

        if self.structured_rules:
            message, did_change = apply_structured(message, self.structured_rules)
            changed = changed or did_change

        if self.pattern_rule is not None:
            message, did_change = apply_pattern(message, self.pattern_rule)
            changed = changed or did_change

        if self.pii_rule is not None:
            message, did_change = self.pii_rule.apply(message)
            changed = changed or did_change

        return message, changed
