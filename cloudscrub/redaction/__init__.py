"""
Redaction - removal of sensitive content from CloudWatch log messages.

Architecture:
    - Redactor: applies a rule set to one message and reports whether it changed
    - rules: PatternRule, StructuredPathRule and PiiRule definitions

Example:
    from cloudscrub.redaction import PatternRule, Redactor

    redactor = Redactor(pattern_rule=PatternRule("is"))
    message, changed = redactor.redact("this is IT!")
    # message: "th  IT!"
    # changed: True
"""

from .engine import Redactor, apply_pattern, apply_structured
from .rules import PatternRule, PiiRule, StructuredPathRule

__all__ = [
    "Redactor",
    "apply_pattern",
    "apply_structured",
    "PatternRule",
    "PiiRule",
    "StructuredPathRule",
]
