"""Rule-based message classifier."""

from inbox_triage.classifier.engine import (
    ClassificationContext,
    classify,
    classify_for_mode,
    classify_for_unsubscribe,
    evaluate,
)
from inbox_triage.classifier.rules import ARCHIVE_RULES, DELETE_RULES, KEEP_RULES, MessageFacts, Rule

__all__ = [
    "ARCHIVE_RULES",
    "ClassificationContext",
    "DELETE_RULES",
    "KEEP_RULES",
    "MessageFacts",
    "Rule",
    "classify",
    "classify_for_mode",
    "classify_for_unsubscribe",
    "evaluate",
]
