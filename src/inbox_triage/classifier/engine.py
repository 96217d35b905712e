"""Rule evaluation and the action decision.

``classify`` chooses among delete/archive/keep for the delete and archive
modes; ``classify_for_unsubscribe`` chooses between unsubscribe and keep.
Both are pure: the same message, context and clock always give the same
result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from inbox_triage.classifier.rules import (
    ARCHIVE_CONFIDENCE_SCALE,
    ARCHIVE_MIN_SCORE,
    ARCHIVE_RULES,
    DELETE_CONFIDENCE_SCALE,
    DELETE_MIN_SCORE,
    DELETE_RULES,
    FALLBACK_KEEP_CONFIDENCE,
    FALLBACK_KEEP_REASON,
    KEEP_CONFIDENCE_SCALE,
    KEEP_RULES,
    KEEP_THRESHOLD,
    NET_ARCHIVE_DELETE_WEIGHT,
    NET_DELETE_ARCHIVE_WEIGHT,
    MessageFacts,
    Rule,
)
from inbox_triage.models import (
    Action,
    Classification,
    ClassifiedMessage,
    Message,
    SessionMode,
    with_classification,
)

NO_UNSUBSCRIBE_REASON = "No working unsubscribe link"


@dataclass(frozen=True)
class ClassificationContext:
    """Per-session inputs to the classifier.

    Attributes:
        user_email: The account owner's address, used to spot self-sent mail.
        now: Reference time for age rules. Defaults to the current UTC time.
    """

    user_email: str | None = None
    now: datetime | None = None

    def reference_time(self) -> datetime:
        if self.now is None:
            return datetime.now(timezone.utc)
        if self.now.tzinfo is None:
            return self.now.replace(tzinfo=timezone.utc)
        return self.now


@dataclass
class ScoreCard:
    """Points and matched reasons accumulated from one rule table."""

    points: int = 0
    reasons: list[str] = field(default_factory=list)


def evaluate(rules: tuple[Rule, ...], facts: MessageFacts) -> ScoreCard:
    """Run every rule in a table and accumulate the matches."""
    card = ScoreCard()
    for rule in rules:
        if rule.matches(facts):
            card.points += rule.points
            card.reasons.append(rule.reason)
    card.reasons = list(dict.fromkeys(card.reasons))
    return card


def _confidence(points: float, scale: float) -> float:
    return max(0.0, min(points / scale, 1.0))


def _facts(message: Message, context: ClassificationContext | None) -> MessageFacts:
    context = context or ClassificationContext()
    return MessageFacts.from_message(
        message,
        now=context.reference_time(),
        user_email=context.user_email,
    )


def _keep(card: ScoreCard) -> Classification:
    return Classification(
        action=Action.KEEP,
        confidence=_confidence(card.points, KEEP_CONFIDENCE_SCALE),
        reasons=card.reasons,
    )


def classify(message: Message, context: ClassificationContext | None = None) -> Classification:
    """Suggest delete, archive or keep for a message.

    Keep rules run first and win outright at ``KEEP_THRESHOLD`` points.
    Otherwise delete and archive scores are offset against each other and the
    stronger one wins if it clears its minimum; with no clear signal the
    message is kept at low confidence.
    """
    facts = _facts(message, context)

    keep = evaluate(KEEP_RULES, facts)
    if keep.points >= KEEP_THRESHOLD:
        return _keep(keep)

    delete = evaluate(DELETE_RULES, facts)
    archive = evaluate(ARCHIVE_RULES, facts)

    net_delete = delete.points - NET_DELETE_ARCHIVE_WEIGHT * archive.points
    net_archive = archive.points - NET_ARCHIVE_DELETE_WEIGHT * delete.points

    if net_delete > net_archive and delete.points >= DELETE_MIN_SCORE:
        return Classification(
            action=Action.DELETE,
            confidence=_confidence(delete.points, DELETE_CONFIDENCE_SCALE),
            reasons=delete.reasons,
        )

    if net_archive > 0 and archive.points >= ARCHIVE_MIN_SCORE:
        return Classification(
            action=Action.ARCHIVE,
            confidence=_confidence(archive.points, ARCHIVE_CONFIDENCE_SCALE),
            reasons=archive.reasons,
        )

    return Classification(
        action=Action.KEEP,
        confidence=FALLBACK_KEEP_CONFIDENCE,
        reasons=[FALLBACK_KEEP_REASON],
    )


def classify_for_unsubscribe(
    message: Message,
    context: ClassificationContext | None = None,
) -> Classification:
    """Suggest unsubscribe or keep for a message.

    A message is an unsubscribe candidate when it advertises a mechanism that
    can be dispatched (an HTTPS URL or a mailto address) and the keep rules
    do not protect it. Confidence and reasons come from the delete table.
    """
    facts = _facts(message, context)

    keep = evaluate(KEEP_RULES, facts)
    if keep.points >= KEEP_THRESHOLD:
        return _keep(keep)

    target = message.unsubscribe_target
    if not (message.has_list_unsubscribe and target is not None and target.is_actionable):
        return Classification(
            action=Action.KEEP,
            confidence=FALLBACK_KEEP_CONFIDENCE,
            reasons=[NO_UNSUBSCRIBE_REASON],
        )

    delete = evaluate(DELETE_RULES, facts)
    return Classification(
        action=Action.UNSUBSCRIBE,
        confidence=_confidence(delete.points, DELETE_CONFIDENCE_SCALE),
        reasons=delete.reasons,
    )


def classify_for_mode(
    message: Message,
    mode: SessionMode,
    context: ClassificationContext | None = None,
) -> ClassifiedMessage:
    """Classify with the entry point that matches a session mode."""
    if mode is SessionMode.UNSUBSCRIBE:
        classification = classify_for_unsubscribe(message, context)
    else:
        classification = classify(message, context)
    return with_classification(message, classification)
