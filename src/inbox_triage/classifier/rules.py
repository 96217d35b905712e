"""Declarative rule tables for the message classifier.

Each rule is a row of data: the reason it reports, the accumulator it feeds,
the points it adds and a predicate over ``MessageFacts``. The engine in
``inbox_triage.classifier.engine`` evaluates the tables generically.

The weights and thresholds were tuned by hand against real inboxes. Changing
them changes which mail gets suggested for deletion.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable

from inbox_triage.utils import normalize_address

if TYPE_CHECKING:
    from inbox_triage.models import Message


class RuleCategory(str, Enum):
    """Accumulator a rule contributes to."""

    KEEP = "keep"
    DELETE = "delete"
    ARCHIVE = "archive"


# --- Decision thresholds ---
KEEP_THRESHOLD = 50
KEEP_CONFIDENCE_SCALE = 100
DELETE_MIN_SCORE = 25
DELETE_CONFIDENCE_SCALE = 80
ARCHIVE_MIN_SCORE = 20
ARCHIVE_CONFIDENCE_SCALE = 60
NET_DELETE_ARCHIVE_WEIGHT = 0.5  # netDelete = delete - 0.5 * archive
NET_ARCHIVE_DELETE_WEIGHT = 0.3  # netArchive = archive - 0.3 * delete
FALLBACK_KEEP_CONFIDENCE = 0.3
FALLBACK_KEEP_REASON = "No clear delete/archive signals"

# --- Age thresholds (days) ---
RECENT_DAYS = 7
OLD_NOTIFICATION_DAYS = 7
EXPIRED_NOTIFICATION_DAYS = 14

# --- Gmail labels ---
LABEL_STARRED = "STARRED"
LABEL_PROMOTIONS = "CATEGORY_PROMOTIONS"
LABEL_UPDATES = "CATEGORY_UPDATES"
LABEL_SOCIAL = "CATEGORY_SOCIAL"
LABEL_PURCHASES = "CATEGORY_PURCHASES"
LABEL_IMPORTANT = "IMPORTANT"
PROMO_LABELS = frozenset({LABEL_PROMOTIONS, LABEL_UPDATES, LABEL_SOCIAL})

# --- Sender domains (substring match against the sender address) ---
FINANCIAL_DOMAINS = (
    "chase",
    "bankofamerica",
    "wellsfargo",
    "citi",
    "capitalone",
    "amex",
    "americanexpress",
    "discover",
    "paypal",
    "venmo",
    "zelle",
    "fidelity",
    "vanguard",
    "schwab",
    "etrade",
    "robinhood",
)

INSURANCE_DOMAINS = (
    "geico",
    "statefarm",
    "progressive",
    "allstate",
    "libertymutual",
    "usaa",
    "nationwide",
    "aetna",
    "cigna",
    "anthem",
    "bluecross",
    "united",
    "kaiser",
    "humana",
)

MEDICAL_DOMAINS = (
    "mychart",
    "patient",
    "health",
    "medical",
    "hospital",
    "clinic",
    "doctor",
    "pharmacy",
    "cvs",
    "walgreens",
)

LEGAL_DOMAINS = ("legal", "law", "attorney", "lawyer", "court")


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


AUTOMATED_SENDER_PATTERNS = _compile(
    r"noreply",
    r"no-reply",
    r"marketing",
    r"newsletter",
    r"promo",
    r"deals",
    r"offers",
    r"sales",
    r"info@",
    r"hello@",
    r"support@",
)

PROMOTIONAL_SUBJECT_PATTERNS = _compile(
    r"unsubscribe",
    r"\d+%\s*off",
    r"limited\s*time",
    r"sale\s*ends",
    r"flash\s*sale",
    r"don't\s*miss",
    r"last\s*chance",
    r"act\s*now",
    r"exclusive\s*offer",
    r"free\s*shipping",
    r"order\s*now",
    r"shop\s*now",
    r"buy\s*now",
    r"save\s*\$",
    r"clearance",
    r"black\s*friday",
    r"cyber\s*monday",
    r"daily\s*deal",
    r"weekly\s*digest",
    r"newsletter",
)

TRANSIENT_CONTENT_PATTERNS = _compile(
    r"verification\s*code",
    r"verify\s*your",
    r"reset\s*your\s*password",
    r"one-time\s*password",
    r"otp",
    r"security\s*code",
    r"login\s*code",
    r"confirm\s*your\s*email",
    r"package\s*(has\s*been\s*)?delivered",
    r"your\s*order\s*(has\s*)?(been\s*)?shipped",
    r"tracking\s*(number|update)",
)

RECORD_SUBJECT_PATTERNS = _compile(
    r"receipt",
    r"invoice",
    r"confirmation",
    r"itinerary",
    r"booking",
    r"reservation",
    r"statement",
    r"bill",
    r"payment",
    r"order\s*#",
    r"order\s*confirmation",
    r"your\s*order",
    r"claim",
    r"policy",
    r"contract",
    r"agreement",
    r"tax",
    r"w-?2",
    r"1099",
)


def matches_any(text: str, patterns: Iterable[re.Pattern[str]]) -> bool:
    return any(p.search(text) for p in patterns)


def contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(n in text for n in needles)


@dataclass(frozen=True)
class MessageFacts:
    """Pre-computed, normalized view of a message for rule predicates."""

    sender: str
    subject: str
    text: str
    labels: frozenset[str]
    days_old: int
    is_starred: bool
    is_unread: bool
    has_list_unsubscribe: bool
    has_attachments: bool
    thread_message_count: int
    user_email: str

    @classmethod
    def from_message(cls, message: Message, *, now: datetime, user_email: str | None = None) -> MessageFacts:
        subject = message.subject or ""
        snippet = message.snippet or ""
        return cls(
            sender=normalize_address(message.sender.email),
            subject=subject,
            text=f"{subject} {snippet}",
            labels=frozenset(message.labels),
            days_old=(now - message.date) // timedelta(days=1),
            is_starred=message.is_starred,
            is_unread=message.is_unread,
            has_list_unsubscribe=message.has_list_unsubscribe,
            has_attachments=message.has_attachments,
            thread_message_count=message.thread_message_count,
            user_email=normalize_address(user_email),
        )

    @property
    def is_transient(self) -> bool:
        return matches_any(self.text, TRANSIENT_CONTENT_PATTERNS)


@dataclass(frozen=True)
class Rule:
    """One row of a scoring table."""

    reason: str
    category: RuleCategory
    points: int
    test: Callable[[MessageFacts], bool]

    def matches(self, facts: MessageFacts) -> bool:
        return bool(self.test(facts))


def label_rule(category: RuleCategory, label: str, points: int, reason: str) -> Rule:
    return Rule(reason, category, points, lambda f: label in f.labels)


def subject_rule(
    category: RuleCategory,
    patterns: tuple[re.Pattern[str], ...],
    points: int,
    reason: str,
) -> Rule:
    return Rule(reason, category, points, lambda f: matches_any(f.subject, patterns))


def sender_domain_rule(domains: tuple[str, ...], points: int, reason: str) -> Rule:
    return Rule(reason, RuleCategory.ARCHIVE, points, lambda f: contains_any(f.sender, domains))


KEEP_RULES: tuple[Rule, ...] = (
    Rule(
        "Starred email",
        RuleCategory.KEEP,
        100,
        lambda f: f.is_starred or LABEL_STARRED in f.labels,
    ),
    Rule("Less than 7 days old", RuleCategory.KEEP, 30, lambda f: f.days_old < RECENT_DAYS),
    Rule(
        "Unread email",
        RuleCategory.KEEP,
        40,
        lambda f: f.is_unread and not (f.labels & PROMO_LABELS),
    ),
    Rule(
        "Your own email",
        RuleCategory.KEEP,
        50,
        lambda f: bool(f.user_email) and f.sender == f.user_email,
    ),
)

DELETE_RULES: tuple[Rule, ...] = (
    label_rule(RuleCategory.DELETE, LABEL_PROMOTIONS, 25, "Promotional email"),
    label_rule(RuleCategory.DELETE, LABEL_UPDATES, 15, "Updates/notifications"),
    label_rule(RuleCategory.DELETE, LABEL_SOCIAL, 10, "Social notification"),
    Rule(
        "Marketing email (has unsubscribe)",
        RuleCategory.DELETE,
        20,
        lambda f: f.has_list_unsubscribe,
    ),
    Rule(
        "Automated sender address",
        RuleCategory.DELETE,
        15,
        lambda f: matches_any(f.sender, AUTOMATED_SENDER_PATTERNS),
    ),
    subject_rule(RuleCategory.DELETE, PROMOTIONAL_SUBJECT_PATTERNS, 25, "Promotional subject line"),
    Rule(
        "Expired notification (>14 days)",
        RuleCategory.DELETE,
        35,
        lambda f: f.days_old > EXPIRED_NOTIFICATION_DAYS and f.is_transient,
    ),
    Rule(
        "Old notification",
        RuleCategory.DELETE,
        15,
        lambda f: OLD_NOTIFICATION_DAYS < f.days_old <= EXPIRED_NOTIFICATION_DAYS and f.is_transient,
    ),
)

ARCHIVE_RULES: tuple[Rule, ...] = (
    Rule("Has attachments", RuleCategory.ARCHIVE, 30, lambda f: f.has_attachments),
    sender_domain_rule(FINANCIAL_DOMAINS, 35, "Financial institution"),
    sender_domain_rule(INSURANCE_DOMAINS, 30, "Insurance provider"),
    sender_domain_rule(MEDICAL_DOMAINS, 30, "Healthcare provider"),
    sender_domain_rule(LEGAL_DOMAINS, 35, "Legal correspondence"),
    subject_rule(RuleCategory.ARCHIVE, RECORD_SUBJECT_PATTERNS, 25, "Receipt/confirmation/statement"),
    label_rule(RuleCategory.ARCHIVE, LABEL_PURCHASES, 20, "Purchase-related"),
    label_rule(RuleCategory.ARCHIVE, LABEL_IMPORTANT, 15, "Marked as important"),
    Rule(
        "Part of conversation thread",
        RuleCategory.ARCHIVE,
        20,
        lambda f: f.thread_message_count > 1,
    ),
)
