"""End-of-session summary text."""

from __future__ import annotations

from dataclasses import dataclass, field

from inbox_triage.models import SessionMode
from inbox_triage.session.state import SessionStats

_NOTHING_LEFT = {
    SessionMode.DELETE: "No more promotional emails to delete.",
    SessionMode.ARCHIVE: "No more emails to archive.",
    SessionMode.UNSUBSCRIBE: "No more mailing lists to unsubscribe from.",
}


def plural(count: int, word: str = "email") -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


@dataclass(frozen=True)
class SessionSummary:
    """What the completion screen shows."""

    headline: str
    detail: str
    counts: list[tuple[str, int]] = field(default_factory=list)


def summarize(stats: SessionStats, mode: SessionMode) -> SessionSummary:
    total = stats.total
    if total == 0:
        return SessionSummary(headline="All clean!", detail=_NOTHING_LEFT[mode])

    counts = [
        (label, count)
        for label, count in (
            ("deleted", stats.deleted),
            ("archived", stats.archived),
            ("unsubscribed", stats.unsubscribed),
        )
        if count > 0
    ]
    return SessionSummary(
        headline="Great job!",
        detail=f"You cleaned up {plural(total)} this session.",
        counts=counts,
    )
