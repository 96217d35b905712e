"""Batched review sessions."""

from inbox_triage.session.controller import CommitOutcome, Notification, SessionController
from inbox_triage.session.state import SessionSnapshot, SessionState, SessionStats
from inbox_triage.session.summary import SessionSummary, summarize
from inbox_triage.session.transaction import optimistic_update

__all__ = [
    "CommitOutcome",
    "Notification",
    "SessionController",
    "SessionSnapshot",
    "SessionState",
    "SessionStats",
    "SessionSummary",
    "optimistic_update",
    "summarize",
]
