"""Unsubscribe dispatch over HTTP and mailto."""

from inbox_triage.unsubscribe.dispatcher import UnsubscribeDispatcher

__all__ = ["UnsubscribeDispatcher"]
