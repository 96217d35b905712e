"""Inbox Triage - batch review and cleanup of a Gmail inbox.

This package classifies messages into delete, archive, keep and unsubscribe
suggestions and drives a batched review session that commits the user's
choices through the Gmail API.
"""

__version__ = "0.1.0"

from inbox_triage.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
