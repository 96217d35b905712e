"""Gmail API access: async client and message parsing."""

from inbox_triage.gmail.client import GmailClient
from inbox_triage.gmail.parsing import message_to_body, message_to_model

__all__ = ["GmailClient", "message_to_body", "message_to_model"]
