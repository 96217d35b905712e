"""Custom exceptions for Inbox Triage."""


class InboxTriageError(Exception):
    """Base exception for all Inbox Triage errors."""


class ConfigurationError(InboxTriageError):
    """Exception raised for configuration related errors."""


class AuthenticationError(InboxTriageError):
    """Exception raised for authentication failures."""


class GmailAPIError(InboxTriageError):
    """Exception raised for Gmail API related errors."""


class RateLimitError(GmailAPIError):
    """Exception raised when Gmail rejects a request for rate limiting."""


class PermissionDeniedError(GmailAPIError):
    """Exception raised when the token lacks access to a resource."""


class MessageNotFoundError(GmailAPIError):
    """Exception raised when a message or thread no longer exists."""


class UnsubscribeError(InboxTriageError):
    """Exception raised when a single unsubscribe attempt fails."""
