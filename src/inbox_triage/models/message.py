"""Message metadata model.

A ``Message`` carries only what the classifier and the review session need:
header-derived fields, provider labels and thread size. Bodies are fetched on
demand through the gateway and never stored on the model.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inbox_triage.utils import clean_snippet, normalize_address


class Sender(BaseModel):
    """Display name and address of a message's sender."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Sender email address")

    @property
    def key(self) -> str:
        """Normalized address used for grouping and sender-level skips."""
        return normalize_address(self.email)


class UnsubscribeTarget(BaseModel):
    """Unsubscribe mechanisms advertised by a message."""

    model_config = ConfigDict(frozen=True)

    urls: tuple[str, ...] = Field(default=(), description="URLs from List-Unsubscribe, in header order")
    mailto: str | None = Field(default=None, description="mailto address from List-Unsubscribe")
    mailto_subject: str | None = Field(default=None, description="Subject requested by the mailto link")
    one_click: bool = Field(
        default=False,
        description="Whether List-Unsubscribe-Post advertises RFC 8058 one-click",
    )

    @property
    def https_urls(self) -> tuple[str, ...]:
        return tuple(u for u in self.urls if u.lower().startswith("https://"))

    @property
    def is_actionable(self) -> bool:
        """True when at least one mechanism can actually be dispatched."""
        return bool(self.https_urls or self.mailto)


class Message(BaseModel):
    """Immutable metadata for a single fetched message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique, stable message ID")
    thread_id: str = Field(default="", description="Conversation ID")
    sender: Sender = Field(default_factory=Sender, description="Parsed From header")
    subject: str = Field(default="", description="Subject header")
    snippet: str = Field(default="", description="Provider snippet, cleaned of invisible characters")
    date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Message timestamp (UTC)",
    )
    labels: frozenset[str] = Field(default=frozenset(), description="Provider label IDs")
    has_attachments: bool = Field(default=False, description="Whether any MIME part is a file")
    has_list_unsubscribe: bool = Field(default=False, description="Whether List-Unsubscribe is present")
    unsubscribe_target: UnsubscribeTarget | None = Field(
        default=None,
        description="Parsed unsubscribe mechanisms, when advertised",
    )
    is_unread: bool = Field(default=False, description="Whether message is unread")
    is_starred: bool = Field(default=False, description="Whether message is starred")
    thread_message_count: int = Field(
        default=1,
        ge=0,
        description="Number of messages in the same conversation",
    )

    @field_validator("snippet", mode="before")
    @classmethod
    def _clean_snippet(cls, value: object) -> str:
        return clean_snippet(value if isinstance(value, str) else "")

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def sender_key(self) -> str:
        return self.sender.key
