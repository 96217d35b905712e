"""Data models for Inbox Triage.

This module contains Pydantic models for data validation and serialization,
plus the small frozen value types exchanged with the provider gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from inbox_triage.models.message import Message, Sender, UnsubscribeTarget


class Action(str, Enum):
    """Suggested action for a message."""

    DELETE = "delete"
    ARCHIVE = "archive"
    KEEP = "keep"
    UNSUBSCRIBE = "unsubscribe"


class SessionMode(str, Enum):
    """Browsing mode of a review session."""

    DELETE = "delete"
    ARCHIVE = "archive"
    UNSUBSCRIBE = "unsubscribe"

    @property
    def action(self) -> Action:
        """The classification action a message needs to appear in this mode."""
        return Action(self.value)


class Classification(BaseModel):
    """Classifier verdict for one message."""

    model_config = ConfigDict(frozen=True)

    action: Action = Field(description="Suggested action")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence score")
    reasons: list[str] = Field(
        default_factory=list,
        description="Names of the rules that fired for the chosen action, in order",
    )


class ClassifiedMessage(Message):
    """A message together with the classification it was fetched with."""

    classification: Classification = Field(description="Classifier verdict")


def with_classification(message: Message, classification: Classification) -> ClassifiedMessage:
    """Attach a classification to a message, superseding any previous one."""
    data = dict(message)
    data["classification"] = classification
    return ClassifiedMessage(**data)


class MessageBody(BaseModel):
    """Full content of a message for the detail view."""

    body_text: str = Field(default="", description="Decoded body (HTML or plain text)")
    is_html: bool = Field(default=False, description="Whether body_text is HTML")
    to: str = Field(default="", description="Raw To header")


@dataclass(frozen=True)
class MessagePage:
    """One page of listing results."""

    messages: list[Message] = field(default_factory=list)
    next_page_token: str | None = None


@dataclass(frozen=True)
class UnsubscribeRequest:
    """A message selected for unsubscribing, with its advertised mechanisms."""

    message_id: str
    target: UnsubscribeTarget


@dataclass(frozen=True)
class UnsubscribeAttempt:
    """Outcome of unsubscribing through one message."""

    message_id: str
    succeeded: bool
    method: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class UnsubscribeReport:
    """Per-item breakdown of an unsubscribe batch."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    attempts: list[UnsubscribeAttempt] = field(default_factory=list)


__all__ = [
    "Action",
    "Classification",
    "ClassifiedMessage",
    "Message",
    "MessageBody",
    "MessagePage",
    "Sender",
    "SessionMode",
    "UnsubscribeAttempt",
    "UnsubscribeReport",
    "UnsubscribeRequest",
    "UnsubscribeTarget",
    "with_classification",
]
