"""Provider gateway contract consumed by the review session."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from inbox_triage.classifier import ClassificationContext, classify_for_mode
from inbox_triage.models import (
    ClassifiedMessage,
    Message,
    MessageBody,
    MessagePage,
    SessionMode,
    UnsubscribeReport,
    UnsubscribeRequest,
)


class ProviderGateway(Protocol):
    """Lists, fetches and mutates messages at the mail provider."""

    async def list_messages(self, mode: SessionMode, page_token: str | None = None) -> MessagePage:
        """Return one page of candidates for ``mode``, grouped by sender."""
        ...

    async def commit_delete(self, ids: Sequence[str]) -> None:
        """Permanently remove messages. Idempotent."""
        ...

    async def commit_archive(self, ids: Sequence[str]) -> None:
        """Remove messages from the inbox without deleting them. Idempotent."""
        ...

    async def commit_unsubscribe(self, items: Sequence[UnsubscribeRequest]) -> UnsubscribeReport:
        """Unsubscribe per item; partial failure is reported, never raised."""
        ...

    async def get_message_body(self, message_id: str) -> MessageBody:
        """Fetch the full content of a message."""
        ...


def build_candidates(
    messages: Iterable[Message],
    mode: SessionMode,
    context: ClassificationContext | None = None,
) -> list[ClassifiedMessage]:
    """Classify messages for a mode, keep the mode's action and group by sender.

    The sort is stable, so messages from one sender keep their listing order.
    """
    classified = (classify_for_mode(m, mode, context) for m in messages)
    candidates = [m for m in classified if m.classification.action == mode.action]
    candidates.sort(key=lambda m: m.sender_key)
    return candidates
