"""In-process provider gateway.

Serves a fixed list of messages with numeric page tokens and applies the
same classification and filtering as the Gmail gateway. Commits are recorded
instead of sent anywhere, and a failure can be armed for the next commit.
Useful for tests and for building a presentation layer without a mailbox.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import structlog

from inbox_triage.classifier import ClassificationContext
from inbox_triage.exceptions import GmailAPIError, MessageNotFoundError
from inbox_triage.gateway.base import build_candidates
from inbox_triage.models import (
    Message,
    MessageBody,
    MessagePage,
    SessionMode,
    UnsubscribeReport,
    UnsubscribeRequest,
)

logger = structlog.get_logger()


class InMemoryGateway:
    """Provider gateway over an in-memory list of messages."""

    def __init__(
        self,
        messages: Sequence[Message],
        *,
        page_size: int = 50,
        user_email: str | None = None,
        now: datetime | None = None,
        bodies: dict[str, MessageBody] | None = None,
    ) -> None:
        self.messages = list(messages)
        self.page_size = page_size
        self.context = ClassificationContext(user_email=user_email, now=now)
        self.bodies = dict(bodies or {})

        self.deleted: list[str] = []
        self.archived: list[str] = []
        self.unsubscribed: list[str] = []
        self.unsubscribe_failures: set[str] = set()
        self.list_calls: list[tuple[SessionMode, str | None]] = []

        self._commit_error: Exception | None = None
        self._list_error: Exception | None = None

    def fail_next_commit(self, error: Exception | None = None) -> None:
        """Make the next delete/archive/unsubscribe commit raise ``error``."""
        self._commit_error = error or GmailAPIError("network error")

    def fail_next_list(self, error: Exception | None = None) -> None:
        """Make the next listing call raise ``error``."""
        self._list_error = error or GmailAPIError("network error")

    async def list_messages(self, mode: SessionMode, page_token: str | None = None) -> MessagePage:
        self.list_calls.append((mode, page_token))
        if self._list_error is not None:
            error, self._list_error = self._list_error, None
            raise error

        start = int(page_token) if page_token else 0
        end = start + self.page_size
        page = self.messages[start:end]
        next_page_token = str(end) if end < len(self.messages) else None

        candidates = build_candidates(page, mode, self.context)
        logger.debug(
            "memory_page_listed",
            mode=mode.value,
            start=start,
            candidates=len(candidates),
            has_more=next_page_token is not None,
        )
        return MessagePage(messages=list(candidates), next_page_token=next_page_token)

    async def commit_delete(self, ids: Sequence[str]) -> None:
        self._raise_armed_error()
        self.deleted.extend(ids)

    async def commit_archive(self, ids: Sequence[str]) -> None:
        self._raise_armed_error()
        self.archived.extend(ids)

    async def commit_unsubscribe(self, items: Sequence[UnsubscribeRequest]) -> UnsubscribeReport:
        self._raise_armed_error()
        report = UnsubscribeReport()
        for item in items:
            if item.message_id in self.unsubscribe_failures:
                report.failed.append(item.message_id)
            else:
                report.succeeded.append(item.message_id)
                self.unsubscribed.append(item.message_id)
        return report

    async def get_message_body(self, message_id: str) -> MessageBody:
        if message_id in self.bodies:
            return self.bodies[message_id]
        for message in self.messages:
            if message.id == message_id:
                return MessageBody(body_text=message.snippet, is_html=False)
        raise MessageNotFoundError(f"message {message_id} not found")

    def _raise_armed_error(self) -> None:
        if self._commit_error is not None:
            error, self._commit_error = self._commit_error, None
            raise error
