"""Gmail-backed provider gateway."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Sequence

import structlog

from inbox_triage.classifier import ClassificationContext
from inbox_triage.config import Settings
from inbox_triage.exceptions import MessageNotFoundError
from inbox_triage.gateway.base import build_candidates
from inbox_triage.gmail.client import GmailClient
from inbox_triage.gmail.parsing import METADATA_HEADERS, message_to_body, message_to_model
from inbox_triage.models import (
    Message,
    MessageBody,
    MessagePage,
    SessionMode,
    UnsubscribeReport,
    UnsubscribeRequest,
)
from inbox_triage.unsubscribe import UnsubscribeDispatcher

logger = structlog.get_logger()


class GmailGateway:
    """Provider gateway over the Gmail REST API.

    Listing fetches metadata and thread size for every message on a page,
    classifies it for the requested mode and returns only the candidates.
    """

    def __init__(
        self,
        client: GmailClient,
        settings: Settings | None = None,
        dispatcher: UnsubscribeDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Authenticated Gmail client.
            settings: Application settings. If None, uses the client's settings.
            dispatcher: Unsubscribe dispatcher. If None, one is built that sends
                mailto requests through ``client``.
            clock: Reference time source for age rules; defaults to now.
        """
        self.client = client
        self.settings = settings or client.settings
        self.dispatcher = dispatcher or UnsubscribeDispatcher(
            client.send_message,
            delay=self.settings.unsubscribe_delay,
            timeout=self.settings.unsubscribe_timeout,
        )
        self._clock = clock
        self._user_email: str | None = self.settings.user_email

    async def list_messages(self, mode: SessionMode, page_token: str | None = None) -> MessagePage:
        query = self.settings.unsubscribe_query if mode is SessionMode.UNSUBSCRIBE else self.settings.list_query
        refs, next_page_token = await self.client.list_message_page(query=query, page_token=page_token)

        semaphore = asyncio.Semaphore(self.settings.gmail_fetch_concurrency)
        fetched = await asyncio.gather(*(self._fetch(ref, semaphore) for ref in refs if ref.get("id")))
        messages = [m for m in fetched if m is not None]

        context = await self._context()
        candidates = build_candidates(messages, mode, context)

        logger.info(
            "gateway_page_listed",
            mode=mode.value,
            fetched=len(messages),
            candidates=len(candidates),
            has_more=next_page_token is not None,
        )
        return MessagePage(messages=list(candidates), next_page_token=next_page_token)

    async def commit_delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        await self.client.batch_delete(list(ids))

    async def commit_archive(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        await self.client.batch_archive(list(ids))

    async def commit_unsubscribe(self, items: Sequence[UnsubscribeRequest]) -> UnsubscribeReport:
        return await self.dispatcher.dispatch(items)

    async def get_message_body(self, message_id: str) -> MessageBody:
        raw = await self.client.get_message(message_id, format="full")
        return message_to_body(raw)

    async def _fetch(self, ref: dict[str, Any], semaphore: asyncio.Semaphore) -> Message | None:
        message_id = str(ref["id"])
        thread_id = ref.get("threadId")

        async with semaphore:
            try:
                if thread_id:
                    raw, thread_count = await asyncio.gather(
                        self.client.get_message(message_id, metadata_headers=list(METADATA_HEADERS)),
                        self.client.get_thread_message_count(str(thread_id)),
                    )
                else:
                    raw = await self.client.get_message(message_id, metadata_headers=list(METADATA_HEADERS))
                    thread_count = 1
            except MessageNotFoundError:
                # Deleted elsewhere between listing and fetching.
                logger.info("gateway_message_vanished", message_id=message_id)
                return None

        return message_to_model(raw, thread_count)

    async def _context(self) -> ClassificationContext:
        if self._user_email is None:
            self._user_email = await self.client.get_profile_email()
        now = self._clock() if self._clock is not None else None
        return ClassificationContext(user_email=self._user_email or None, now=now)
