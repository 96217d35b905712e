"""Batched review session over a provider gateway.

The controller keeps a buffer of candidates for one mode, exposes the first
``batch_size`` of them as the current batch and commits the selected part of
that batch with an optimistic update. Pages beyond the first are fetched in
the background once the buffer drops below two batches.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Iterable

import structlog

from inbox_triage.classifier import ClassificationContext, classify_for_mode
from inbox_triage.config import Settings, get_settings
from inbox_triage.gateway.base import ProviderGateway
from inbox_triage.models import (
    ClassifiedMessage,
    Message,
    SessionMode,
    UnsubscribeReport,
    UnsubscribeRequest,
)
from inbox_triage.session.state import SessionState, SessionStats
from inbox_triage.session.summary import SessionSummary, plural, summarize
from inbox_triage.session.transaction import optimistic_update

logger = structlog.get_logger()

_DONE_VERBS = {
    SessionMode.DELETE: "Deleted",
    SessionMode.ARCHIVE: "Archived",
    SessionMode.UNSUBSCRIBE: "Unsubscribed from",
}


@dataclass(frozen=True)
class Notification:
    """A user-facing message emitted by the session."""

    level: str
    message: str


@dataclass(frozen=True)
class CommitOutcome:
    """Result of one ``process_selected`` call."""

    mode: SessionMode
    count: int
    succeeded: bool
    error: str | None = None
    failed_ids: tuple[str, ...] = ()


Notifier = Callable[[Notification], None]


class SessionController:
    """Drives one review session in a single mode.

    Args:
        gateway: Where messages are listed and committed.
        mode: Delete, archive or unsubscribe. Fixed for the controller's life.
        batch_size: Messages per batch. Defaults to ``settings.batch_size``.
        settings: Application settings.
        notifier: Called with every notification, in addition to
            ``last_notification`` being updated.
        context: Classification context for pages that carry raw messages.
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        mode: SessionMode | str,
        *,
        batch_size: int | None = None,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        context: ClassificationContext | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.gateway = gateway
        self._mode = SessionMode(mode)
        self._batch_size = batch_size if batch_size is not None else self.settings.batch_size
        if self._batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._notifier = notifier
        self._context = context or ClassificationContext(user_email=self.settings.user_email)

        self.state = SessionState(mode=self._mode, batch_size=self._batch_size)
        self.error: Exception | None = None
        self.last_notification: Notification | None = None

        self._is_loading = False
        self._is_processing = False
        self._disposed = False
        self._generation = 0
        self._prefetch_tasks: dict[str, asyncio.Task[int]] = {}
        self._arrivals: list[ClassifiedMessage] | None = None

    # -- read-only surface -------------------------------------------------

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def current_batch(self) -> list[ClassifiedMessage]:
        return self.state.current_batch

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self.state.selected_ids)

    @property
    def stats(self) -> SessionStats:
        return replace(self.state.stats)

    @property
    def buffered(self) -> int:
        return len(self.state.buffer)

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    @property
    def is_loading(self) -> bool:
        return self._is_loading and not self.state.initialized

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_prefetching(self) -> bool:
        return bool(self._prefetch_tasks)

    @property
    def is_complete(self) -> bool:
        return self.state.is_complete

    def summary(self) -> SessionSummary:
        return summarize(self.state.stats, self._mode)

    # -- loading -----------------------------------------------------------

    async def initialize(self) -> None:
        """Load the first page. Does nothing once initialized or while loading."""
        if self._disposed or self.state.initialized or self._is_loading:
            return

        generation = self._generation
        self._is_loading = True
        self.error = None
        logger.info("session_initializing", mode=self._mode.value, batch_size=self._batch_size)
        try:
            page = await self.gateway.list_messages(self._mode, None)
        except Exception as exc:  # noqa: BLE001
            if self._is_current(generation):
                self.error = exc
                self._is_loading = False
                logger.warning("session_list_failed", mode=self._mode.value, error=str(exc))
            return

        if not self._is_current(generation):
            return

        state = self.state
        added = state.merge(self._accept(page.messages))
        state.next_page_token = page.next_page_token
        state.initialized = True
        state.select_current_batch()
        self._is_loading = False
        logger.info(
            "session_initialized",
            mode=self._mode.value,
            candidates=len(added),
            has_more=state.has_more,
        )
        self._schedule_prefetch()

    async def prefetch(self) -> int:
        """Fetch the pending next page now, joining a fetch already in flight.

        Returns the number of messages added to the buffer.
        """
        token = self.state.next_page_token
        if self._disposed or token is None:
            return 0
        task = self._prefetch_tasks.get(token)
        if task is None:
            task = self._start_prefetch(token)
        return await task

    async def wait_for_prefetch(self) -> None:
        """Wait until no page fetch is in flight, including chained ones."""
        while self._prefetch_tasks:
            await asyncio.gather(*list(self._prefetch_tasks.values()), return_exceptions=True)

    def _schedule_prefetch(self) -> None:
        state = self.state
        token = state.next_page_token
        if self._disposed or token is None or token in self._prefetch_tasks:
            return
        if len(state.buffer) >= 2 * state.batch_size:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("session_prefetch_deferred", reason="no running event loop")
            return
        self._start_prefetch(token)

    def _start_prefetch(self, token: str) -> asyncio.Task[int]:
        task = asyncio.get_running_loop().create_task(self._fetch_page(token, self._generation))
        self._prefetch_tasks[token] = task
        task.add_done_callback(lambda done: self._forget_prefetch(token, done))
        return task

    def _forget_prefetch(self, token: str, task: asyncio.Task[int]) -> None:
        if self._prefetch_tasks.get(token) is task:
            del self._prefetch_tasks[token]

    async def _fetch_page(self, token: str, generation: int) -> int:
        try:
            page = await self.gateway.list_messages(self._mode, token)
        except Exception as exc:  # noqa: BLE001
            logger.warning("session_prefetch_failed", mode=self._mode.value, error=str(exc))
            return 0

        if not self._is_current(generation):
            return 0

        state = self.state
        batch_was_empty = not state.buffer
        accepted = self._accept(page.messages)
        added = state.merge(accepted)
        if self._arrivals is not None:
            # Merged again after a rollback, against the restored exclusions.
            self._arrivals.extend(accepted)
        if state.next_page_token == token:
            state.next_page_token = page.next_page_token
        if batch_was_empty and added:
            state.select_current_batch()

        logger.info(
            "session_prefetched",
            mode=self._mode.value,
            added=len(added),
            buffered=len(state.buffer),
            has_more=state.has_more,
        )
        self._schedule_prefetch()
        return len(added)

    def _accept(self, messages: Iterable[Message]) -> list[ClassifiedMessage]:
        """Classify raw messages and drop anything not meant for this mode."""
        accepted = []
        for message in messages:
            if not isinstance(message, ClassifiedMessage):
                message = classify_for_mode(message, self._mode, self._context)
            if message.classification.action == self._mode.action:
                accepted.append(message)
        return accepted

    # -- selection -----------------------------------------------------------

    def select_all(self) -> None:
        self.state.select_current_batch()

    def deselect_all(self) -> None:
        self.state.selected_ids = set()

    def toggle_selection(self, message_id: str, selected: bool) -> None:
        """Select or deselect one message of the current batch."""
        if not selected:
            self.state.selected_ids.discard(message_id)
            return
        if message_id not in self.state.current_batch_ids:
            logger.debug("session_selection_ignored", message_id=message_id)
            return
        self.state.selected_ids.add(message_id)

    def skip_batch(self) -> None:
        """Skip the whole current batch. Does nothing while a commit is outstanding."""
        batch = self.state.current_batch
        if not batch:
            return
        if self._is_processing:
            logger.warning("session_skip_while_committing", mode=self._mode.value)
            return
        self.state.skip(batch)
        logger.info("session_batch_skipped", mode=self._mode.value, count=len(batch))
        self._schedule_prefetch()

    # -- committing ------------------------------------------------------------

    async def process_selected(self) -> CommitOutcome | None:
        """Commit the selected messages of the current batch.

        The batch leaves the buffer immediately and unselected messages are
        skipped. If the provider call fails, the session is restored to how it
        was before the call and an error notification is emitted. Returns
        ``None`` when nothing is selected or a commit is already running.
        """
        state = self.state
        batch = state.current_batch
        selected = [m for m in batch if m.id in state.selected_ids]
        if not selected:
            return None
        if self._is_processing:
            logger.warning("session_commit_already_running", mode=self._mode.value)
            return None

        unselected = [m for m in batch if m.id not in state.selected_ids]
        generation = self._generation
        self._is_processing = True
        self._arrivals = []
        logger.info(
            "session_commit_started",
            mode=self._mode.value,
            selected=len(selected),
            skipped=len(unselected),
        )
        try:
            with optimistic_update(state):
                state.commit(selected, unselected)
                self._schedule_prefetch()
                failed_ids = await self._commit(selected)
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(generation):
                return None
            if self._arrivals:
                state.merge(self._arrivals)
            logger.warning("session_commit_failed", mode=self._mode.value, error=str(exc))
            self._notify("error", f"Failed to {self._mode.value}: {exc}")
            return CommitOutcome(
                mode=self._mode,
                count=len(selected),
                succeeded=False,
                error=str(exc),
            )
        finally:
            if self._is_current(generation):
                self._is_processing = False
                self._arrivals = None

        if not self._is_current(generation):
            return None

        self._notify("success", f"{_DONE_VERBS[self._mode]} {plural(len(selected))}")
        if failed_ids:
            self._notify("warning", f"Could not unsubscribe from {plural(len(failed_ids))}")
        logger.info(
            "session_commit_succeeded",
            mode=self._mode.value,
            count=len(selected),
            failed=len(failed_ids),
        )
        return CommitOutcome(
            mode=self._mode,
            count=len(selected),
            succeeded=True,
            failed_ids=tuple(failed_ids),
        )

    async def _commit(self, messages: list[ClassifiedMessage]) -> list[str]:
        """Send a commit to the gateway and return ids that could not be handled."""
        ids = [m.id for m in messages]
        if self._mode is SessionMode.DELETE:
            await self.gateway.commit_delete(ids)
            return []
        if self._mode is SessionMode.ARCHIVE:
            await self.gateway.commit_archive(ids)
            return []

        requests = [
            UnsubscribeRequest(message_id=m.id, target=m.unsubscribe_target)
            for m in messages
            if m.unsubscribe_target is not None
        ]
        missing = [m.id for m in messages if m.unsubscribe_target is None]
        report: UnsubscribeReport = await self.gateway.commit_unsubscribe(requests)
        return list(report.failed) + missing

    # -- lifecycle -------------------------------------------------------------

    def reset(self) -> None:
        """Discard all session state. In-flight work can no longer affect it."""
        self._generation += 1
        self._cancel_prefetches()
        self.state = SessionState(mode=self._mode, batch_size=self._batch_size)
        self.error = None
        self.last_notification = None
        self._is_loading = False
        self._is_processing = False
        self._arrivals = None
        logger.info("session_reset", mode=self._mode.value)

    async def start_over(self) -> None:
        """Reset the session and load the first page again."""
        self.reset()
        await self.initialize()

    def dispose(self) -> None:
        """Stop background work. Results of in-flight calls are ignored."""
        if self._disposed:
            return
        self._disposed = True
        self._cancel_prefetches()
        logger.info("session_disposed", mode=self._mode.value)

    def _cancel_prefetches(self) -> None:
        for task in self._prefetch_tasks.values():
            task.cancel()
        self._prefetch_tasks.clear()

    def _is_current(self, generation: int) -> bool:
        return not self._disposed and generation == self._generation

    def _notify(self, level: str, message: str) -> None:
        notification = Notification(level=level, message=message)
        self.last_notification = notification
        logger.info("session_notification", level=level, message=message)
        if self._notifier is not None:
            self._notifier(notification)
