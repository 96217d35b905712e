"""Review session state.

``SessionState`` is a plain object owned by one ``SessionController``. All
mutations keep these invariants:

- the buffer never holds a processed or skipped id, nor (in unsubscribe mode)
  a message from a skipped sender;
- the buffer holds each id at most once;
- the current batch is the first ``batch_size`` buffer entries;
- the selection only names messages of the current batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from inbox_triage.models import ClassifiedMessage, SessionMode


@dataclass
class SessionStats:
    """Counters of successfully committed actions."""

    deleted: int = 0
    archived: int = 0
    unsubscribed: int = 0

    def record(self, mode: SessionMode, count: int) -> None:
        if mode is SessionMode.DELETE:
            self.deleted += count
        elif mode is SessionMode.ARCHIVE:
            self.archived += count
        else:
            self.unsubscribed += count

    @property
    def total(self) -> int:
        return self.deleted + self.archived + self.unsubscribed


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable copy of everything an optimistic commit may change."""

    buffer: tuple[ClassifiedMessage, ...]
    selected_ids: frozenset[str]
    processed_ids: frozenset[str]
    skipped_ids: frozenset[str]
    skipped_senders: frozenset[str]
    stats: SessionStats


@dataclass
class SessionState:
    """Buffer, selection and bookkeeping for one review mode."""

    mode: SessionMode
    batch_size: int = 10
    buffer: list[ClassifiedMessage] = field(default_factory=list)
    selected_ids: set[str] = field(default_factory=set)
    processed_ids: set[str] = field(default_factory=set)
    skipped_ids: set[str] = field(default_factory=set)
    skipped_senders: set[str] = field(default_factory=set)
    stats: SessionStats = field(default_factory=SessionStats)
    next_page_token: str | None = None
    initialized: bool = False

    @property
    def current_batch(self) -> list[ClassifiedMessage]:
        return self.buffer[: self.batch_size]

    @property
    def current_batch_ids(self) -> list[str]:
        return [m.id for m in self.current_batch]

    @property
    def has_more(self) -> bool:
        return self.next_page_token is not None

    @property
    def is_complete(self) -> bool:
        return self.initialized and not self.buffer and not self.has_more

    @property
    def tracks_senders(self) -> bool:
        return self.mode is SessionMode.UNSUBSCRIBE

    def is_excluded(self, message: ClassifiedMessage) -> bool:
        """True when a message must never (re-)enter the buffer."""
        if message.id in self.processed_ids or message.id in self.skipped_ids:
            return True
        return self.tracks_senders and message.sender_key in self.skipped_senders

    def merge(self, messages: Iterable[ClassifiedMessage]) -> list[ClassifiedMessage]:
        """Append new, non-excluded messages to the tail of the buffer.

        Returns the messages actually added. Merging the same page twice is
        a no-op the second time.
        """
        seen = {m.id for m in self.buffer}
        added: list[ClassifiedMessage] = []
        for message in messages:
            if message.id in seen or self.is_excluded(message):
                continue
            seen.add(message.id)
            added.append(message)
        self.buffer.extend(added)
        return added

    def select_current_batch(self) -> None:
        self.selected_ids = set(self.current_batch_ids)

    def remove(self, ids: set[str]) -> None:
        self.buffer = [m for m in self.buffer if m.id not in ids]

    def skip_senders(self, senders: set[str]) -> None:
        """Exclude senders for the rest of the session and purge their messages."""
        self.skipped_senders |= senders
        self.buffer = [m for m in self.buffer if m.sender_key not in senders]

    def skip(self, messages: list[ClassifiedMessage]) -> None:
        """Skip messages; in unsubscribe mode their senders are skipped too."""
        ids = {m.id for m in messages}
        self.skipped_ids |= ids
        self.remove(ids)
        if self.tracks_senders:
            self.skip_senders({m.sender_key for m in messages})
        self.select_current_batch()

    def commit(self, selected: list[ClassifiedMessage], unselected: list[ClassifiedMessage]) -> None:
        """Record a batch as processed; unselected messages count as skipped."""
        self.remove({m.id for m in selected} | {m.id for m in unselected})
        if self.tracks_senders and unselected:
            self.skip_senders({m.sender_key for m in unselected})

        self.processed_ids |= {m.id for m in selected}
        self.skipped_ids |= {m.id for m in unselected}
        self.stats.record(self.mode, len(selected))
        self.select_current_batch()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            buffer=tuple(self.buffer),
            selected_ids=frozenset(self.selected_ids),
            processed_ids=frozenset(self.processed_ids),
            skipped_ids=frozenset(self.skipped_ids),
            skipped_senders=frozenset(self.skipped_senders),
            stats=replace(self.stats),
        )

    def restore(self, snapshot: SessionSnapshot) -> None:
        self.buffer = list(snapshot.buffer)
        self.selected_ids = set(snapshot.selected_ids)
        self.processed_ids = set(snapshot.processed_ids)
        self.skipped_ids = set(snapshot.skipped_ids)
        self.skipped_senders = set(snapshot.skipped_senders)
        self.stats = replace(snapshot.stats)
