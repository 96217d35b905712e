"""Optimistic update primitive for session state."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog

from inbox_triage.session.state import SessionSnapshot, SessionState

logger = structlog.get_logger()


@contextmanager
def optimistic_update(state: SessionState) -> Iterator[SessionSnapshot]:
    """Apply tentative mutations to ``state``; revert them if the block fails.

    The snapshot is taken on entry. Mutate the state inside the block, then
    await the confirming call: if anything raises, including cancellation,
    the state is restored to the snapshot and the exception propagates.

    Example:
        with optimistic_update(state):
            state.commit(selected, unselected)
            await gateway.commit_delete(ids)
    """
    snapshot = state.snapshot()
    try:
        yield snapshot
    except BaseException:
        state.restore(snapshot)
        logger.info("optimistic_update_rolled_back", mode=state.mode.value)
        raise
