"""Optimistic delete with an undo window.

``UndoOrchestrator.delete`` removes an agreement from the visible list at
once and starts a countdown owned by the deletion id. Before it runs out
the user can undo (the agreement goes back to its original position and
the backend is never touched) or dismiss (the backend delete happens
immediately). When the countdown runs out the backend delete happens on
its own.

Each countdown is its own asyncio task keyed by deletion id, so deletions
are independent: undoing one never touches another's task or start time.
Undo and commit for the same id race through the pending map. Whichever
pops the entry first wins and the other finds nothing to do.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol
from uuid import UUID

from src.models.agreement import AgreementWithSignatures
from src.models.common import new_uuid7
from src.models.results import ActionResult, DeleteResult, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_UNDO_WINDOW_MS = 5000
# Settled deletions remembered for state lookups, oldest dropped first.
SETTLED_HISTORY = 256

MSG_NOT_PENDING = "Nothing to undo"


class AgreementDeleter(Protocol):
    def delete_agreement(self, agreement_id: UUID) -> DeleteResult: ...

    async def permanently_delete_agreement(self, agreement_id: UUID) -> ActionResult: ...

    def restore_agreement(self, snapshot: AgreementWithSignatures) -> None: ...


class DeletionState(StrEnum):
    PENDING = "pending"
    UNDONE = "undone"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingDeletion:
    """One soft-deleted agreement waiting out its undo window."""

    deletion_id: UUID
    entity_id: UUID
    snapshot: AgreementWithSignatures
    # Position at delete time, reported to the caller. Restores re-sort.
    index: int
    started_at: float
    duration_ms: int

    @property
    def message(self) -> str:
        return f'Deleted "{self.snapshot.title}"'


class UndoOrchestrator:
    def __init__(
        self,
        target: AgreementDeleter,
        *,
        duration_ms: int = DEFAULT_UNDO_WINDOW_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._target = target
        self._duration_ms = duration_ms
        self._clock = clock
        self._sleep = sleep
        self._pending: dict[UUID, PendingDeletion] = {}
        self._tasks: dict[UUID, asyncio.Task] = {}
        self._committing: set[UUID] = set()
        self._settled: OrderedDict[UUID, DeletionState] = OrderedDict()

    @property
    def pending(self) -> tuple[PendingDeletion, ...]:
        """Pending deletions, oldest first."""
        return tuple(self._pending.values())

    def get(self, deletion_id: UUID) -> PendingDeletion | None:
        return self._pending.get(deletion_id)

    def state(self, deletion_id: UUID) -> DeletionState | None:
        if deletion_id in self._pending or deletion_id in self._committing:
            return DeletionState.PENDING
        return self._settled.get(deletion_id)

    def remaining_ms(self, deletion_id: UUID) -> float:
        entry = self._pending.get(deletion_id)
        if entry is None:
            return 0.0
        elapsed_ms = (self._clock() - entry.started_at) * 1000
        return max(0.0, entry.duration_ms - elapsed_ms)

    def progress(self, deletion_id: UUID) -> float:
        """Percent of the window left, 100 at start down to 0.

        Recomputed from the start time on every call.
        """
        entry = self._pending.get(deletion_id)
        if entry is None:
            return 0.0
        return self.remaining_ms(deletion_id) * 100 / entry.duration_ms

    # -- transitions ------------------------------------------------------

    async def delete(self, agreement_id: UUID) -> DeleteResult:
        """Soft-delete and start the countdown. ``id`` on the result is the deletion id."""
        removed = self._target.delete_agreement(agreement_id)
        if not removed.success:
            return removed

        entry = PendingDeletion(
            deletion_id=new_uuid7(),
            entity_id=agreement_id,
            snapshot=removed.deleted,
            index=removed.index,
            started_at=self._clock(),
            duration_ms=self._duration_ms,
        )
        self._pending[entry.deletion_id] = entry
        self._tasks[entry.deletion_id] = asyncio.create_task(
            self._countdown(entry.deletion_id, entry.duration_ms),
            name=f"undo-{entry.deletion_id}",
        )
        logger.info("Agreement %s pending deletion %s", agreement_id, entry.deletion_id)
        return DeleteResult(
            success=True, id=entry.deletion_id, deleted=entry.snapshot, index=entry.index,
        )

    def undo(self, deletion_id: UUID) -> ActionResult:
        entry = self._pending.pop(deletion_id, None)
        if entry is None:
            return ActionResult.fail(MSG_NOT_PENDING, ErrorKind.NOT_FOUND)

        task = self._tasks.pop(deletion_id, None)
        if task is not None:
            task.cancel()
        self._target.restore_agreement(entry.snapshot)
        self._settle(deletion_id, DeletionState.UNDONE)
        logger.info("Deletion %s undone", deletion_id)
        return ActionResult.ok(id=entry.entity_id)

    async def dismiss(self, deletion_id: UUID) -> ActionResult:
        """Commit now instead of waiting for the countdown."""
        return await self._commit(deletion_id)

    async def aclose(self) -> None:
        """Commit everything still pending. Used on shutdown."""
        for deletion_id in list(self._pending):
            await self._commit(deletion_id)

    # -- internals --------------------------------------------------------

    def _settle(self, deletion_id: UUID, state: DeletionState) -> None:
        self._settled[deletion_id] = state
        while len(self._settled) > SETTLED_HISTORY:
            self._settled.popitem(last=False)

    async def _countdown(self, deletion_id: UUID, duration_ms: int) -> None:
        await self._sleep(duration_ms / 1000)
        await self._commit(deletion_id)

    async def _commit(self, deletion_id: UUID) -> ActionResult:
        entry = self._pending.pop(deletion_id, None)
        if entry is None:
            return ActionResult.fail(MSG_NOT_PENDING, ErrorKind.NOT_FOUND)

        task = self._tasks.pop(deletion_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        self._committing.add(deletion_id)
        try:
            result = await self._target.permanently_delete_agreement(entry.entity_id)
        finally:
            self._committing.discard(deletion_id)
        if result.success:
            self._settle(deletion_id, DeletionState.COMMITTED)
            logger.info("Deletion %s committed", deletion_id)
            return ActionResult.ok(id=entry.entity_id)

        # Backend kept the row; show it again.
        self._target.restore_agreement(entry.snapshot)
        self._settle(deletion_id, DeletionState.FAILED)
        logger.warning("Deletion %s failed, agreement restored: %s", deletion_id, result.error)
        return result
