"""Tests for the optimistic delete/undo orchestrator."""

import asyncio
from uuid import uuid4

import pytest

from src.engine.agreements import AgreementAggregator
from src.engine.identity import StaticUserResolver
from src.engine.undo import (
    MSG_NOT_PENDING,
    SETTLED_HISTORY,
    DeletionState,
    UndoOrchestrator,
)
from src.models.agreement import AgreementWithSignatures
from src.models.common import utc_now
from src.models.results import ActionResult, DeleteResult, ErrorKind


class ManualTimer:
    """Clock plus sleep that only returns when the test expires it."""

    def __init__(self) -> None:
        self.now = 0.0
        self._gates: list[asyncio.Event] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        gate = asyncio.Event()
        self._gates.append(gate)
        await gate.wait()

    async def expire(self, orchestrator: UndoOrchestrator) -> None:
        # Let freshly created countdowns reach their sleep first.
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.now += orchestrator._duration_ms / 1000
        tasks = list(orchestrator._tasks.values())
        for gate in self._gates:
            gate.set()
        self._gates.clear()
        await asyncio.gather(*tasks, return_exceptions=True)


class FakeAgreements:
    """In-memory stand-in for the agreement aggregator's delete hooks."""

    def __init__(self, titles: list[str]) -> None:
        now = utc_now()
        self.items = [
            AgreementWithSignatures(id=uuid4(), title=t, created_at=now, updated_at=now)
            for t in titles
        ]
        self._order = [a.id for a in self.items]
        self.permanent_deletes: list = []
        self.fail_permanent = False

    def titles(self) -> list[str]:
        return [a.title for a in self.items]

    def by_title(self, title: str) -> AgreementWithSignatures:
        return next(a for a in self.items if a.title == title)

    def delete_agreement(self, agreement_id) -> DeleteResult:
        for index, item in enumerate(self.items):
            if item.id == agreement_id:
                self.items.pop(index)
                return DeleteResult(success=True, id=agreement_id, deleted=item, index=index)
        return DeleteResult(success=False, error="Agreement not found!", kind=ErrorKind.NOT_FOUND)

    async def permanently_delete_agreement(self, agreement_id) -> ActionResult:
        self.permanent_deletes.append(agreement_id)
        if self.fail_permanent:
            return ActionResult.fail("Request to agreements failed")
        return ActionResult.ok()

    def restore_agreement(self, snapshot) -> None:
        if any(a.id == snapshot.id for a in self.items):
            return
        rank = self._order.index
        position = next(
            (i for i, a in enumerate(self.items) if rank(a.id) > rank(snapshot.id)),
            len(self.items),
        )
        self.items.insert(position, snapshot)


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def target() -> FakeAgreements:
    return FakeAgreements(["A", "B", "C"])


@pytest.fixture
def orchestrator(target, timer) -> UndoOrchestrator:
    return UndoOrchestrator(target, duration_ms=5000, clock=timer.clock, sleep=timer.sleep)


class TestDelete:
    """delete() hides the agreement and starts a countdown."""

    @pytest.mark.anyio
    async def test_hides_immediately_and_counts_down(self, orchestrator, target, timer) -> None:
        b = target.by_title("B")
        result = await orchestrator.delete(b.id)

        assert result.success
        assert target.titles() == ["A", "C"]
        pending = orchestrator.get(result.id)
        assert pending.entity_id == b.id
        assert pending.message == 'Deleted "B"'
        assert orchestrator.state(result.id) == DeletionState.PENDING
        assert orchestrator.progress(result.id) == 100

        timer.now = 2.5
        assert orchestrator.remaining_ms(result.id) == 2500
        assert orchestrator.progress(result.id) == 50

        await orchestrator.aclose()

    @pytest.mark.anyio
    async def test_unknown_agreement_starts_nothing(self, orchestrator) -> None:
        result = await orchestrator.delete(uuid4())
        assert not result.success
        assert result.kind == ErrorKind.NOT_FOUND
        assert orchestrator.pending == ()


class TestUndo:
    """undo() restores without touching the backend."""

    @pytest.mark.anyio
    async def test_undo_restores_position_without_backend_call(
        self, orchestrator, target, timer
    ) -> None:
        result = await orchestrator.delete(target.by_title("B").id)

        undone = orchestrator.undo(result.id)
        assert undone.success
        assert target.titles() == ["A", "B", "C"]
        assert orchestrator.state(result.id) == DeletionState.UNDONE

        await timer.expire(orchestrator)
        assert target.permanent_deletes == []

    @pytest.mark.anyio
    async def test_undo_after_commit_is_rejected(self, orchestrator, target, timer) -> None:
        result = await orchestrator.delete(target.by_title("A").id)
        await timer.expire(orchestrator)

        undone = orchestrator.undo(result.id)
        assert undone.error == MSG_NOT_PENDING
        assert undone.kind == ErrorKind.NOT_FOUND
        assert target.titles() == ["B", "C"]

    @pytest.mark.anyio
    async def test_progress_is_zero_once_settled(self, orchestrator, target) -> None:
        result = await orchestrator.delete(target.by_title("A").id)
        orchestrator.undo(result.id)
        assert orchestrator.progress(result.id) == 0
        assert orchestrator.remaining_ms(result.id) == 0

    @pytest.mark.anyio
    async def test_settled_history_is_capped(self, orchestrator, target) -> None:
        b = target.by_title("B")
        ids = []
        for _ in range(SETTLED_HISTORY + 1):
            result = await orchestrator.delete(b.id)
            orchestrator.undo(result.id)
            ids.append(result.id)

        assert len(orchestrator._settled) == SETTLED_HISTORY
        assert orchestrator.state(ids[0]) is None
        assert orchestrator.state(ids[-1]) == DeletionState.UNDONE
        assert target.titles() == ["A", "B", "C"]


class TestCommit:
    """Expiry, dismiss, and shutdown commit the delete once."""

    @pytest.mark.anyio
    async def test_expiry_deletes_exactly_once(self, orchestrator, target, timer) -> None:
        a = target.by_title("A")
        result = await orchestrator.delete(a.id)

        await timer.expire(orchestrator)
        await timer.expire(orchestrator)

        assert target.permanent_deletes == [a.id]
        assert orchestrator.state(result.id) == DeletionState.COMMITTED
        assert orchestrator.pending == ()

    @pytest.mark.anyio
    async def test_deletions_are_independent(self, orchestrator, target, timer) -> None:
        a, c = target.by_title("A"), target.by_title("C")
        first = await orchestrator.delete(a.id)
        timer.now = 1.0
        second = await orchestrator.delete(c.id)
        assert [p.entity_id for p in orchestrator.pending] == [a.id, c.id]

        timer.now = 3.0
        remaining, progress = orchestrator.remaining_ms(second.id), orchestrator.progress(second.id)
        assert (remaining, progress) == (3000, 60)

        orchestrator.undo(first.id)

        assert orchestrator.state(second.id) == DeletionState.PENDING
        assert orchestrator.remaining_ms(second.id) == remaining
        assert orchestrator.progress(second.id) == progress
        assert orchestrator.get(second.id).started_at == 1.0
        assert not orchestrator._tasks[second.id].cancelled()
        assert target.titles() == ["A", "B"]

        await timer.expire(orchestrator)

        assert target.permanent_deletes == [c.id]
        assert target.titles() == ["A", "B"]

    @pytest.mark.anyio
    async def test_dismiss_commits_now(self, orchestrator, target, timer) -> None:
        b = target.by_title("B")
        result = await orchestrator.delete(b.id)

        dismissed = await orchestrator.dismiss(result.id)
        assert dismissed.success
        assert target.permanent_deletes == [b.id]

        await timer.expire(orchestrator)
        assert target.permanent_deletes == [b.id]

    @pytest.mark.anyio
    async def test_failed_commit_restores(self, orchestrator, target, timer) -> None:
        target.fail_permanent = True
        result = await orchestrator.delete(target.by_title("B").id)

        await timer.expire(orchestrator)

        assert orchestrator.state(result.id) == DeletionState.FAILED
        assert target.titles() == ["A", "B", "C"]

    @pytest.mark.anyio
    async def test_aclose_commits_everything_pending(self, orchestrator, target) -> None:
        await orchestrator.delete(target.by_title("A").id)
        await orchestrator.delete(target.by_title("B").id)

        await orchestrator.aclose()

        assert len(target.permanent_deletes) == 2
        assert orchestrator.pending == ()


class TestWithAggregator:
    """Orchestrator driving the real agreement aggregator."""

    @pytest.mark.anyio
    async def test_round_trip_against_storage(self, gateway, add_members, timer) -> None:
        members = await add_members("Ana")
        view = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await view.load()
        kept = await view.create(title="Keep")
        dropped = await view.create(title="Drop")
        orchestrator = UndoOrchestrator(view, clock=timer.clock, sleep=timer.sleep)

        undo_me = await orchestrator.delete(kept.id)
        await orchestrator.delete(dropped.id)
        assert view.agreements == ()
        orchestrator.undo(undo_me.id)
        gateway.reset()

        await timer.expire(orchestrator)

        assert gateway.count("delete", "agreements") == 1
        assert [a.title for a in view.agreements] == ["Keep"]
        stored = await gateway.select("agreements")
        assert [r["title"] for r in stored] == ["Keep"]

    @pytest.mark.anyio
    @pytest.mark.parametrize("undo_order", [("A", "C"), ("C", "A")])
    async def test_undo_order_keeps_original_positions(
        self, gateway, add_members, timer, undo_order
    ) -> None:
        members = await add_members("Ana")
        view = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await view.load()
        for title in ("C", "B", "A"):
            await view.create(title=title)
        by_title = {a.title: a for a in view.agreements}
        orchestrator = UndoOrchestrator(view, clock=timer.clock, sleep=timer.sleep)

        deletions = {}
        for title in ("A", "C"):
            deletions[title] = await orchestrator.delete(by_title[title].id)
        assert [a.title for a in view.agreements] == ["B"]

        for title in undo_order:
            assert orchestrator.undo(deletions[title].id).success

        assert [a.title for a in view.agreements] == ["A", "B", "C"]
        assert view.agreements == tuple(by_title[t] for t in ("A", "B", "C"))

    @pytest.mark.anyio
    async def test_reload_during_window(self, gateway, add_members, timer) -> None:
        members = await add_members("Ana")
        view = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await view.load()
        for title in ("C", "B", "A"):
            await view.create(title=title)
        by_title = {a.title: a for a in view.agreements}
        orchestrator = UndoOrchestrator(view, clock=timer.clock, sleep=timer.sleep)
        first = await orchestrator.delete(by_title["A"].id)
        second = await orchestrator.delete(by_title["C"].id)
        gateway.reset()

        await view.refresh()
        assert [a.title for a in view.agreements] == ["B"]

        orchestrator.undo(second.id)
        orchestrator.undo(first.id)

        assert [a.title for a in view.agreements] == ["A", "B", "C"]
        assert gateway.count("delete") == 0
