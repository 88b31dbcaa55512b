"""End-to-end agreement lifecycle across several members and fresh views.

Three members sign one agreement in turn; each signature is made through
its own view, as separate browser sessions would, and the final state is
read back through a view that loaded nothing beforehand.
"""

import pytest

from src.engine.agreements import AgreementAggregator
from src.engine.analytics import AnalyticsEngine
from src.engine.identity import StaticUserResolver
from src.engine.undo import DeletionState, UndoOrchestrator
from src.models.common import AgreementStatus


class TestSigningFlow:
    """Agreement lifecycle across members and fresh views."""

    @pytest.mark.anyio
    async def test_three_members_activate_agreement(self, gateway, add_members) -> None:
        members = await add_members("Ana", "Ben", "Cy")
        resolver = StaticUserResolver(members[0]["id"])

        author_view = AgreementAggregator(gateway, resolver)
        await author_view.load()
        created = await author_view.create(title="No meetings on Fridays")
        assert created.success

        for member in members:
            resolver.member_id = member["id"]
            view = AgreementAggregator(gateway, resolver)
            await view.load()
            before = view.get(created.id)
            assert before.status == AgreementStatus.PENDING
            assert (await view.sign(created.id)).success

        fresh = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await fresh.load()
        agreement = fresh.get(created.id)
        assert agreement.status == AgreementStatus.ACTIVE
        assert agreement.signed_by == 3
        assert agreement.completion_percent == 100

        signatures = await fresh.fetch_signatures(created.id)
        assert len(signatures) == 3
        assert all(s.signed for s in signatures)

        engine = AnalyticsEngine(gateway)
        await engine.load()
        assert engine.metrics.agreement_adoption_percent == 100

    @pytest.mark.anyio
    async def test_new_member_lowers_completion(self, gateway, add_members) -> None:
        members = await add_members("Ana")
        view = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await view.load()
        created = await view.create(title="Pair on releases")
        await view.sign(created.id)
        assert view.get(created.id).status == AgreementStatus.ACTIVE

        await gateway.insert("team_members", {"name": "Ben", "email": "ben@example.com"})
        await view.refresh()

        agreement = view.get(created.id)
        assert agreement.status == AgreementStatus.ACTIVE
        assert agreement.total_members == 2
        assert agreement.completion_percent == 50
        assert not agreement.is_fully_signed

    @pytest.mark.anyio
    async def test_signed_agreement_deleted_after_window(self, gateway, add_members) -> None:
        members = await add_members("Ana")
        view = AgreementAggregator(gateway, StaticUserResolver(members[0]["id"]))
        await view.load()
        created = await view.create(title="Temporary")
        await view.sign(created.id)
        undo = UndoOrchestrator(view, duration_ms=10)

        pending = await undo.delete(created.id)
        await undo.aclose()

        assert undo.state(pending.id) == DeletionState.COMMITTED
        assert await gateway.select("agreements") == []
        assert await gateway.select("agreement_signatures") == []
