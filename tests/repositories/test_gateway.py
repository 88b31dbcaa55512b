"""Tests for DataGateway: CRUD contract, error translation, cycle guard."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from src.models.results import ErrorKind
from src.repositories.gateway import (
    CLEAR_ORDER,
    COLLECTIONS,
    GatewayError,
    GatewayErrorCode,
    translate_error,
)


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


async def _deliverable(gateway, title: str) -> dict:
    rows = await gateway.insert("deliverables", {"title": title})
    return rows[0]


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestTranslateError:
    """Driver errors map onto SQLSTATE codes and error kinds."""

    def test_sqlstate_unique(self) -> None:
        exc = IntegrityError("INSERT", None, _PgError("dup", "23505"))
        error = translate_error(exc, "team_members")
        assert error.code == GatewayErrorCode.UNIQUE_VIOLATION
        assert error.kind == ErrorKind.CONFLICT
        assert error.collection == "team_members"

    def test_sqlstate_raise_keeps_driver_message(self) -> None:
        exc = DBAPIError("INSERT", None, _PgError("circular dependency detected: a -> b", "P0001"))
        error = translate_error(exc, "deliverable_dependencies")
        assert error.code == GatewayErrorCode.RAISE_EXCEPTION
        assert "circular dependency detected" in error.message

    def test_connection_class_sqlstate(self) -> None:
        exc = OperationalError("SELECT", None, _PgError("gone", "08001"))
        assert translate_error(exc, "agreements").kind == ErrorKind.TRANSIENT

    def test_unmapped_sqlstate_is_unexpected(self) -> None:
        exc = DBAPIError("SELECT", None, _PgError("odd", "42P01"))
        error = translate_error(exc, "agreements")
        assert error.code == GatewayErrorCode.UNKNOWN
        assert error.kind == ErrorKind.UNEXPECTED

    def test_operational_error_without_state_is_transient(self) -> None:
        exc = OperationalError("SELECT", None, Exception("unable to open database file"))
        assert translate_error(exc, "updates").code == GatewayErrorCode.CONNECTION_FAILURE

    def test_sqlite_message_markers(self) -> None:
        exc = IntegrityError("INSERT", None, Exception("FOREIGN KEY constraint failed"))
        assert translate_error(exc, "updates").code == GatewayErrorCode.FOREIGN_KEY_VIOLATION


# ---------------------------------------------------------------------------
# CRUD contract
# ---------------------------------------------------------------------------


class TestSelect:
    """select and select_one filters and ordering."""

    @pytest.mark.anyio
    async def test_filters_and_ordering(self, gateway, add_members) -> None:
        await add_members("Zoe", "Adam", "Maya")
        rows = await gateway.select("team_members", order_by="name")
        assert [r["name"] for r in rows] == ["Adam", "Maya", "Zoe"]

        rows = await gateway.select("team_members", order_by="created_at", descending=True)
        assert [r["name"] for r in rows] == ["Maya", "Adam", "Zoe"]

    @pytest.mark.anyio
    async def test_sequence_filter_means_in(self, gateway, add_members) -> None:
        members = await add_members("A", "B", "C")
        wanted = [members[0]["id"], members[2]["id"]]
        rows = await gateway.select("team_members", {"id": wanted}, order_by="name")
        assert [r["name"] for r in rows] == ["A", "C"]

    @pytest.mark.anyio
    async def test_none_filter_means_is_null(self, gateway, add_members) -> None:
        members = await add_members("Owner")
        await gateway.insert("deliverables", [
            {"title": "Owned", "owner_id": members[0]["id"]},
            {"title": "Orphan"},
        ])
        rows = await gateway.select("deliverables", {"owner_id": None})
        assert [r["title"] for r in rows] == ["Orphan"]

    @pytest.mark.anyio
    async def test_select_one(self, gateway, add_members) -> None:
        await add_members("A", "B")
        assert await gateway.select_one("team_members", {"name": "Nobody"}) is None
        assert (await gateway.select_one("team_members", {"name": "A"}))["name"] == "A"
        with pytest.raises(GatewayError, match="at most one"):
            await gateway.select_one("team_members", {"name": ["A", "B"]})

    @pytest.mark.anyio
    async def test_unknown_collection(self, gateway) -> None:
        with pytest.raises(GatewayError, match="Unknown collection"):
            await gateway.select("projects")


class TestInsert:
    """insert returns rows and reports constraint failures."""

    @pytest.mark.anyio
    async def test_returns_rows_with_defaults(self, gateway) -> None:
        row = await _deliverable(gateway, "API")
        assert row["id"] is not None
        assert row["progress"] == 0
        assert row["status"] == "upcoming"
        assert row["updated_at"] == row["created_at"]

    @pytest.mark.anyio
    async def test_empty_batch_is_noop(self, gateway) -> None:
        assert await gateway.insert("deliverables", []) == []

    @pytest.mark.anyio
    async def test_unique_violation(self, gateway, add_members) -> None:
        await add_members("Kai")
        with pytest.raises(GatewayError) as info:
            await gateway.insert("team_members", {"name": "Kai 2", "email": "kai@example.com"})
        assert info.value.code == GatewayErrorCode.UNIQUE_VIOLATION
        assert info.value.kind == ErrorKind.CONFLICT

    @pytest.mark.anyio
    async def test_foreign_key_violation(self, gateway, add_members) -> None:
        members = await add_members("Kai")
        with pytest.raises(GatewayError) as info:
            await gateway.insert(
                "agreement_signatures",
                {"agreement_id": uuid4(), "member_id": members[0]["id"]},
            )
        assert info.value.code == GatewayErrorCode.FOREIGN_KEY_VIOLATION

    @pytest.mark.anyio
    async def test_check_violation(self, gateway) -> None:
        with pytest.raises(GatewayError) as info:
            await gateway.insert("deliverables", {"title": "Too far", "progress": 150})
        assert info.value.code == GatewayErrorCode.CHECK_VIOLATION
        assert info.value.kind == ErrorKind.VALIDATION

    @pytest.mark.anyio
    async def test_not_null_violation(self, gateway) -> None:
        with pytest.raises(GatewayError) as info:
            await gateway.insert("deliverables", {"title": None})
        assert info.value.code == GatewayErrorCode.NOT_NULL_VIOLATION

    @pytest.mark.anyio
    async def test_failed_batch_writes_nothing(self, gateway, add_members) -> None:
        await add_members("Kai")
        with pytest.raises(GatewayError):
            await gateway.insert("team_members", [
                {"name": "New", "email": "new@example.com"},
                {"name": "Dup", "email": "kai@example.com"},
            ])
        assert len(await gateway.select("team_members")) == 1


class TestDependencyCycleGuard:
    """Dependency inserts are checked against the persisted edge set."""

    @pytest.mark.anyio
    async def test_rejects_reverse_edge(self, gateway) -> None:
        a = await _deliverable(gateway, "A")
        b = await _deliverable(gateway, "B")
        await gateway.insert("deliverable_dependencies", {"deliverable_id": a["id"], "depends_on_id": b["id"]})

        with pytest.raises(GatewayError) as info:
            await gateway.insert(
                "deliverable_dependencies", {"deliverable_id": b["id"], "depends_on_id": a["id"]}
            )
        assert info.value.code == GatewayErrorCode.RAISE_EXCEPTION
        assert info.value.message.startswith("circular dependency detected")
        assert len(await gateway.select("deliverable_dependencies")) == 1

    @pytest.mark.anyio
    async def test_rejects_long_cycle(self, gateway) -> None:
        a, b, c = [await _deliverable(gateway, t) for t in ("A", "B", "C")]
        await gateway.insert("deliverable_dependencies", [
            {"deliverable_id": a["id"], "depends_on_id": b["id"]},
            {"deliverable_id": b["id"], "depends_on_id": c["id"]},
        ])
        with pytest.raises(GatewayError):
            await gateway.insert(
                "deliverable_dependencies", {"deliverable_id": c["id"], "depends_on_id": a["id"]}
            )

    @pytest.mark.anyio
    async def test_rejects_cycle_within_batch(self, gateway) -> None:
        a = await _deliverable(gateway, "A")
        b = await _deliverable(gateway, "B")
        with pytest.raises(GatewayError) as info:
            await gateway.insert("deliverable_dependencies", [
                {"deliverable_id": a["id"], "depends_on_id": b["id"]},
                {"deliverable_id": b["id"], "depends_on_id": a["id"]},
            ])
        assert info.value.code == GatewayErrorCode.RAISE_EXCEPTION
        assert await gateway.select("deliverable_dependencies") == []

    @pytest.mark.anyio
    async def test_self_edge_hits_check_constraint(self, gateway) -> None:
        a = await _deliverable(gateway, "A")
        with pytest.raises(GatewayError) as info:
            await gateway.insert(
                "deliverable_dependencies", {"deliverable_id": a["id"], "depends_on_id": a["id"]}
            )
        assert info.value.code == GatewayErrorCode.CHECK_VIOLATION

    @pytest.mark.anyio
    async def test_diamond_is_allowed(self, gateway) -> None:
        a, b, c, d = [await _deliverable(gateway, t) for t in ("A", "B", "C", "D")]
        rows = await gateway.insert("deliverable_dependencies", [
            {"deliverable_id": a["id"], "depends_on_id": b["id"]},
            {"deliverable_id": a["id"], "depends_on_id": c["id"]},
            {"deliverable_id": b["id"], "depends_on_id": d["id"]},
            {"deliverable_id": c["id"], "depends_on_id": d["id"]},
        ])
        assert len(rows) == 4


class TestUpdateDelete:
    """update returns matched counts; delete needs a filter."""

    @pytest.mark.anyio
    async def test_update_bumps_updated_at(self, gateway) -> None:
        row = await _deliverable(gateway, "API")
        matched = await gateway.update("deliverables", {"id": row["id"]}, {"progress": 40})
        assert matched == 1
        stored = await gateway.select_one("deliverables", {"id": row["id"]})
        assert stored["progress"] == 40
        assert stored["updated_at"] != stored["created_at"]

    @pytest.mark.anyio
    async def test_update_missing_row_matches_nothing(self, gateway) -> None:
        assert await gateway.update("deliverables", {"id": uuid4()}, {"progress": 10}) == 0

    @pytest.mark.anyio
    async def test_update_date_column(self, gateway) -> None:
        row = await _deliverable(gateway, "API")
        await gateway.update(
            "deliverables", {"id": row["id"]}, {"deadline": date(2026, 12, 1)}
        )
        stored = await gateway.select_one("deliverables", {"id": row["id"]})
        assert stored["deadline"] == date(2026, 12, 1)

    @pytest.mark.anyio
    async def test_delete_requires_filter(self, gateway) -> None:
        with pytest.raises(GatewayError, match="unfiltered"):
            await gateway.delete("deliverables", {})

    @pytest.mark.anyio
    async def test_delete_cascades_edges(self, gateway) -> None:
        a = await _deliverable(gateway, "A")
        b = await _deliverable(gateway, "B")
        await gateway.insert("deliverable_dependencies", {"deliverable_id": a["id"], "depends_on_id": b["id"]})
        assert await gateway.delete("deliverables", {"id": b["id"]}) == 1
        assert await gateway.select("deliverable_dependencies") == []

    @pytest.mark.anyio
    async def test_clear_everything(self, gateway, add_members) -> None:
        await add_members("A", "B")
        await _deliverable(gateway, "X")
        for collection in CLEAR_ORDER:
            await gateway.clear(collection)
        for collection in COLLECTIONS:
            assert await gateway.select(collection) == []
