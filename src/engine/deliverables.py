"""Deliverable aggregator.

Loads deliverables with their owners and dependency edges into one
enriched, newest-first list and runs the create / update / progress /
delete actions against it. Dependency edges are delegated to
``DependencyGraphMaintainer``.

Creating a deliverable with dependencies is two gateway calls. When the
edge batch fails the new deliverable is deleted again; if that delete
fails too it is logged, and the caller is told the save failed either way.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, time, timezone
from typing import Any
from uuid import UUID

from src.engine.base import BaseAggregator
from src.engine.dependency_graph import DependencyGraphMaintainer
from src.engine.identity import UserResolver
from src.models.common import DeliverableStatus, utc_now
from src.models.deliverable import DeliverableWithDetails
from src.models.results import ActionResult, ErrorKind
from src.models.validation import (
    DeliverableCreate,
    DeliverableUpdate,
    FieldError,
    format_validation_error,
    validate,
)
from src.repositories.gateway import DataGateway, GatewayError

logger = logging.getLogger(__name__)

DELIVERABLES = "deliverables"
DEPENDENCIES = "deliverable_dependencies"

AT_RISK_WINDOW_DAYS = 3
AT_RISK_PROGRESS_BELOW = 75

MSG_NOT_FOUND = "Deliverable not found"
MSG_FIELD_REQUIRED = "Field required"
MSG_SAVE_FAILED = (
    "Deliverable could not be saved because adding its dependencies failed. Please try again."
)


def days_until(deadline: date, now: datetime) -> int:
    """Whole days from ``now`` to the deadline's UTC midnight, rounded up."""
    due = datetime.combine(deadline, time.min, tzinfo=timezone.utc)
    return math.ceil((due - now).total_seconds() / 86400)


def derive_status(
    progress: int,
    deadline: date | None,
    *,
    now: datetime,
    default: DeliverableStatus = DeliverableStatus.UPCOMING,
) -> DeliverableStatus:
    """Status implied by a progress value.

    100 is completed, 0 is ``default``. In between, a deliverable past its
    deadline, or due within three days and under 75%, is at risk.
    """
    if progress >= 100:
        return DeliverableStatus.COMPLETED
    if progress <= 0:
        return default
    if deadline is None:
        return DeliverableStatus.IN_PROGRESS
    days = days_until(deadline, now)
    if days < 0 or (days <= AT_RISK_WINDOW_DAYS and progress < AT_RISK_PROGRESS_BELOW):
        return DeliverableStatus.AT_RISK
    return DeliverableStatus.IN_PROGRESS


class DeliverableAggregator(BaseAggregator[DeliverableWithDetails]):
    load_error_message = "Failed to load deliverables"

    def __init__(
        self,
        gateway: DataGateway,
        resolver: UserResolver | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(gateway, resolver)
        self._clock = clock
        self._graph = DependencyGraphMaintainer(gateway, self)

    @property
    def deliverables(self) -> tuple[DeliverableWithDetails, ...]:
        return self._items

    def get(self, deliverable_id: UUID) -> DeliverableWithDetails | None:
        return next((d for d in self._items if d.id == deliverable_id), None)

    # -- load -------------------------------------------------------------

    async def _fetch(self) -> tuple[Any, ...]:
        members = await self._fetch_members()
        rows = await self._gateway.select(DELIVERABLES, order_by="created_at", descending=True)
        edges = await self._gateway.select(DEPENDENCIES, order_by="created_at") if rows else []
        return members, rows, edges

    def _accept(self, data: tuple[Any, ...]) -> None:
        members, rows, edges = data
        self.members = members

        adjacency: dict[UUID, list[UUID]] = {}
        for edge in edges:
            adjacency.setdefault(edge["deliverable_id"], []).append(edge["depends_on_id"])

        self._items = tuple(
            self._enrich(row, adjacency.get(row["id"], ())) for row in rows
        )

    def _enrich(self, row: Mapping[str, Any], dependency_ids: Iterable[UUID]) -> DeliverableWithDetails:
        return DeliverableWithDetails.model_validate({
            **row,
            "owner_name": self._member_name(row.get("owner_id"), missing="Unassigned"),
            "dependency_ids": tuple(dependency_ids),
        })

    # -- actions ----------------------------------------------------------

    async def create(
        self,
        *,
        title: Any,
        description: Any = None,
        owner_id: Any = None,
        deadline: Any = None,
        dependency_ids: Sequence[Any] = (),
    ) -> ActionResult:
        outcome = validate(DeliverableCreate, {
            "title": title,
            "description": description or None,
            "owner_id": owner_id,
            "deadline": deadline,
            "status": DeliverableStatus.UPCOMING,
            "progress": 0,
        })
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        try:
            depends_on = _parse_ids(dependency_ids)
        except ValueError:
            return ActionResult.fail("dependency_ids: Invalid UUID", ErrorKind.VALIDATION)

        try:
            rows = await self._gateway.insert(DELIVERABLES, outcome.data)
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Deliverable insert failed")
            return ActionResult.fail("Failed to create deliverable")
        row = rows[0]

        if depends_on:
            try:
                await self._gateway.insert(
                    DEPENDENCIES,
                    [{"deliverable_id": row["id"], "depends_on_id": dep} for dep in depends_on],
                )
            except Exception as exc:
                logger.error("Failed to insert dependencies for %s: %s", row["id"], exc)
                await self._compensate(row["id"])
                return ActionResult.fail(MSG_SAVE_FAILED, ErrorKind.PARTIAL_FAILURE)

        enriched = self._enrich(row, depends_on)
        self.apply(lambda items: (enriched, *items))
        return ActionResult.ok(id=row["id"])

    async def _compensate(self, deliverable_id: UUID) -> None:
        try:
            await self._gateway.delete(DELIVERABLES, {"id": deliverable_id})
        except Exception as exc:
            logger.error(
                "Failed to roll back deliverable %s after dependency failure: %s",
                deliverable_id, exc,
            )

    async def update(self, deliverable_id: UUID, fields: Mapping[str, Any]) -> ActionResult:
        outcome = validate(DeliverableUpdate, dict(fields), partial=True)
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        patch = {**outcome.data, "updated_at": self._clock()}

        try:
            matched = await self._gateway.update(DELIVERABLES, {"id": deliverable_id}, patch)
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Deliverable update failed for %s", deliverable_id)
            return ActionResult.fail("Failed to update deliverable")
        if matched == 0:
            return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)

        changes = dict(patch)
        if "owner_id" in changes:
            changes["owner_name"] = self._member_name(changes["owner_id"], missing="Unassigned")
        self.apply(
            lambda items: [d.model_copy(update=changes) if d.id == deliverable_id else d for d in items]
        )
        return ActionResult.ok()

    async def update_progress(self, deliverable_id: UUID, progress: Any) -> ActionResult:
        """Set progress and the status it implies.

        The only path that keeps ``progress == 100`` and ``completed`` in step.
        """
        outcome = validate(DeliverableUpdate, {"progress": progress}, partial=True)
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        if "progress" not in outcome.data:
            missing = [FieldError("progress", MSG_FIELD_REQUIRED)]
            return ActionResult.fail(format_validation_error(missing), ErrorKind.VALIDATION)
        current = self.get(deliverable_id)
        if current is None:
            return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)

        value = outcome.data["progress"]
        status = derive_status(value, current.deadline, now=self._clock())
        return await self.update(deliverable_id, {"progress": value, "status": status})

    async def delete(self, deliverable_id: UUID) -> ActionResult:
        try:
            matched = await self._gateway.delete(DELIVERABLES, {"id": deliverable_id})
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Deliverable delete failed for %s", deliverable_id)
            return ActionResult.fail("Failed to delete deliverable")
        if matched == 0:
            return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)

        # Edges pointing at it went with the row (FK cascade).
        self.apply(lambda items: [
            d.model_copy(update={
                "dependency_ids": tuple(x for x in d.dependency_ids if x != deliverable_id),
            }) if deliverable_id in d.dependency_ids else d
            for d in items
            if d.id != deliverable_id
        ])
        return ActionResult.ok()

    # -- dependencies -----------------------------------------------------

    async def add_dependency(self, deliverable_id: UUID, depends_on_id: UUID) -> ActionResult:
        return await self._graph.add_dependency(deliverable_id, depends_on_id)

    async def remove_dependency(self, deliverable_id: UUID, depends_on_id: UUID) -> ActionResult:
        return await self._graph.remove_dependency(deliverable_id, depends_on_id)


def _parse_ids(values: Sequence[Any]) -> list[UUID]:
    parsed: list[UUID] = []
    for value in values:
        uid = value if isinstance(value, UUID) else UUID(str(value))
        if uid not in parsed:
            parsed.append(uid)
    return parsed
