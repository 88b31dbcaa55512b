"""Dependency edge maintenance for deliverables.

``DependencyGraphMaintainer`` implements the add/remove edge operations
behind the deliverable aggregator. It runs the cheap checks it can (self
loop, existence against the loaded list, an advisory walk over the loaded
adjacency) and maps gateway conflicts to user-facing messages. The
authoritative cycle check belongs to the storage side: the gateway walks
the full persisted edge set before every dependency insert.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Protocol
from uuid import UUID

from src.engine.graph import DependencyGraph
from src.models.deliverable import DeliverableWithDetails
from src.models.results import ActionResult, ErrorKind
from src.models.validation import DeliverableDependencyCreate, format_validation_error, validate
from src.repositories.gateway import DataGateway, GatewayError, GatewayErrorCode

logger = logging.getLogger(__name__)

DEPENDENCIES = "deliverable_dependencies"

MSG_SELF_DEPENDENCY = "A deliverable cannot depend on itself"
MSG_NOT_FOUND = "Deliverable not found"
MSG_DEPENDENCY_NOT_FOUND = "Dependency deliverable not found"
MSG_ALREADY_EXISTS = "This dependency already exists"
MSG_CIRCULAR = "This would create a circular dependency"


class DeliverableStore(Protocol):
    """What the maintainer needs from the aggregator that owns the list."""

    @property
    def deliverables(self) -> tuple[DeliverableWithDetails, ...]: ...

    def apply(
        self,
        transform: Callable[[tuple[DeliverableWithDetails, ...]], Iterable[DeliverableWithDetails]],
    ) -> None: ...


class DependencyGraphMaintainer:
    def __init__(self, gateway: DataGateway, store: DeliverableStore) -> None:
        self._gateway = gateway
        self._store = store

    def loaded_graph(self) -> DependencyGraph:
        return DependencyGraph.from_edges(
            (d.id, dep) for d in self._store.deliverables for dep in d.dependency_ids
        )

    async def add_dependency(self, deliverable_id: UUID, depends_on_id: UUID) -> ActionResult:
        if str(deliverable_id) == str(depends_on_id):
            return ActionResult.fail(MSG_SELF_DEPENDENCY, ErrorKind.VALIDATION)

        outcome = validate(
            DeliverableDependencyCreate,
            {"deliverable_id": deliverable_id, "depends_on_id": depends_on_id},
        )
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        deliverable_id = outcome.data["deliverable_id"]
        depends_on_id = outcome.data["depends_on_id"]

        known = {d.id for d in self._store.deliverables}
        if deliverable_id not in known:
            return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        if depends_on_id not in known:
            return ActionResult.fail(MSG_DEPENDENCY_NOT_FOUND, ErrorKind.NOT_FOUND)

        # Advisory only: the loaded list may be stale. The gateway re-checks
        # against the persisted edge set.
        if self.loaded_graph().would_create_cycle(deliverable_id, depends_on_id):
            return ActionResult.fail(MSG_CIRCULAR, ErrorKind.CONFLICT)

        try:
            await self._gateway.insert(
                DEPENDENCIES,
                {"deliverable_id": deliverable_id, "depends_on_id": depends_on_id},
            )
        except GatewayError as exc:
            if exc.code == GatewayErrorCode.UNIQUE_VIOLATION:
                return ActionResult.fail(MSG_ALREADY_EXISTS, ErrorKind.CONFLICT)
            if exc.code == GatewayErrorCode.RAISE_EXCEPTION:
                return ActionResult.fail(MSG_CIRCULAR, ErrorKind.CONFLICT)
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("add_dependency failed for %s -> %s", deliverable_id, depends_on_id)
            return ActionResult.fail("Failed to add dependency")

        self._store.apply(
            lambda items: [
                d.model_copy(update={"dependency_ids": (*d.dependency_ids, depends_on_id)})
                if d.id == deliverable_id else d
                for d in items
            ]
        )
        return ActionResult.ok()

    async def remove_dependency(self, deliverable_id: UUID, depends_on_id: UUID) -> ActionResult:
        try:
            await self._gateway.delete(
                DEPENDENCIES,
                {"deliverable_id": deliverable_id, "depends_on_id": depends_on_id},
            )
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("remove_dependency failed for %s -> %s", deliverable_id, depends_on_id)
            return ActionResult.fail("Failed to remove dependency")

        self._store.apply(
            lambda items: [
                d.model_copy(update={
                    "dependency_ids": tuple(x for x in d.dependency_ids if x != depends_on_id),
                })
                if d.id == deliverable_id else d
                for d in items
            ]
        )
        return ActionResult.ok()
