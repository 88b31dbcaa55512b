"""Shared machinery for the view aggregators.

Each aggregator owns one immutable tuple of view records. Callers read it
through a property and change it only via ``apply(transform)``, where the
transform is a pure function from the previous tuple to the next one.

Loads run under a ``ViewScope``: every load takes a ``RequestToken`` when it
starts, and its response is applied only if the token is still current when
the response arrives. Disposing the view, or starting a newer load, makes
older tokens stale, so late responses are dropped instead of overwriting
state that has moved on.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar
from uuid import UUID

from src.engine.identity import FirstMemberResolver, UserResolver
from src.models.team import TeamMember
from src.repositories.gateway import DataGateway, GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestToken:
    __slots__ = ("_scope", "_generation")

    def __init__(self, scope: "ViewScope", generation: int) -> None:
        self._scope = scope
        self._generation = generation

    @property
    def is_current(self) -> bool:
        return not self._scope.disposed and self._scope.generation == self._generation


class ViewScope:
    """Relevance tracker for in-flight requests of one view."""

    def __init__(self) -> None:
        self.generation = 0
        self.disposed = False

    def begin(self) -> RequestToken:
        self.generation += 1
        return RequestToken(self, self.generation)

    def dispose(self) -> None:
        self.disposed = True


class LoadableView:
    """Loading/error state around a fetch-then-accept load cycle.

    Subclasses implement ``_fetch`` (all I/O) and ``_accept`` (state writes
    only, no awaits).
    """

    load_error_message = "Failed to load data"

    def __init__(self, gateway: DataGateway) -> None:
        self._gateway = gateway
        self._scope = ViewScope()
        self.is_loading = True
        self.error: str | None = None

    @property
    def disposed(self) -> bool:
        return self._scope.disposed

    def dispose(self) -> None:
        self._scope.dispose()

    async def load(self) -> None:
        token = self._scope.begin()
        self.is_loading = True
        self.error = None
        try:
            data = await self._fetch()
        except GatewayError as exc:
            if token.is_current:
                self.error = exc.message
                self.is_loading = False
            return
        except Exception:
            logger.exception("%s load failed", type(self).__name__)
            if token.is_current:
                self.error = self.load_error_message
                self.is_loading = False
            return

        if not token.is_current:
            logger.debug("Dropping stale %s response", type(self).__name__)
            return
        self._accept(data)
        self.is_loading = False

    async def refresh(self) -> None:
        await self.load()

    async def _fetch(self) -> Any:
        raise NotImplementedError

    def _accept(self, data: Any) -> None:
        raise NotImplementedError


class BaseAggregator(LoadableView, Generic[T]):
    """Adds the owned list, the roster, and the current-user boundary."""

    def __init__(self, gateway: DataGateway, resolver: UserResolver | None = None) -> None:
        super().__init__(gateway)
        self._resolver = resolver or FirstMemberResolver(gateway)
        self._items: tuple[T, ...] = ()
        self.members: tuple[TeamMember, ...] = ()

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    def apply(self, transform: Callable[[tuple[T, ...]], Iterable[T]]) -> None:
        if self._scope.disposed:
            return
        self._items = tuple(transform(self._items))

    # -- shared lookups ---------------------------------------------------

    async def current_user_id(self) -> UUID | None:
        return await self._resolver.get_current_user_id()

    async def _fetch_members(self) -> tuple[TeamMember, ...]:
        rows = await self._gateway.select("team_members", order_by="name")
        return tuple(TeamMember.model_validate(r) for r in rows)

    def _member_name(self, member_id: UUID | None, *, missing: str) -> str:
        if member_id is None:
            return missing
        for member in self.members:
            if member.id == member_id:
                return member.name
        return "Unknown"
