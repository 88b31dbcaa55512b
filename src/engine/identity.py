"""Current-user resolution.

There is no authentication yet. Aggregators ask a ``UserResolver`` for the
acting member id so a real session-backed resolver can replace the
placeholder without touching them.
"""

from typing import Protocol
from uuid import UUID

from src.repositories.gateway import DataGateway


class UserResolver(Protocol):
    async def get_current_user_id(self) -> UUID | None: ...


class FirstMemberResolver:
    """Placeholder: the earliest-created team member acts for everyone.

    Must be replaced before any multi-user deployment.
    """

    def __init__(self, gateway: DataGateway) -> None:
        self._gateway = gateway

    async def get_current_user_id(self) -> UUID | None:
        rows = await self._gateway.select("team_members", order_by="created_at")
        return rows[0]["id"] if rows else None


class StaticUserResolver:
    """Fixed identity. ``member_id`` may be reassigned to switch users."""

    def __init__(self, member_id: UUID | None = None) -> None:
        self.member_id = member_id

    async def get_current_user_id(self) -> UUID | None:
        return self.member_id
