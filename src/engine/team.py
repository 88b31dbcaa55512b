"""Team roster: list members and add new ones."""

import logging
from typing import Any

from src.engine.base import BaseAggregator
from src.models.common import MemberRole
from src.models.results import ActionResult, ErrorKind
from src.models.team import TeamMember
from src.models.validation import TeamMemberCreate, format_validation_error, validate
from src.repositories.gateway import GatewayError, GatewayErrorCode

logger = logging.getLogger(__name__)

MSG_DUPLICATE_EMAIL = "A team member with this email already exists"


class TeamRoster(BaseAggregator[TeamMember]):
    """Members ordered by name, the same order every other view uses."""

    load_error_message = "Failed to load team members"

    async def _fetch(self) -> tuple[TeamMember, ...]:
        return await self._fetch_members()

    def _accept(self, data: tuple[TeamMember, ...]) -> None:
        self.members = data
        self._items = data

    async def add_member(
        self,
        *,
        name: Any,
        email: Any,
        role: Any = MemberRole.MEMBER,
        avatar_url: Any = None,
    ) -> ActionResult:
        outcome = validate(TeamMemberCreate, {
            "name": name, "email": email, "role": role, "avatar_url": avatar_url,
        })
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)

        try:
            rows = await self._gateway.insert("team_members", outcome.data)
        except GatewayError as exc:
            if exc.code == GatewayErrorCode.UNIQUE_VIOLATION:
                return ActionResult.fail(MSG_DUPLICATE_EMAIL, ErrorKind.CONFLICT)
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Team member insert failed")
            return ActionResult.fail("Failed to add team member")

        member = TeamMember.model_validate(rows[0])
        self.apply(lambda items: sorted((*items, member), key=lambda m: m.name))
        self.members = self._items
        return ActionResult.ok(id=member.id)
