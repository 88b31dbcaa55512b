"""Status update feed: posts, help requests, and reactions. Append-only."""

import logging
from collections import Counter
from typing import Any
from uuid import UUID

from src.engine.base import BaseAggregator
from src.models.results import ActionResult, ErrorKind
from src.models.update import UpdateWithAuthor
from src.models.validation import (
    UpdateCreate,
    UpdateReactionCreate,
    format_validation_error,
    validate,
)
from src.repositories.gateway import GatewayError, GatewayErrorCode

logger = logging.getLogger(__name__)

UPDATES = "updates"
REACTIONS = "update_reactions"

MSG_NO_USER = "No user logged in"
MSG_ALREADY_REACTED = "You have already reacted to this update"
MSG_NOT_FOUND = "Update not found"


class UpdateFeed(BaseAggregator[UpdateWithAuthor]):
    load_error_message = "Failed to load updates"

    @property
    def updates(self) -> tuple[UpdateWithAuthor, ...]:
        return self._items

    async def _fetch(self) -> tuple[Any, ...]:
        members = await self._fetch_members()
        rows = await self._gateway.select(UPDATES, order_by="created_at", descending=True)
        reactions = await self._gateway.select(REACTIONS) if rows else []
        return members, rows, reactions

    def _accept(self, data: tuple[Any, ...]) -> None:
        members, rows, reactions = data
        self.members = members
        tallies: dict[UUID, Counter[str]] = {}
        for reaction in reactions:
            tallies.setdefault(reaction["update_id"], Counter())[reaction["reaction_type"]] += 1
        self._items = tuple(
            UpdateWithAuthor.model_validate({
                **row,
                "author_name": self._member_name(row.get("author_id"), missing="Unknown"),
                "reactions": dict(tallies.get(row["id"], {})),
            })
            for row in rows
        )

    async def post(
        self,
        *,
        content: Any,
        deliverable_id: Any = None,
        is_help_request: bool = False,
    ) -> ActionResult:
        """Post a status update, or a help request when ``is_help_request``."""
        user_id = await self.current_user_id()
        if user_id is None:
            return ActionResult.fail(MSG_NO_USER, ErrorKind.VALIDATION)
        outcome = validate(UpdateCreate, {
            "content": content,
            "author_id": user_id,
            "deliverable_id": deliverable_id,
            "is_help_request": is_help_request,
        })
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)

        try:
            rows = await self._gateway.insert(UPDATES, outcome.data)
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Update insert failed")
            return ActionResult.fail("Failed to post update")
        row = rows[0]

        posted = UpdateWithAuthor.model_validate({
            **row, "author_name": self._member_name(user_id, missing="Unknown"),
        })
        self.apply(lambda items: (posted, *items))
        return ActionResult.ok(id=row["id"])

    async def react(self, update_id: UUID, reaction_type: Any) -> ActionResult:
        user_id = await self.current_user_id()
        if user_id is None:
            return ActionResult.fail(MSG_NO_USER, ErrorKind.VALIDATION)
        outcome = validate(UpdateReactionCreate, {
            "update_id": update_id,
            "member_id": user_id,
            "reaction_type": reaction_type,
        })
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        kind = outcome.data["reaction_type"]

        try:
            await self._gateway.insert(REACTIONS, outcome.data)
        except GatewayError as exc:
            if exc.code == GatewayErrorCode.UNIQUE_VIOLATION:
                return ActionResult.fail(MSG_ALREADY_REACTED, ErrorKind.CONFLICT)
            if exc.code == GatewayErrorCode.FOREIGN_KEY_VIOLATION:
                return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Reaction insert failed for %s", update_id)
            return ActionResult.fail("Failed to add reaction")

        def _tally(u: UpdateWithAuthor) -> UpdateWithAuthor:
            reactions = {**u.reactions, kind: u.reactions.get(kind, 0) + 1}
            return u.model_copy(update={"reactions": reactions})

        self.apply(lambda items: [_tally(u) if u.id == outcome.data["update_id"] else u for u in items])
        return ActionResult.ok()
