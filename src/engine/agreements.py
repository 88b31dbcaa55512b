"""Agreement aggregator.

Holds the newest-first list of agreements with their signature counts and
runs create / sign / delete against it. An agreement turns ``active`` when
the signature that brings its count up to the roster size lands; nothing
else changes status automatically.

``total_members`` is the live roster size at load time for every
agreement, so adding a member raises the bar for agreements created before
they joined.

Deletion is split in two. ``delete_agreement`` only removes the agreement
from the list and hands back a snapshot; ``permanently_delete_agreement``
issues the backend delete. The undo orchestrator sits between them and
calls ``restore_agreement`` when the user changes their mind.
"""

import bisect
import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from src.engine.base import BaseAggregator
from src.engine.identity import UserResolver
from src.models.agreement import AgreementWithSignatures, SignatureDisplay
from src.models.common import AgreementStatus, as_utc, utc_now
from src.models.results import ActionResult, DeleteResult, ErrorKind
from src.models.validation import (
    AgreementCreate,
    AgreementSignatureCreate,
    format_validation_error,
    validate,
)
from src.repositories.gateway import DataGateway, GatewayError, GatewayErrorCode

logger = logging.getLogger(__name__)

AGREEMENTS = "agreements"
SIGNATURES = "agreement_signatures"

MSG_NO_USER = "No user logged in"
MSG_ALREADY_SIGNED = "You have already signed this agreement"
MSG_CHECK_FAILED = "Failed to check signature status"
MSG_NOT_FOUND = "Agreement not found!"


def format_time_ago(moment: datetime, *, now: datetime) -> str:
    seconds = int((now - as_utc(moment)).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} {'minute' if minutes == 1 else 'minutes'} ago"
    if seconds < 86400:
        hours = seconds // 3600
        return f"{hours} {'hour' if hours == 1 else 'hours'} ago"
    if seconds < 604800:
        days = seconds // 86400
        return f"{days} {'day' if days == 1 else 'days'} ago"
    return as_utc(moment).date().isoformat()


def newest_first_key(agreement: AgreementWithSignatures) -> tuple[float, int]:
    """Sort key for the agreement list: newest first, then higher id first."""
    return -as_utc(agreement.created_at).timestamp(), -agreement.id.int


class AgreementAggregator(BaseAggregator[AgreementWithSignatures]):
    load_error_message = "Failed to load agreements"

    def __init__(
        self,
        gateway: DataGateway,
        resolver: UserResolver | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(gateway, resolver)
        self._clock = clock
        # Soft-deleted, not yet committed. Hidden from reloads.
        self._pending_ids: set[UUID] = set()

    @property
    def agreements(self) -> tuple[AgreementWithSignatures, ...]:
        return self._items

    def get(self, agreement_id: UUID) -> AgreementWithSignatures | None:
        return next((a for a in self._items if a.id == agreement_id), None)

    # -- load -------------------------------------------------------------

    async def _fetch(self) -> tuple[Any, ...]:
        members = await self._fetch_members()
        rows = await self._gateway.select(AGREEMENTS, order_by="created_at", descending=True)
        signatures = await self._gateway.select(SIGNATURES) if rows else []
        return members, rows, signatures

    def _accept(self, data: tuple[Any, ...]) -> None:
        members, rows, signatures = data
        self.members = members
        counts = Counter(s["agreement_id"] for s in signatures)
        loaded = (
            AgreementWithSignatures.model_validate({
                **row,
                "signed_by": counts.get(row["id"], 0),
                "total_members": len(members),
                "creator_name": self._member_name(row.get("created_by"), missing="Unknown"),
            })
            for row in rows
            if row["id"] not in self._pending_ids
        )
        # Same-timestamp rows come back in storage order; pin them down.
        self._items = tuple(sorted(loaded, key=newest_first_key))

    # -- actions ----------------------------------------------------------

    async def create(self, *, title: Any, description: Any = None) -> ActionResult:
        user_id = await self.current_user_id()
        outcome = validate(AgreementCreate, {
            "title": title,
            "description": description or None,
            "status": AgreementStatus.PENDING,
            "created_by": user_id,
        })
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)

        try:
            rows = await self._gateway.insert(AGREEMENTS, outcome.data)
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Agreement insert failed")
            return ActionResult.fail("Failed to create agreement")
        row = rows[0]

        creator = self._member_name(user_id, missing="You")
        enriched = AgreementWithSignatures.model_validate({
            **row,
            "signed_by": 0,
            "total_members": len(self.members),
            "creator_name": "You" if creator == "Unknown" else creator,
        })
        self.apply(lambda items: (enriched, *items))
        return ActionResult.ok(id=row["id"])

    async def sign(self, agreement_id: UUID) -> ActionResult:
        user_id = await self.current_user_id()
        if user_id is None:
            return ActionResult.fail(MSG_NO_USER, ErrorKind.VALIDATION)

        outcome = validate(
            AgreementSignatureCreate, {"agreement_id": agreement_id, "member_id": user_id}
        )
        if not outcome.success:
            return ActionResult.fail(format_validation_error(outcome.errors), ErrorKind.VALIDATION)
        agreement_id = outcome.data["agreement_id"]

        # Advisory. The unique constraint below is the real guard.
        try:
            existing = await self._gateway.select_one(SIGNATURES, outcome.data)
        except Exception as exc:
            logger.error("Signature check failed for %s: %s", agreement_id, exc)
            return ActionResult.fail(MSG_CHECK_FAILED, ErrorKind.TRANSIENT)
        if existing is not None:
            return ActionResult.fail(MSG_ALREADY_SIGNED, ErrorKind.CONFLICT)

        try:
            await self._gateway.insert(SIGNATURES, outcome.data)
        except GatewayError as exc:
            if exc.code == GatewayErrorCode.UNIQUE_VIOLATION:
                return ActionResult.fail(MSG_ALREADY_SIGNED, ErrorKind.CONFLICT)
            if exc.code == GatewayErrorCode.FOREIGN_KEY_VIOLATION:
                return ActionResult.fail(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Signature insert failed for %s", agreement_id)
            return ActionResult.fail("Failed to sign agreement")

        current = self.get(agreement_id)
        signed_by = (current.signed_by if current else 0) + 1
        total = current.total_members if current else 0
        activate = total > 0 and signed_by >= total

        if activate:
            try:
                await self._gateway.update(
                    AGREEMENTS, {"id": agreement_id}, {"status": AgreementStatus.ACTIVE}
                )
            except Exception as exc:
                # The signature stands; only the status flag lags.
                logger.error("Failed to update agreement status for %s: %s", agreement_id, exc)

        def _signed(a: AgreementWithSignatures) -> AgreementWithSignatures:
            update: dict[str, Any] = {"signed_by": signed_by}
            if activate:
                update["status"] = AgreementStatus.ACTIVE
            return a.model_copy(update=update)

        self.apply(lambda items: [_signed(a) if a.id == agreement_id else a for a in items])
        return ActionResult.ok()

    def delete_agreement(self, agreement_id: UUID) -> DeleteResult:
        """Remove from the list only. No backend call."""
        index = next((i for i, a in enumerate(self._items) if a.id == agreement_id), None)
        if index is None:
            return DeleteResult(success=False, error=MSG_NOT_FOUND, kind=ErrorKind.NOT_FOUND)

        snapshot = self._items[index]
        self._pending_ids.add(agreement_id)
        self.apply(lambda items: [a for a in items if a.id != agreement_id])
        return DeleteResult(success=True, id=agreement_id, deleted=snapshot, index=index)

    async def permanently_delete_agreement(self, agreement_id: UUID) -> ActionResult:
        try:
            await self._gateway.delete(AGREEMENTS, {"id": agreement_id})
        except GatewayError as exc:
            return ActionResult.fail(exc.message, exc.kind)
        except Exception:
            logger.exception("Agreement delete failed for %s", agreement_id)
            return ActionResult.fail("Failed to delete agreement")
        self._pending_ids.discard(agreement_id)
        return ActionResult.ok()

    def restore_agreement(self, snapshot: AgreementWithSignatures) -> None:
        """Put a soft-deleted agreement back where it was.

        The slot comes from the list order itself, so restores land in the
        right place whatever else was deleted or reloaded meanwhile.
        """
        self._pending_ids.discard(snapshot.id)

        def _reinsert(items: tuple[AgreementWithSignatures, ...]) -> list[AgreementWithSignatures]:
            if any(a.id == snapshot.id for a in items):
                return list(items)
            position = bisect.bisect_left(items, newest_first_key(snapshot), key=newest_first_key)
            return [*items[:position], snapshot, *items[position:]]

        self.apply(_reinsert)

    # -- signature queries ------------------------------------------------

    async def fetch_signatures(self, agreement_id: UUID) -> list[SignatureDisplay]:
        """Every roster member, signed or not, for one agreement."""
        try:
            rows = await self._gateway.select(SIGNATURES, {"agreement_id": agreement_id})
        except Exception as exc:
            logger.error("Failed to fetch signatures for %s: %s", agreement_id, exc)
            return []

        by_member = {row["member_id"]: row for row in rows}
        now = self._clock()
        displays = []
        for member in self.members:
            signature = by_member.get(member.id)
            displays.append(SignatureDisplay(
                id=signature["id"] if signature else member.id,
                member_id=member.id,
                name=member.name,
                signed=signature is not None,
                signed_at=as_utc(signature["signed_at"]) if signature else None,
                signed_ago=format_time_ago(signature["signed_at"], now=now) if signature else None,
            ))
        return displays

    async def has_user_signed(self, agreement_id: UUID) -> bool:
        user_id = await self.current_user_id()
        if user_id is None:
            return False
        try:
            row = await self._gateway.select_one(
                SIGNATURES, {"agreement_id": agreement_id, "member_id": user_id}
            )
        except Exception as exc:
            logger.error("Failed to check signature status for %s: %s", agreement_id, exc)
            return False
        return row is not None
