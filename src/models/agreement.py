"""Agreement models: team commitments that activate once fully signed."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, computed_field

from src.models.common import AgreementStatus, CommitView, UTCTimestamp, UUIDv7


class Agreement(CommitView):
    """Persisted agreement row."""

    id: UUIDv7
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    status: AgreementStatus = AgreementStatus.PENDING
    created_by: UUID | None = None
    created_at: UTCTimestamp
    updated_at: UTCTimestamp


class AgreementSignature(CommitView):
    """One member's signature on one agreement."""

    id: UUIDv7
    agreement_id: UUID
    member_id: UUID
    signed_at: UTCTimestamp


class AgreementWithSignatures(Agreement):
    """Agreement enriched with signature counts and the creator's name.

    ``total_members`` is the live roster size at load time, applied to every
    agreement regardless of when it was created.
    """

    signed_by: int = 0
    total_members: int = 0
    creator_name: str = "Unknown"

    @computed_field
    @property
    def completion_percent(self) -> int:
        if self.total_members <= 0:
            return 0
        return min(100, (self.signed_by * 200 + self.total_members) // (2 * self.total_members))

    @computed_field
    @property
    def is_fully_signed(self) -> bool:
        return self.total_members > 0 and self.signed_by >= self.total_members


class SignatureDisplay(CommitView):
    """Roster entry for one agreement: who signed and who has not."""

    id: UUID
    member_id: UUID
    name: str
    signed: bool
    signed_at: datetime | None = None
    signed_ago: str | None = None
