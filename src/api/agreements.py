"""Agreement endpoints, including delete-with-undo.

GET    /v1/agreements                                 - list, newest first
POST   /v1/agreements                                 - create (pending)
POST   /v1/agreements/{agreement_id}/sign             - sign as the current user
GET    /v1/agreements/{agreement_id}/signatures       - roster with signed flags
GET    /v1/agreements/{agreement_id}/signed           - has the current user signed
DELETE /v1/agreements/{agreement_id}                  - soft delete, starts undo window
GET    /v1/agreements/deletions                       - pending deletions
POST   /v1/agreements/deletions/{deletion_id}/undo    - restore
POST   /v1/agreements/deletions/{deletion_id}/dismiss - delete now
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from src.api.dependencies import get_agreements, get_undo
from src.api.errors import raise_for_result
from src.engine.agreements import AgreementAggregator
from src.engine.undo import UndoOrchestrator
from src.models.agreement import AgreementWithSignatures, SignatureDisplay

router = APIRouter(prefix="/v1/agreements", tags=["agreements"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CreateAgreementRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    description: str | None = None


class CreatedResponse(BaseModel):
    id: str


class SignResponse(BaseModel):
    agreement_id: str
    signed_by: int
    total_members: int
    status: str


class SignedResponse(BaseModel):
    agreement_id: str
    signed: bool


class PendingDeletionResponse(BaseModel):
    deletion_id: str
    agreement_id: str
    index: int
    message: str
    duration_ms: int
    remaining_ms: float
    progress: float


class DeletionOutcomeResponse(BaseModel):
    deletion_id: str
    agreement_id: str
    state: str


def _pending_out(undo: UndoOrchestrator, deletion_id: UUID) -> PendingDeletionResponse:
    entry = undo.get(deletion_id)
    return PendingDeletionResponse(
        deletion_id=str(entry.deletion_id),
        agreement_id=str(entry.entity_id),
        index=entry.index,
        message=entry.message,
        duration_ms=entry.duration_ms,
        remaining_ms=undo.remaining_ms(deletion_id),
        progress=undo.progress(deletion_id),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=list[AgreementWithSignatures])
async def list_agreements(
    agreements: AgreementAggregator = Depends(get_agreements),
) -> list[AgreementWithSignatures]:
    return list(agreements.agreements)


@router.post("", status_code=201, response_model=CreatedResponse)
async def create_agreement(
    body: CreateAgreementRequest,
    agreements: AgreementAggregator = Depends(get_agreements),
) -> CreatedResponse:
    result = await agreements.create(title=body.title, description=body.description)
    raise_for_result(result)
    return CreatedResponse(id=str(result.id))


@router.get("/deletions", response_model=list[PendingDeletionResponse])
async def list_pending_deletions(
    undo: UndoOrchestrator = Depends(get_undo),
) -> list[PendingDeletionResponse]:
    return [_pending_out(undo, entry.deletion_id) for entry in undo.pending]


@router.post("/deletions/{deletion_id}/undo", response_model=DeletionOutcomeResponse)
async def undo_deletion(
    deletion_id: UUID,
    undo: UndoOrchestrator = Depends(get_undo),
) -> DeletionOutcomeResponse:
    result = undo.undo(deletion_id)
    raise_for_result(result)
    return DeletionOutcomeResponse(
        deletion_id=str(deletion_id),
        agreement_id=str(result.id),
        state=undo.state(deletion_id).value,
    )


@router.post("/deletions/{deletion_id}/dismiss", response_model=DeletionOutcomeResponse)
async def dismiss_deletion(
    deletion_id: UUID,
    undo: UndoOrchestrator = Depends(get_undo),
) -> DeletionOutcomeResponse:
    result = await undo.dismiss(deletion_id)
    raise_for_result(result)
    return DeletionOutcomeResponse(
        deletion_id=str(deletion_id),
        agreement_id=str(result.id),
        state=undo.state(deletion_id).value,
    )


@router.post("/{agreement_id}/sign", response_model=SignResponse)
async def sign_agreement(
    agreement_id: UUID,
    agreements: AgreementAggregator = Depends(get_agreements),
) -> SignResponse:
    result = await agreements.sign(agreement_id)
    raise_for_result(result)
    signed = agreements.get(agreement_id)
    return SignResponse(
        agreement_id=str(agreement_id),
        signed_by=signed.signed_by if signed else 0,
        total_members=signed.total_members if signed else 0,
        status=signed.status.value if signed else "pending",
    )


@router.get("/{agreement_id}/signatures", response_model=list[SignatureDisplay])
async def list_signatures(
    agreement_id: UUID,
    agreements: AgreementAggregator = Depends(get_agreements),
) -> list[SignatureDisplay]:
    return await agreements.fetch_signatures(agreement_id)


@router.get("/{agreement_id}/signed", response_model=SignedResponse)
async def has_signed(
    agreement_id: UUID,
    agreements: AgreementAggregator = Depends(get_agreements),
) -> SignedResponse:
    signed = await agreements.has_user_signed(agreement_id)
    return SignedResponse(agreement_id=str(agreement_id), signed=signed)


@router.delete("/{agreement_id}", status_code=202, response_model=PendingDeletionResponse)
async def delete_agreement(
    agreement_id: UUID,
    undo: UndoOrchestrator = Depends(get_undo),
) -> PendingDeletionResponse:
    result = await undo.delete(agreement_id)
    raise_for_result(result)
    return _pending_out(undo, result.id)
