"""Deliverable endpoints.

GET    /v1/deliverables                                        - list, newest first
POST   /v1/deliverables                                        - create, optionally with dependencies
PATCH  /v1/deliverables/{deliverable_id}                       - partial update
PUT    /v1/deliverables/{deliverable_id}/progress              - set progress, status follows
DELETE /v1/deliverables/{deliverable_id}                       - hard delete
POST   /v1/deliverables/{deliverable_id}/dependencies          - add an edge
DELETE /v1/deliverables/{deliverable_id}/dependencies/{dep_id} - remove an edge
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response
from pydantic import BaseModel, ConfigDict

from src.api.dependencies import get_deliverables
from src.api.errors import raise_for_result
from src.engine.deliverables import DeliverableAggregator
from src.models.deliverable import DeliverableWithDetails

router = APIRouter(prefix="/v1/deliverables", tags=["deliverables"])


class CreateDeliverableRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    description: str | None = None
    owner_id: UUID | None = None
    deadline: str | None = None
    dependency_ids: list[UUID] = []


class ProgressRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    progress: int


class AddDependencyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    depends_on_id: UUID


class CreatedResponse(BaseModel):
    id: str


def _out(deliverables: DeliverableAggregator, deliverable_id: UUID) -> DeliverableWithDetails:
    return deliverables.get(deliverable_id)


@router.get("", response_model=list[DeliverableWithDetails])
async def list_deliverables(
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> list[DeliverableWithDetails]:
    return list(deliverables.deliverables)


@router.post("", status_code=201, response_model=CreatedResponse)
async def create_deliverable(
    body: CreateDeliverableRequest,
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> CreatedResponse:
    result = await deliverables.create(**body.model_dump())
    raise_for_result(result)
    return CreatedResponse(id=str(result.id))


@router.patch("/{deliverable_id}", response_model=DeliverableWithDetails)
async def update_deliverable(
    deliverable_id: UUID,
    fields: dict[str, Any] = Body(...),
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> DeliverableWithDetails:
    result = await deliverables.update(deliverable_id, fields)
    raise_for_result(result)
    return _out(deliverables, deliverable_id)


@router.put("/{deliverable_id}/progress", response_model=DeliverableWithDetails)
async def update_progress(
    deliverable_id: UUID,
    body: ProgressRequest,
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> DeliverableWithDetails:
    result = await deliverables.update_progress(deliverable_id, body.progress)
    raise_for_result(result)
    return _out(deliverables, deliverable_id)


@router.delete("/{deliverable_id}", status_code=204)
async def delete_deliverable(
    deliverable_id: UUID,
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> Response:
    result = await deliverables.delete(deliverable_id)
    raise_for_result(result)
    return Response(status_code=204)


@router.post(
    "/{deliverable_id}/dependencies",
    status_code=201,
    response_model=DeliverableWithDetails,
)
async def add_dependency(
    deliverable_id: UUID,
    body: AddDependencyRequest,
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> DeliverableWithDetails:
    result = await deliverables.add_dependency(deliverable_id, body.depends_on_id)
    raise_for_result(result)
    return _out(deliverables, deliverable_id)


@router.delete("/{deliverable_id}/dependencies/{depends_on_id}", status_code=204)
async def remove_dependency(
    deliverable_id: UUID,
    depends_on_id: UUID,
    deliverables: DeliverableAggregator = Depends(get_deliverables),
) -> Response:
    result = await deliverables.remove_dependency(deliverable_id, depends_on_id)
    raise_for_result(result)
    return Response(status_code=204)
