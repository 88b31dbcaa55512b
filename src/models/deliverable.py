"""Deliverable models: trackable work with an owner, deadline and progress."""

from datetime import date
from uuid import UUID

from pydantic import Field

from src.models.common import CommitView, DeliverableStatus, UTCTimestamp, UUIDv7


class Deliverable(CommitView):
    """Persisted deliverable row.

    progress == 100 <=> status == completed is kept by the progress update
    path only; direct status edits can break it.
    """

    id: UUIDv7
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    owner_id: UUID | None = None
    deadline: date | None = None
    progress: int = Field(default=0, ge=0, le=100)
    status: DeliverableStatus = DeliverableStatus.UPCOMING
    created_at: UTCTimestamp
    updated_at: UTCTimestamp


class DeliverableDependency(CommitView):
    """Directed edge: ``deliverable_id`` depends on ``depends_on_id``."""

    id: UUIDv7
    deliverable_id: UUID
    depends_on_id: UUID
    created_at: UTCTimestamp


class DeliverableWithDetails(Deliverable):
    """Deliverable enriched with the owner's display name and its adjacency list."""

    owner_name: str = "Unassigned"
    dependency_ids: tuple[UUID, ...] = ()
