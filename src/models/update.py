"""Status update (feed post) models. Append-only."""

from uuid import UUID

from pydantic import Field

from src.models.common import CommitView, UTCTimestamp, UUIDv7


class Update(CommitView):
    id: UUIDv7
    content: str = Field(..., min_length=1, max_length=5000)
    author_id: UUID | None = None
    deliverable_id: UUID | None = None
    is_help_request: bool = False
    created_at: UTCTimestamp


class UpdateReaction(CommitView):
    id: UUIDv7
    update_id: UUID
    member_id: UUID
    reaction_type: str = Field(..., min_length=1, max_length=50)
    created_at: UTCTimestamp


class UpdateWithAuthor(Update):
    """Feed entry with the author's display name and reaction tallies."""

    author_name: str = "Unknown"
    reactions: dict[str, int] = Field(default_factory=dict)
