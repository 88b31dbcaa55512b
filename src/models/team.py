"""Team member model: the roster every other record points back to."""

from pydantic import Field

from src.models.common import CommitView, MemberRole, UTCTimestamp, UUIDv7


class TeamMember(CommitView):
    """A member of the team.

    Identity is immutable once created. Deliverables (owner), agreements
    (creator), signatures and updates (author) reference it by id.
    """

    id: UUIDv7
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    role: MemberRole = MemberRole.MEMBER
    avatar_url: str | None = None
    created_at: UTCTimestamp
