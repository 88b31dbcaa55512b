"""Team roster endpoints.

GET  /v1/team-members  - list members, by name
POST /v1/team-members  - add a member
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from src.api.dependencies import get_roster
from src.api.errors import raise_for_result
from src.engine.team import TeamRoster
from src.models.common import MemberRole
from src.models.team import TeamMember

router = APIRouter(prefix="/v1/team-members", tags=["team"])


class CreateMemberRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    email: str
    role: MemberRole = MemberRole.MEMBER
    avatar_url: str | None = None


class CreatedResponse(BaseModel):
    id: str


@router.get("", response_model=list[TeamMember])
async def list_members(roster: TeamRoster = Depends(get_roster)) -> list[TeamMember]:
    return list(roster.items)


@router.post("", status_code=201, response_model=CreatedResponse)
async def create_member(
    body: CreateMemberRequest,
    roster: TeamRoster = Depends(get_roster),
) -> CreatedResponse:
    result = await roster.add_member(**body.model_dump())
    raise_for_result(result)
    return CreatedResponse(id=str(result.id))
