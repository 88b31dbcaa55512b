"""Status update feed endpoints.

GET  /v1/updates                        - feed, newest first
POST /v1/updates                        - post an update or help request
POST /v1/updates/{update_id}/reactions  - react to an update
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from src.api.dependencies import get_feed
from src.api.errors import raise_for_result
from src.engine.updates import UpdateFeed
from src.models.update import UpdateWithAuthor

router = APIRouter(prefix="/v1/updates", tags=["updates"])


class PostUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str
    deliverable_id: UUID | None = None
    is_help_request: bool = False


class ReactionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reaction_type: str


class CreatedResponse(BaseModel):
    id: str


@router.get("", response_model=list[UpdateWithAuthor])
async def list_updates(feed: UpdateFeed = Depends(get_feed)) -> list[UpdateWithAuthor]:
    return list(feed.updates)


@router.post("", status_code=201, response_model=CreatedResponse)
async def post_update(
    body: PostUpdateRequest,
    feed: UpdateFeed = Depends(get_feed),
) -> CreatedResponse:
    result = await feed.post(**body.model_dump())
    raise_for_result(result)
    return CreatedResponse(id=str(result.id))


@router.post("/{update_id}/reactions", status_code=201, response_model=UpdateWithAuthor)
async def add_reaction(
    update_id: UUID,
    body: ReactionRequest,
    feed: UpdateFeed = Depends(get_feed),
) -> UpdateWithAuthor:
    result = await feed.react(update_id, body.reaction_type)
    raise_for_result(result)
    return next(u for u in feed.updates if u.id == update_id)
