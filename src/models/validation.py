"""Input validation schemas.

Every create/update payload passes through one of these before it reaches
the gateway. Schemas are strict: unknown fields are rejected rather than
dropped, strings are trimmed and length-capped, and script tags plus inline
event handlers are stripped from free text.

``validate`` never raises; it returns either the sanitized payload or the
list of field errors, and ``format_validation_error`` renders those errors
as one ``"field: message, field: message"`` line.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Any, Generic, TypeVar
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
)

from src.models.common import AgreementStatus, DeliverableStatus, MemberRole

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

NAME_MAX = 100
TITLE_MAX = 200
DESCRIPTION_MAX = 2000
CONTENT_MAX = 5000
EMAIL_MAX = 254
URL_MAX = 2048
REACTION_MAX = 50
PROGRESS_MIN = 0
PROGRESS_MAX = 100

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL = re.compile(r"^https?://\S+$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def sanitize_text(value: str) -> str:
    """Strip script blocks and inline ``onxxx=`` handlers."""
    return _EVENT_HANDLER.sub("", _SCRIPT_TAG.sub("", value))


def _check_email(value: str) -> str:
    if not _EMAIL.match(value):
        raise ValueError("Invalid email format")
    return value.lower()


def _check_url(value: str | None) -> str | None:
    if value is not None and not _URL.match(value):
        raise ValueError("Invalid URL format")
    return value


def _parse_deadline(value: Any) -> Any:
    if isinstance(value, str):
        if not _ISO_DATE.match(value):
            raise ValueError("Deadline must be in YYYY-MM-DD format")
        return date.fromisoformat(value)
    return value


def _text(min_length: int, max_length: int):
    return Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length),
        AfterValidator(sanitize_text),
    ]


Title = _text(1, TITLE_MAX)
Name = _text(1, NAME_MAX)
Content = _text(1, CONTENT_MAX)
ReactionType = _text(1, REACTION_MAX)
Description = _text(0, DESCRIPTION_MAX) | None
Email = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=EMAIL_MAX),
    AfterValidator(_check_email),
]
AvatarUrl = Annotated[str, StringConstraints(max_length=URL_MAX), AfterValidator(_check_url)] | None
Deadline = Annotated[date | None, BeforeValidator(_parse_deadline)]
Progress = Annotated[int, Field(strict=True, ge=PROGRESS_MIN, le=PROGRESS_MAX)]


class StrictSchema(BaseModel):
    """Rejects unexpected fields outright."""

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Team members
# ---------------------------------------------------------------------------


class TeamMemberCreate(StrictSchema):
    name: Name
    email: Email
    avatar_url: AvatarUrl = None
    role: MemberRole = MemberRole.MEMBER


# ---------------------------------------------------------------------------
# Agreements
# ---------------------------------------------------------------------------


class AgreementCreate(StrictSchema):
    title: Title
    description: Description = None
    status: AgreementStatus = AgreementStatus.PENDING
    created_by: UUID | None = None


class AgreementSignatureCreate(StrictSchema):
    agreement_id: UUID
    member_id: UUID


# ---------------------------------------------------------------------------
# Deliverables
# ---------------------------------------------------------------------------


class DeliverableCreate(StrictSchema):
    title: Title
    description: Description = None
    owner_id: UUID | None = None
    deadline: Deadline = None
    progress: Progress = 0
    status: DeliverableStatus = DeliverableStatus.UPCOMING


class DeliverableUpdate(StrictSchema):
    """Partial update: only the fields actually sent are applied."""

    title: Title | None = None
    description: Description = None
    owner_id: UUID | None = None
    deadline: Deadline = None
    progress: Progress | None = None
    status: DeliverableStatus | None = None


class DeliverableDependencyCreate(StrictSchema):
    deliverable_id: UUID
    depends_on_id: UUID


# ---------------------------------------------------------------------------
# Updates (status posts)
# ---------------------------------------------------------------------------


class UpdateCreate(StrictSchema):
    content: Content
    author_id: UUID | None = None
    deliverable_id: UUID | None = None
    is_help_request: bool = False


class UpdateReactionCreate(StrictSchema):
    update_id: UUID
    member_id: UUID
    reaction_type: ReactionType


# ---------------------------------------------------------------------------
# Validation helper
# ---------------------------------------------------------------------------

S = TypeVar("S", bound=StrictSchema)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass
class ValidationOutcome(Generic[S]):
    """Either the sanitized payload (``data``) or the failing fields."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[FieldError] = field(default_factory=list)


def validate(schema: type[S], payload: dict[str, Any], *, partial: bool = False) -> ValidationOutcome[S]:
    """Validate ``payload`` against ``schema``.

    With ``partial=True`` only the keys present in ``payload`` come back,
    so an update never overwrites columns the caller did not send.
    """
    try:
        model = schema.model_validate(payload)
    except ValidationError as exc:
        errors = [
            FieldError(
                field=".".join(str(p) for p in err["loc"]) or "payload",
                message=_message_for(err),
            )
            for err in exc.errors()
        ]
        return ValidationOutcome(success=False, errors=errors)

    data = model.model_dump(exclude_unset=partial)
    if partial:
        # Title and status are not nullable columns; an explicit null is a no-op.
        data = {k: v for k, v in data.items() if v is not None or k in _NULLABLE_UPDATE_FIELDS}
    return ValidationOutcome(success=True, data=data)


_NULLABLE_UPDATE_FIELDS = frozenset({"description", "owner_id", "deadline"})


def format_validation_error(errors: list[FieldError]) -> str:
    return ", ".join(f"{e.field}: {e.message}" for e in errors)


def _message_for(err: dict[str, Any]) -> str:
    if err["type"] == "extra_forbidden":
        return "Unexpected field"
    message = str(err["msg"])
    # pydantic prefixes custom ValueError messages
    return message.removeprefix("Value error, ")
