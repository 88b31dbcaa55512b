"""Shared types, enums, and base models used across Commit domain models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


def as_utc(value: datetime) -> datetime:
    """Normalise a stored timestamp to aware UTC.

    SQLite hands back naive datetimes even for timezone-aware columns;
    those were written as UTC, so they are tagged rather than converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]


# --- Shared enums ---


class MemberRole(StrEnum):
    """Team member role."""

    LEAD = "lead"
    MEMBER = "member"


class AgreementStatus(StrEnum):
    """Agreement lifecycle. Only pending -> active is automatic."""

    PENDING = "pending"
    ACTIVE = "active"
    ARCHIVED = "archived"


class DeliverableStatus(StrEnum):
    """Deliverable health status."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in-progress"
    AT_RISK = "at-risk"
    COMPLETED = "completed"


# --- Base model ---


class CommitBase(BaseModel):
    """Base model with common configuration for all Commit Pydantic models."""

    model_config = ConfigDict(
        populate_by_name=True,
        protected_namespaces=(),
    )


class CommitView(CommitBase):
    """Immutable view record held in aggregator lists.

    Lists only change through ``model_copy(update=...)`` in a pure
    transform, never by assigning onto a held instance.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        protected_namespaces=(),
        frozen=True,
    )
