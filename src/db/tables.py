"""SQLAlchemy ORM table models for Commit.

All seven collections defined in a single file. Column names match the
row shapes the gateway hands back, so aggregators can validate gateway
rows straight into the domain models.

Categories:
- ROSTER: TeamMemberRow
- AGREEMENTS: AgreementRow, AgreementSignatureRow (signature is append-only)
- DELIVERY: DeliverableRow, DeliverableDependencyRow (directed edge)
- FEED: UpdateRow, UpdateReactionRow (append-only)
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.db.session import Base
from src.models.common import new_uuid7, utc_now


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------


class TeamMemberRow(Base):
    __tablename__ = "team_members"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


# ---------------------------------------------------------------------------
# Agreements
# ---------------------------------------------------------------------------


class AgreementRow(Base):
    __tablename__ = "agreements"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


class AgreementSignatureRow(Base):
    """One signature per (agreement, member). Never updated."""

    __tablename__ = "agreement_signatures"
    __table_args__ = (
        UniqueConstraint("agreement_id", "member_id", name="uq_signature_agreement_member"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    agreement_id: Mapped[UUID] = mapped_column(
        ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    signed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class DeliverableRow(Base):
    __tablename__ = "deliverables"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_deliverable_progress"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="upcoming")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


class DeliverableDependencyRow(Base):
    """Directed edge: ``deliverable_id`` depends on ``depends_on_id``."""

    __tablename__ = "deliverable_dependencies"
    __table_args__ = (
        UniqueConstraint("deliverable_id", "depends_on_id", name="uq_dependency_pair"),
        CheckConstraint("deliverable_id <> depends_on_id", name="ck_dependency_not_self"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    deliverable_id: Mapped[UUID] = mapped_column(
        ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False,
    )
    depends_on_id: Mapped[UUID] = mapped_column(
        ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


class UpdateRow(Base):
    __tablename__ = "updates"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    deliverable_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("deliverables.id", ondelete="SET NULL"), nullable=True,
    )
    is_help_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )


class UpdateReactionRow(Base):
    __tablename__ = "update_reactions"
    __table_args__ = (
        UniqueConstraint("update_id", "member_id", "reaction_type", name="uq_reaction"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    update_id: Mapped[UUID] = mapped_column(
        ForeignKey("updates.id", ondelete="CASCADE"), nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    reaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )
