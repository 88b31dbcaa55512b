"""Initial schema: roster, agreements, deliverables, feed.

Also installs the dependency cycle trigger: inserting an edge
``a -> b`` raises P0001 when ``a`` is already reachable from ``b``.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


CYCLE_FUNCTION = """
CREATE OR REPLACE FUNCTION prevent_dependency_cycle() RETURNS trigger AS $$
BEGIN
    IF EXISTS (
        WITH RECURSIVE reachable(id) AS (
            SELECT depends_on_id FROM deliverable_dependencies
             WHERE deliverable_id = NEW.depends_on_id
            UNION
            SELECT d.depends_on_id FROM deliverable_dependencies d
              JOIN reachable r ON d.deliverable_id = r.id
        )
        SELECT 1 FROM reachable WHERE id = NEW.deliverable_id
    ) THEN
        RAISE EXCEPTION 'circular dependency detected: % -> %',
            NEW.deliverable_id, NEW.depends_on_id
            USING ERRCODE = 'P0001';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

CYCLE_TRIGGER = """
CREATE TRIGGER deliverable_dependency_cycle_guard
BEFORE INSERT OR UPDATE ON deliverable_dependencies
FOR EACH ROW EXECUTE FUNCTION prevent_dependency_cycle();
"""


def upgrade() -> None:
    # -- Roster --
    op.create_table(
        "team_members",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(254), nullable=False, unique=True),
        sa.Column("avatar_url", sa.String(2048), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # -- Agreements --
    op.create_table(
        "agreements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_by", UUID(as_uuid=True),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    op.create_table(
        "agreement_signatures",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("agreement_id", UUID(as_uuid=True),
                  sa.ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID(as_uuid=True),
                  sa.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint("agreement_id", "member_id", name="uq_signature_agreement_member"),
    )
    op.create_index("ix_signatures_agreement", "agreement_signatures", ["agreement_id"])

    # -- Delivery --
    op.create_table(
        "deliverables",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("owner_id", UUID(as_uuid=True),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("deadline", sa.Date, nullable=True),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="upcoming"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_deliverable_progress"),
    )

    op.create_table(
        "deliverable_dependencies",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("deliverable_id", UUID(as_uuid=True),
                  sa.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False),
        sa.Column("depends_on_id", UUID(as_uuid=True),
                  sa.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint("deliverable_id", "depends_on_id", name="uq_dependency_pair"),
        sa.CheckConstraint("deliverable_id <> depends_on_id", name="ck_dependency_not_self"),
    )
    op.execute(CYCLE_FUNCTION)
    op.execute(CYCLE_TRIGGER)

    # -- Feed --
    op.create_table(
        "updates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("author_id", UUID(as_uuid=True),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("deliverable_id", UUID(as_uuid=True),
                  sa.ForeignKey("deliverables.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_help_request", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_updates_created_at", "updates", ["created_at"])

    op.create_table(
        "update_reactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("update_id", UUID(as_uuid=True),
                  sa.ForeignKey("updates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID(as_uuid=True),
                  sa.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reaction_type", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint("update_id", "member_id", "reaction_type", name="uq_reaction"),
    )


def downgrade() -> None:
    op.drop_table("update_reactions")
    op.drop_index("ix_updates_created_at", table_name="updates")
    op.drop_table("updates")
    op.execute("DROP TRIGGER IF EXISTS deliverable_dependency_cycle_guard ON deliverable_dependencies")
    op.execute("DROP FUNCTION IF EXISTS prevent_dependency_cycle()")
    op.drop_table("deliverable_dependencies")
    op.drop_table("deliverables")
    op.drop_index("ix_signatures_agreement", table_name="agreement_signatures")
    op.drop_table("agreement_signatures")
    op.drop_table("agreements")
    op.drop_table("team_members")
