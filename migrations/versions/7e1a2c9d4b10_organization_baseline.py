"""organization_baseline

Baseline tables the confidentiality engine reads: committees, users,
committee_memberships, shadow_assignments and the three markable item
tables (reports, directives, meetings) reduced to the columns it consumes.

Revision ID: 7e1a2c9d4b10
Revises:
Create Date: 2026-09-28 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7e1a2c9d4b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "committees" not in existing_tables:
        op.create_table(
            "committees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("hierarchy_level", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("parent_committee_id", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["parent_committee_id"], ["committees.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_committees_parent_committee_id", "committees", ["parent_committee_id"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=True),
            sa.Column("system_role", sa.String(length=30), nullable=False, server_default="member"),
            sa.Column("chairman_office_rank", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "committee_memberships" not in existing_tables:
        op.create_table(
            "committee_memberships",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("committee_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("effective_from", sa.DateTime(), nullable=True),
            sa.Column("effective_to", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["committee_id"], ["committees.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_committee_memberships_user_committee",
            "committee_memberships", ["user_id", "committee_id"],
        )
        op.create_index("ix_committee_memberships_committee_id", "committee_memberships", ["committee_id"])

    if "shadow_assignments" not in existing_tables:
        op.create_table(
            "shadow_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("principal_user_id", sa.Integer(), nullable=False),
            sa.Column("shadow_user_id", sa.Integer(), nullable=False),
            sa.Column("committee_id", sa.Integer(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("effective_from", sa.DateTime(), nullable=False),
            sa.Column("effective_to", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["principal_user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["shadow_user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["committee_id"], ["committees.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_shadow_assignments_shadow_committee",
            "shadow_assignments", ["shadow_user_id", "committee_id"],
        )

    for table, owner_col, committee_col, extra in (
        ("reports", "author_id", "committee_id",
         [sa.Column("status", sa.String(length=30), nullable=True)]),
        ("directives", "issuer_id", "target_committee_id",
         [sa.Column("status", sa.String(length=30), nullable=True)]),
        ("meetings", "moderator_id", "committee_id",
         [sa.Column("scheduled_at", sa.DateTime(), nullable=True)]),
    ):
        if table in existing_tables:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column(owner_col, sa.Integer(), nullable=False),
            sa.Column(committee_col, sa.Integer(), nullable=False),
            *extra,
            sa.Column("is_confidential", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint([owner_col], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint([committee_col], ["committees.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_{owner_col}", table, [owner_col])
        op.create_index(f"ix_{table}_{committee_col}", table, [committee_col])


def downgrade():
    for table in ("meetings", "directives", "reports", "shadow_assignments",
                  "committee_memberships", "users", "committees"):
        op.drop_table(table)
