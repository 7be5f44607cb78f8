"""confidentiality_markings_and_grants

Create confidentiality_markings and access_grants.

Both carry a partial unique index over the active rows so that the
database itself refuses a second active marking per item, or a second
active grant per (item, user), when two writers race.

Revision ID: 8f2b3d0e5c21
Revises: 7e1a2c9d4b10
Create Date: 2026-09-28 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "8f2b3d0e5c21"
down_revision = "7e1a2c9d4b10"
branch_labels = None
depends_on = None


def _active_where():
    return {
        "sqlite_where": sa.text("is_active = 1"),
        "postgresql_where": sa.text("is_active"),
    }


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "confidentiality_markings" not in existing_tables:
        op.create_table(
            "confidentiality_markings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("item_kind", sa.String(length=20), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("marked_by_id", sa.Integer(), nullable=False),
            sa.Column("marker_committee_id", sa.Integer(), nullable=False),
            sa.Column("marker_committee_level", sa.Integer(), nullable=False),
            sa.Column("min_chairman_office_rank", sa.Integer(), nullable=True),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("marked_at", sa.DateTime(), nullable=False),
            sa.Column("unmarked_at", sa.DateTime(), nullable=True),
            sa.Column("unmarked_by_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["marked_by_id"], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["marker_committee_id"], ["committees.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["unmarked_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "idx_confidentiality_markings_item",
            "confidentiality_markings", ["item_kind", "item_id"],
        )
        op.create_index(
            "ix_confidentiality_markings_marked_by_id",
            "confidentiality_markings", ["marked_by_id"],
        )
        op.create_index(
            "uq_confidentiality_markings_active_item",
            "confidentiality_markings", ["item_kind", "item_id"],
            unique=True, **_active_where(),
        )

    if "access_grants" not in existing_tables:
        op.create_table(
            "access_grants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("item_kind", sa.String(length=20), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("granted_to_user_id", sa.Integer(), nullable=False),
            sa.Column("granted_by_id", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("granted_at", sa.DateTime(), nullable=False),
            sa.Column("revoked_at", sa.DateTime(), nullable=True),
            sa.Column("revoked_by_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["granted_to_user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["granted_by_id"], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["revoked_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_access_grants_item", "access_grants", ["item_kind", "item_id"])
        op.create_index("ix_access_grants_granted_to_user_id", "access_grants", ["granted_to_user_id"])
        op.create_index(
            "uq_access_grants_active_item_user",
            "access_grants", ["item_kind", "item_id", "granted_to_user_id"],
            unique=True, **_active_where(),
        )


def downgrade():
    op.drop_table("access_grants")
    op.drop_table("confidentiality_markings")
