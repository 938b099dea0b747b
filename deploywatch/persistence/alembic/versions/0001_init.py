"""create tenant settings and control plane registry tables

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Tenant settings carry notification policy, channel config and the monitor's reconciliation state.
    op.create_table(
        "tenant_settings",
        sa.Column("tenant_id", sa.String(), primary_key=True),
        sa.Column("settings_json", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "control_plane_servers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("api_token", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_status", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_control_plane_servers_tenant_name"),
    )
    op.create_index("ix_control_plane_servers_tenant_id", "control_plane_servers", ["tenant_id"])
    op.create_index(
        "ix_control_plane_servers_tenant_active",
        "control_plane_servers",
        ["tenant_id", "is_active"],
    )


def downgrade() -> None:
    op.drop_index("ix_control_plane_servers_tenant_active", table_name="control_plane_servers")
    op.drop_index("ix_control_plane_servers_tenant_id", table_name="control_plane_servers")
    op.drop_table("control_plane_servers")
    op.drop_table("tenant_settings")
