"""incident registry + approval requests baseline

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7c1e2a9d4b10"
down_revision = None
branch_labels = None
depends_on = None


def _insp():
    bind = op.get_bind()
    return sa.inspect(bind)


def _has_table(name: str) -> bool:
    try:
        return name in _insp().get_table_names()
    except Exception:
        return False


def _has_index(table: str, idx_name: str) -> bool:
    try:
        idxs = [i.get("name") for i in _insp().get_indexes(table)]
        return idx_name in idxs
    except Exception:
        return False


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _named_reference(table: str, *extra):
    if _has_table(table):
        return
    op.create_table(
        table,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        *extra,
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name", name=f"uq_{table}_name"),
    )


def upgrade():
    # --- users ---
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="operador"),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("1")),
            sa.Column("last_access_at", sa.DateTime, nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )
    if not _has_index("users", "ix_users_role"):
        op.create_index("ix_users_role", "users", ["role"])

    # --- reference data ---
    _named_reference("incident_types")
    _named_reference("environments")
    _named_reference(
        "criticalities",
        sa.Column("color", sa.String(length=20), nullable=False, server_default="#6b7280"),
        sa.Column("weight", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_downtime", sa.Boolean, nullable=False, server_default=sa.text("0")),
    )

    if not _has_table("segments"):
        op.create_table(
            "segments",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("environment_id", sa.Integer, nullable=False),
            sa.Column("description", sa.Text, nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["environment_id"], ["environments.id"], ondelete="RESTRICT"),
            sa.UniqueConstraint("environment_id", "name", name="uq_segments_environment_name"),
        )
    if not _has_index("segments", "ix_segments_environment_id"):
        op.create_index("ix_segments_environment_id", "segments", ["environment_id"])

    # --- incidents ---
    if not _has_table("incidents"):
        op.create_table(
            "incidents",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("start_at", sa.DateTime, nullable=False),
            sa.Column("end_at", sa.DateTime, nullable=True),
            sa.Column("duration_minutes", sa.Integer, nullable=True),
            sa.Column("type_id", sa.Integer, nullable=False),
            sa.Column("environment_id", sa.Integer, nullable=False),
            sa.Column("segment_id", sa.Integer, nullable=False),
            sa.Column("criticality_id", sa.Integer, nullable=False),
            sa.Column("description", sa.Text, nullable=False),
            sa.Column("actions_taken", sa.Text, nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("created_by", sa.Integer, nullable=False),
            sa.Column("updated_at", sa.DateTime, nullable=True),
            sa.Column("updated_by", sa.Integer, nullable=True),
            sa.ForeignKeyConstraint(["type_id"], ["incident_types.id"]),
            sa.ForeignKeyConstraint(["environment_id"], ["environments.id"]),
            sa.ForeignKeyConstraint(["segment_id"], ["segments.id"]),
            sa.ForeignKeyConstraint(["criticality_id"], ["criticalities.id"]),
        )
    for idx, cols in (
        ("ix_incidents_start_at", ["start_at"]),
        ("ix_incidents_created_by", ["created_by"]),
        ("ix_incidents_environment_start", ["environment_id", "start_at"]),
    ):
        if not _has_index("incidents", idx):
            op.create_index(idx, "incidents", cols)

    # --- approval requests (incident_id deliberately without FK) ---
    if not _has_table("approval_requests"):
        op.create_table(
            "approval_requests",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("incident_id", sa.Integer, nullable=False),
            sa.Column("operation", sa.String(length=10), nullable=False),
            sa.Column("before_snapshot", sa.JSON, nullable=False),
            sa.Column("after_snapshot", sa.JSON, nullable=True),
            sa.Column("requester_role", sa.String(length=50), nullable=False),
            sa.Column("environment_id", sa.Integer, nullable=True),
            sa.Column("requested_by", sa.Integer, nullable=False),
            sa.Column("requested_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("resolver_id", sa.Integer, nullable=True),
            sa.Column("resolved_at", sa.DateTime, nullable=True),
            sa.Column("rejection_reason", sa.Text, nullable=True),
            sa.Column("resolution_note", sa.Text, nullable=True),
            sa.CheckConstraint("operation IN ('edit','delete')", name="ck_approval_requests_operation"),
            sa.CheckConstraint(
                "status IN ('pending','approved','rejected')", name="ck_approval_requests_status"
            ),
            sa.CheckConstraint(
                "(status = 'pending' AND resolver_id IS NULL AND resolved_at IS NULL)"
                " OR (status <> 'pending' AND resolver_id IS NOT NULL AND resolved_at IS NOT NULL)",
                name="ck_approval_requests_resolution",
            ),
        )
    for idx, cols in (
        ("ix_approval_requests_incident_id", ["incident_id"]),
        ("ix_approval_requests_requester_role", ["requester_role"]),
        ("ix_approval_requests_environment_id", ["environment_id"]),
        ("ix_approval_requests_requested_by", ["requested_by"]),
        ("ix_approval_requests_status", ["status"]),
    ):
        if not _has_index("approval_requests", idx):
            op.create_index(idx, "approval_requests", cols)
    if not _has_index("approval_requests", "ix_approval_requests_status_requested"):
        op.create_index(
            "ix_approval_requests_status_requested",
            "approval_requests",
            ["status", sa.text("requested_at DESC")],
        )

    # --- audit log ---
    if not _has_table("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.Integer, nullable=True),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("entity_type", sa.String(length=64), nullable=True),
            sa.Column("entity_id", sa.Integer, nullable=True),
            sa.Column("meta", sa.JSON, nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
    for idx, cols in (
        ("ix_audit_logs_user_id", ["user_id"]),
        ("ix_audit_logs_action", ["action"]),
        ("ix_audit_logs_entity", ["entity_type", "entity_id"]),
    ):
        if not _has_index("audit_logs", idx):
            op.create_index(idx, "audit_logs", cols)


def downgrade():
    for table in (
        "audit_logs",
        "approval_requests",
        "incidents",
        "segments",
        "criticalities",
        "environments",
        "incident_types",
        "users",
    ):
        if _has_table(table):
            op.drop_table(table)
