"""depot_mnr_initial_tables

Create containers, actors, system_settings, audit_logs and the seven
stage-job tables.

Revision ID: 0a1b2c3d4e51
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e51"
down_revision = None
branch_labels = None
depends_on = None


STAGE_TABLES = (
    "surveys",
    "estimates_of_repair",
    "shunting_requests",
    "repair_orders",
    "washing_orders",
    "pre_inspections",
    "stacking_requests",
)


def _envelope():
    """Columns every stage-job table shares."""
    return [
        sa.Column("id", sa.String(length=40), nullable=False),
        sa.Column("container_id", sa.String(length=36), nullable=True),
        sa.Column("container_number", sa.String(length=20), nullable=False),
        sa.Column("transaction_id", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_by", sa.String(length=100), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_by", sa.String(length=100), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["container_id"], ["containers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def _stage_indexes(table):
    for column in ("container_id", "container_number", "transaction_id"):
        op.create_index(f"ix_{table}_{column}", table, [column])


STAGE_COLUMNS = {
    "surveys": [
        sa.Column("survey_type", sa.String(length=30), nullable=True),
        sa.Column("initial_condition", sa.String(length=20), nullable=True),
        sa.Column("damage_items", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    ],
    "estimates_of_repair": [
        sa.Column("survey_id", sa.String(length=40), nullable=True, index=True),
        sa.Column("liner", sa.String(length=20), nullable=True, index=True),
        sa.Column("repair_items", sa.JSON(), nullable=True),
        sa.Column("total_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=5), nullable=False, server_default="RM"),
        sa.Column("need_approval", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_by", sa.String(length=100), nullable=True),
        sa.Column("sent_to", sa.String(length=200), nullable=True),
        sa.Column("sent_method", sa.String(length=20), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=100), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(length=100), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
    ],
    "shunting_requests": [
        sa.Column("from_location", sa.JSON(), nullable=True),
        sa.Column("to_block", sa.String(length=10), nullable=False),
        sa.Column("assigned_driver", sa.String(length=100), nullable=True),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="NORMAL"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    ],
    "repair_orders": [
        sa.Column("eor_id", sa.String(length=40), nullable=True, index=True),
        sa.Column("assigned_team", sa.String(length=100), nullable=True),
        sa.Column("work_items", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rework_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rework_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rework_notes", sa.Text(), nullable=True),
        sa.Column("rework_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rework_requested_by", sa.String(length=100), nullable=True),
        sa.Column("failed_checks", sa.JSON(), nullable=True),
    ],
    "washing_orders": [
        sa.Column("cleaning_program", sa.String(length=50), nullable=True),
        sa.Column("contamination_level", sa.String(length=20), nullable=True),
        sa.Column("assigned_bay", sa.String(length=20), nullable=True),
        sa.Column("assigned_worker", sa.String(length=100), nullable=True),
        sa.Column("assigned_team", sa.String(length=100), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checklist_results", sa.JSON(), nullable=True),
        sa.Column("worker_notes", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=100), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(length=100), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("qc_result", sa.String(length=10), nullable=True),
        sa.Column("qc_notes", sa.Text(), nullable=True),
        sa.Column("qc_checklist_results", sa.JSON(), nullable=True),
        sa.Column("qc_inspected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qc_inspected_by", sa.String(length=100), nullable=True),
        sa.Column("rework_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rework_reasons", sa.JSON(), nullable=True),
        sa.Column("certificate_number", sa.String(length=20), nullable=True, unique=True),
        sa.Column("certificate_issued_at", sa.DateTime(timezone=True), nullable=True),
    ],
    "pre_inspections": [
        sa.Column("survey_transaction_id", sa.String(length=40), nullable=True, index=True),
        sa.Column("result", sa.String(length=10), nullable=False, server_default="PENDING"),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("damage_item_results", sa.JSON(), nullable=True),
        sa.Column("checklist_results", sa.JSON(), nullable=True),
        sa.Column("cleaning_checklist_results", sa.JSON(), nullable=True),
        sa.Column("failed_checks", sa.JSON(), nullable=True),
        sa.Column("failed_damage_items", sa.JSON(), nullable=True),
        sa.Column("inspection_notes", sa.Text(), nullable=True),
        sa.Column("rework_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_inspected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_inspected_by", sa.String(length=100), nullable=True),
    ],
    "stacking_requests": [
        sa.Column("from_location", sa.JSON(), nullable=True),
        sa.Column("target_location", sa.JSON(), nullable=True),
        sa.Column("gate_pass_number", sa.String(length=20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_by", sa.String(length=100), nullable=True),
    ],
}


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "containers" not in existing_tables:
        op.create_table(
            "containers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("container_number", sa.String(length=20), nullable=False),
            sa.Column("liner", sa.String(length=20), nullable=True),
            sa.Column("size", sa.String(length=10), nullable=True),
            sa.Column("container_type", sa.String(length=10), nullable=True),
            sa.Column("booking", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="STACKING"),
            sa.Column("rework_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("yard_block", sa.String(length=10), nullable=False, server_default="A"),
            sa.Column("yard_row", sa.String(length=10), nullable=False, server_default="01"),
            sa.Column("yard_tier", sa.String(length=10), nullable=False, server_default="1"),
            sa.Column("last_survey_id", sa.String(length=40), nullable=True),
            sa.Column("gate_in_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_containers_container_number", "containers", ["container_number"], unique=True)
        op.create_index("ix_containers_liner", "containers", ["liner"])
        op.create_index("ix_containers_status", "containers", ["status"])

    if "actors" not in existing_tables:
        op.create_table(
            "actors",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("user_type", sa.String(length=10), nullable=False, server_default="INTERNAL"),
            sa.Column("liner_code", sa.String(length=20), nullable=True),
            sa.Column("groups", sa.JSON(), nullable=True),
            sa.Column("screens", sa.JSON(), nullable=True),
            sa.Column("screen_permissions", sa.JSON(), nullable=True),
            sa.Column("functions", sa.JSON(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_actors_username", "actors", ["username"], unique=True)

    if "system_settings" not in existing_tables:
        op.create_table(
            "system_settings",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.String(length=500), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("key"),
        )

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("container_id", sa.String(length=36), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=40), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=100), nullable=False, server_default="SYSTEM"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_container", "audit_logs", ["container_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    for table in STAGE_TABLES:
        if table in existing_tables:
            continue
        op.create_table(table, *_envelope(), *STAGE_COLUMNS[table])
        _stage_indexes(table)


def downgrade():
    for table in reversed(STAGE_TABLES):
        op.drop_table(table)
    op.drop_table("audit_logs")
    op.drop_table("system_settings")
    op.drop_table("actors")
    op.drop_table("containers")
