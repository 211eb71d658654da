"""create feature_flags, health_logs and sla_reports

Revision ID: m1_0_flags_health_sla
Revises:
Create Date: 2026-02-14
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "m1_0_flags_health_sla"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "feature_flags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_feature_flags_id", "feature_flags", ["id"])
    op.create_index("ix_feature_flags_key", "feature_flags", ["key"], unique=True)
    op.create_index("ix_feature_flags_category", "feature_flags", ["category"])

    op.create_table(
        "health_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("service", sa.String(100), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(500), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("tested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_health_logs_service", "health_logs", ["service"])
    op.create_index("ix_health_logs_category", "health_logs", ["category"])
    op.create_index("ix_health_logs_status", "health_logs", ["status"])
    op.create_index("ix_health_logs_tested_at", "health_logs", ["tested_at"])
    op.create_index("ix_health_logs_source_tested_at", "health_logs", ["source", "tested_at"])

    op.create_table(
        "sla_reports",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("uptime_percent", sa.Float(), nullable=True),
        sa.Column("total_checks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ok_checks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("warning_checks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("critical_checks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downtime_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_latency_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("incidents_by_category", sa.JSON(), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("year", "month", name="uq_sla_reports_year_month"),
    )


def downgrade() -> None:
    op.drop_table("sla_reports")
    op.drop_table("health_logs")
    op.drop_table("feature_flags")
