"""sync_queue and credential tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sync_queue",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("external_event_id", sa.String(128), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_detail", sa.String(500), nullable=False, server_default=""),
        sa.Column("external_object_id", sa.String(128), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sync_queue_event_type", "sync_queue", ["event_type"])
    op.create_index("ix_sync_queue_external_event_id", "sync_queue", ["external_event_id"])
    op.create_index("ix_sync_queue_status_created", "sync_queue", ["status", "created_at", "id"])

    op.create_table(
        "credential",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(64), nullable=False),
        sa.Column("secret_enc", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_credential_provider", "credential", ["provider"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_credential_provider", table_name="credential")
    op.drop_table("credential")
    op.drop_index("ix_sync_queue_status_created", table_name="sync_queue")
    op.drop_index("ix_sync_queue_external_event_id", table_name="sync_queue")
    op.drop_index("ix_sync_queue_event_type", table_name="sync_queue")
    op.drop_table("sync_queue")
