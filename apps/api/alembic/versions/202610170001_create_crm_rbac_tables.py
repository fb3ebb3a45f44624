"""create crm rbac tables

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610170001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "crm_company",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("conversion_status", sa.String(length=16), nullable=False, server_default="Waiting"),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        sa.Column("assigned_data_collector_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_converter_id", sa.Uuid(), nullable=True),
        sa.Column("finalization_status", sa.String(length=16), nullable=False, server_default="Pending"),
        sa.Column("finalized_by_id", sa.Uuid(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "conversion_status IN ('Waiting', 'NoReach', 'Confirmed', 'Finalized')",
            name="ck_crm_company_conversion_status",
        ),
        sa.CheckConstraint(
            "finalization_status IN ('Pending', 'Finalized')",
            name="ck_crm_company_finalization_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_company_finalization_status", "crm_company", ["finalization_status"], unique=False)
    op.create_index("ix_crm_company_assigned_converter_id", "crm_company", ["assigned_converter_id"], unique=False)

    op.create_table(
        "crm_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="NotYet"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_by_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_task_assigned_to_id", "crm_task", ["assigned_to_id"], unique=False)
    op.create_index("ix_crm_task_deadline", "crm_task", ["deadline"], unique=False)

    op.create_table(
        "crm_ticket",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("raised_by_id", sa.Uuid(), nullable=False),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_ticket_assigned_to_id", "crm_ticket", ["assigned_to_id"], unique=False)

    op.create_table(
        "crm_comment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("author_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parent_comment_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["crm_company.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_comment_id"], ["crm_comment.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_comment_company_id", "crm_comment", ["company_id"], unique=False)

    op.create_table(
        "crm_notification",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipient_id", sa.Uuid(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=True),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_crm_notification_recipient_id_is_read",
        "crm_notification",
        ["recipient_id", "is_read"],
        unique=False,
    )

    op.create_table(
        "authz_permission_matrix_version",
        sa.Column("version", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("vectors", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("version"),
    )


def downgrade() -> None:
    op.drop_table("authz_permission_matrix_version")
    op.drop_index("ix_crm_notification_recipient_id_is_read", table_name="crm_notification")
    op.drop_table("crm_notification")
    op.drop_index("ix_crm_comment_company_id", table_name="crm_comment")
    op.drop_table("crm_comment")
    op.drop_index("ix_crm_ticket_assigned_to_id", table_name="crm_ticket")
    op.drop_table("crm_ticket")
    op.drop_index("ix_crm_task_deadline", table_name="crm_task")
    op.drop_index("ix_crm_task_assigned_to_id", table_name="crm_task")
    op.drop_table("crm_task")
    op.drop_index("ix_crm_company_assigned_converter_id", table_name="crm_company")
    op.drop_index("ix_crm_company_finalization_status", table_name="crm_company")
    op.drop_table("crm_company")
