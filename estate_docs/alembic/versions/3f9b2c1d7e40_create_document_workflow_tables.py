"""create document workflow tables

Revision ID: 3f9b2c1d7e40
Revises:
Create Date: 2026-10-19 09:12:44.201835

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9b2c1d7e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("vendor_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_vendor_id", "users", ["vendor_id"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "owner_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "managed_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_properties_owner_id", "properties", ["owner_id"])
    op.create_index("ix_properties_managed_by_id", "properties", ["managed_by_id"])

    op.create_table(
        "tenancies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.UniqueConstraint(
            "tenant_id", "property_id", name="uq_tenancy_tenant_property"
        ),
    )
    op.create_index("ix_tenancies_tenant_id", "tenancies", ["tenant_id"])
    op.create_index("ix_tenancies_property_id", "tenancies", ["property_id"])
    op.create_index("ix_tenancies_is_active", "tenancies", ["is_active"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "tenant_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "uploaded_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("document_type", sa.String(16), nullable=False),
        sa.Column("storage_url", sa.String(1024), nullable=False),
        sa.Column("jurisdiction", sa.String(2), nullable=False),
        sa.Column("processed_text", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("expiration_date", sa.DateTime(), nullable=True),
        sa.Column("renewal_period_days", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_documents_property_id", "documents", ["property_id"])
    op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])
    op.create_index("ix_documents_document_type", "documents", ["document_type"])
    op.create_index("ix_documents_status", "documents", ["status"])
    op.create_index("ix_documents_expiration_date", "documents", ["expiration_date"])

    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column(
            "assignee_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("requires_validation", sa.Boolean(), nullable=True),
        sa.Column("requires_signatures", sa.Boolean(), nullable=True),
        sa.Column("validation_result", sa.JSON(), nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "document_id", "position", name="uq_step_document_position"
        ),
    )
    op.create_index("ix_workflow_steps_document_id", "workflow_steps", ["document_id"])
    op.create_index("ix_workflow_steps_status", "workflow_steps", ["status"])

    op.create_table(
        "document_verifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "step_id",
            sa.Uuid(),
            sa.ForeignKey("workflow_steps.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "retry_of_id",
            sa.Uuid(),
            sa.ForeignKey("document_verifications.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("verification_type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("expected_fields", sa.JSON(), nullable=True),
        sa.Column("subject", sa.JSON(), nullable=True),
        sa.Column("verified_fields", sa.JSON(), nullable=True),
        sa.Column("failed_fields", sa.JSON(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("external_reference", sa.String(255), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_document_verifications_document_id",
        "document_verifications",
        ["document_id"],
    )
    op.create_index(
        "ix_document_verifications_step_id", "document_verifications", ["step_id"]
    )
    op.create_index(
        "ix_document_verifications_status", "document_verifications", ["status"]
    )

    op.create_table(
        "compliance_reports",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "step_id",
            sa.Uuid(),
            sa.ForeignKey("workflow_steps.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("jurisdiction", sa.String(2), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.Column("issues", sa.JSON(), nullable=True),
        sa.Column("is_compliant", sa.Boolean(), nullable=False),
        sa.Column("required_rules", sa.JSON(), nullable=True),
        sa.Column("recommendations", sa.JSON(), nullable=True),
        sa.Column("risk_level", sa.String(8), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_compliance_reports_document_id", "compliance_reports", ["document_id"]
    )
    op.create_index("ix_compliance_reports_step_id", "compliance_reports", ["step_id"])
    op.create_index(
        "ix_compliance_reports_created_at", "compliance_reports", ["created_at"]
    )

    op.create_table(
        "signature_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "signer_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("signer_role", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=True),
        sa.Column("decline_reason", sa.Text(), nullable=True),
        sa.Column(
            "replaces_id",
            sa.Uuid(),
            sa.ForeignKey("signature_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_signature_requests_document_id", "signature_requests", ["document_id"]
    )
    op.create_index(
        "ix_signature_requests_signer_id", "signature_requests", ["signer_id"]
    )
    op.create_index("ix_signature_requests_status", "signature_requests", ["status"])
    op.create_index(
        "ix_signature_requests_created_at", "signature_requests", ["created_at"]
    )
    op.create_index(
        "ix_signature_requests_expires_at", "signature_requests", ["expires_at"]
    )
    op.create_index(
        "uq_signature_pending_signer",
        "signature_requests",
        ["document_id", "signer_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audit_logs_document_id", "audit_logs", ["document_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_index("uq_signature_pending_signer", table_name="signature_requests")
    op.drop_table("signature_requests")
    op.drop_table("compliance_reports")
    op.drop_table("document_verifications")
    op.drop_table("workflow_steps")
    op.drop_table("documents")
    op.drop_table("tenancies")
    op.drop_table("properties")
    op.drop_table("users")
