"""Initial schema: documents, fields, signature requests, signers and events

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID

from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enums via raw SQL
    op.execute(
        "CREATE TYPE documentstatus AS ENUM ('draft', 'pending_signature', 'in_progress', 'completed', 'expired')"
    )
    op.execute("CREATE TYPE fieldtype AS ENUM ('signature', 'initials', 'date', 'text', 'checkbox')")
    op.execute(
        "CREATE TYPE signaturerequeststatus AS ENUM ('draft', 'sent', 'in_progress', 'completed', 'expired')"
    )
    op.execute("CREATE TYPE signerstatus AS ENUM ('pending', 'sent', 'opened', 'signed', 'expired')")
    op.execute("CREATE TYPE signerrole AS ENUM ('signer', 'beneficiary', 'witness', 'representative')")
    op.execute("CREATE TYPE signaturetype AS ENUM ('electronic', 'drawn', 'typed')")
    op.execute(
        "CREATE TYPE documenteventtype AS ENUM "
        "('created', 'sent', 'opened', 'reminded', 'signed', 'completed', 'expired')"
    )
    op.execute("CREATE TYPE notificationchannel AS ENUM ('email', 'sms', 'whatsapp', 'push')")
    op.execute("CREATE TYPE notificationkind AS ENUM ('invitation', 'reminder')")

    # Documents
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("page_count", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            ENUM(
                "draft",
                "pending_signature",
                "in_progress",
                "completed",
                "expired",
                name="documentstatus",
                create_type=False,
            ),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("total_signers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_signers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("page_count >= 1", name="ck_documents_page_count"),
        sa.CheckConstraint(
            "completed_signers >= 0 AND completed_signers <= total_signers", name="ck_documents_signer_counts"
        ),
    )

    # Signature Requests
    op.create_table(
        "signature_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False, index=True),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "status",
            ENUM(
                "draft",
                "sent",
                "in_progress",
                "completed",
                "expired",
                name="signaturerequeststatus",
                create_type=False,
            ),
            nullable=False,
            server_default="draft",
            index=True,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) OR (status != 'completed' AND completed_at IS NULL)",
            name="ck_signature_requests_completed_at",
        ),
    )

    # Signers
    op.create_table(
        "signers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "signature_request_id",
            UUID(as_uuid=True),
            sa.ForeignKey("signature_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column(
            "role",
            ENUM("signer", "beneficiary", "witness", "representative", name="signerrole", create_type=False),
            nullable=False,
            server_default="signer",
        ),
        sa.Column("signing_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "status",
            ENUM("pending", "sent", "opened", "signed", "expired", name="signerstatus", create_type=False),
            nullable=False,
            server_default="pending",
            index=True,
        ),
        sa.Column("access_token", sa.String(255), nullable=True, unique=True, index=True),
        sa.Column("token_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("token_revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("reminded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signature_data", sa.Text(), nullable=True),
        sa.Column(
            "signature_type",
            ENUM("electronic", "drawn", "typed", name="signaturetype", create_type=False),
            nullable=True,
        ),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(status = 'signed' AND signed_at IS NOT NULL) OR (status != 'signed' AND signed_at IS NULL)",
            name="ck_signers_signed_at",
        ),
    )

    # Signature Fields
    op.create_table(
        "signature_fields",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "document_id",
            UUID(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column(
            "field_type",
            ENUM("signature", "initials", "date", "text", "checkbox", name="fieldtype", create_type=False),
            nullable=False,
        ),
        sa.Column("x", sa.Float(), nullable=False),
        sa.Column("y", sa.Float(), nullable=False),
        sa.Column("width", sa.Float(), nullable=False),
        sa.Column("height", sa.Float(), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("multiline", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("placeholder_text", sa.String(255), nullable=True),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("filled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "filled_by_signer_id", UUID(as_uuid=True), sa.ForeignKey("signers.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "assigned_signer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("signers.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("page_number >= 1", name="ck_signature_fields_page_number"),
        sa.CheckConstraint("x >= 0 AND y >= 0", name="ck_signature_fields_origin"),
        sa.CheckConstraint("width > 0 AND height > 0", name="ck_signature_fields_size"),
    )

    # Document Events
    op.create_table(
        "document_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "signature_request_id",
            UUID(as_uuid=True),
            sa.ForeignKey("signature_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("signer_id", UUID(as_uuid=True), sa.ForeignKey("signers.id"), nullable=True, index=True),
        sa.Column(
            "event_type",
            ENUM(
                "created",
                "sent",
                "opened",
                "reminded",
                "signed",
                "completed",
                "expired",
                name="documenteventtype",
                create_type=False,
            ),
            nullable=False,
            index=True,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("integrity_hash", sa.String(64), nullable=False),
        sa.Column("previous_hash", sa.String(64), nullable=True),
        sa.UniqueConstraint("signature_request_id", "sequence", name="uq_document_events_sequence"),
    )

    # Notification Logs
    op.create_table(
        "notification_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "signature_request_id",
            UUID(as_uuid=True),
            sa.ForeignKey("signature_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("signer_id", UUID(as_uuid=True), sa.ForeignKey("signers.id"), nullable=False, index=True),
        sa.Column(
            "channel",
            ENUM("email", "sms", "whatsapp", "push", name="notificationchannel", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "kind",
            ENUM("invitation", "reminder", name="notificationkind", create_type=False),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("notification_logs")
    op.drop_table("document_events")
    op.drop_table("signature_fields")
    op.drop_table("signers")
    op.drop_table("signature_requests")
    op.drop_table("documents")

    # Drop enums
    for enum_name in (
        "notificationkind",
        "notificationchannel",
        "documenteventtype",
        "signaturetype",
        "signerrole",
        "signerstatus",
        "signaturerequeststatus",
        "fieldtype",
        "documentstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
