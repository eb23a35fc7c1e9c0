"""Baseline migration - support triage tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-17

Creates users/sellers reference data, conversations and their flags,
support threads with tags, and the append-only audit/moderation logs.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now())


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def upgrade() -> None:
    """Create support triage tables."""

    # ==========================================================================
    # Reference data
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("display_id", sa.String(32), nullable=True, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="buyer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _created_at(),
    )

    op.create_table(
        "sellers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("brand_name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        _created_at(),
    )

    # ==========================================================================
    # Conversations + flags
    # ==========================================================================
    op.create_table(
        "conversations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("buyer_id"),
        sa.Column(
            "seller_id", sa.Uuid(), sa.ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True
        ),
        _created_at(),
    )

    op.create_table(
        "conversation_flags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("bypass_suspected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts_24h", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "conversation_flags_extended",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("fraud_suspected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fraud_reason", sa.Text(), nullable=True),
        sa.Column("fraud_detected_at", TIMESTAMP, nullable=True),
        _user_fk("fraud_detected_by_user_id"),
        _user_fk("escalated_to_user_id"),
        sa.Column("escalated_at", TIMESTAMP, nullable=True),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("evidence_json", JSON_TYPE, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_flags_ext_fraud",
        "conversation_flags_extended",
        ["fraud_suspected", "fraud_detected_at"],
    )
    op.create_index(
        "idx_flags_ext_escalated",
        "conversation_flags_extended",
        ["escalated_to_user_id", "escalated_at"],
    )

    # ==========================================================================
    # Support threads
    # ==========================================================================
    op.create_table(
        "support_threads",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=True),
        sa.Column(
            "seller_id", sa.Uuid(), sa.ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True
        ),
        _user_fk("buyer_id"),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="normal"),
        _user_fk("assigned_to_user_id"),
        _user_fk("closed_by_user_id"),
        _user_fk("resolved_by_user_id"),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("last_message_preview", sa.Text(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_message_at", TIMESTAMP, nullable=True),
        sa.Column("sla_deadline", TIMESTAMP, nullable=True),
        sa.Column("sla_breach", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("source", "source_id", name="uq_support_threads_source"),
    )
    op.create_index(
        "idx_support_threads_status_last_msg", "support_threads", ["status", "last_message_at"]
    )
    op.create_index("idx_support_threads_assignee", "support_threads", ["assigned_to_user_id"])
    op.create_index("idx_support_threads_seller", "support_threads", ["seller_id"])
    op.create_index("idx_support_threads_buyer", "support_threads", ["buyer_id"])
    op.create_index("idx_support_threads_order", "support_threads", ["order_id"])
    op.create_index("idx_support_threads_created", "support_threads", ["created_at"])
    op.create_index("idx_support_threads_source_id", "support_threads", ["source_id"])

    op.create_table(
        "support_thread_tags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "thread_id",
            sa.Uuid(),
            sa.ForeignKey("support_threads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tag", sa.String(64), nullable=False),
        _created_at(),
        sa.UniqueConstraint("thread_id", "tag", name="uq_support_thread_tags_thread_tag"),
    )
    op.create_index("idx_support_thread_tags_tag", "support_thread_tags", ["tag"])

    # ==========================================================================
    # Append-only logs
    # ==========================================================================
    op.create_table(
        "admin_audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("actor_id"),
        sa.Column("actor_role", sa.String(20), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("meta", JSON_TYPE, nullable=True),
        _created_at(),
    )
    op.create_index("idx_admin_audit_created", "admin_audit_logs", ["created_at"])
    op.create_index(
        "idx_admin_audit_entity", "admin_audit_logs", ["entity_type", "entity_id", "created_at"]
    )
    op.create_index("idx_admin_audit_actor_created", "admin_audit_logs", ["actor_id", "created_at"])
    op.create_index("idx_admin_audit_action_created", "admin_audit_logs", ["action", "created_at"])

    op.create_table(
        "support_moderation_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("actor_id"),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("actor_role", sa.String(20), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("thread_id", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("metadata", JSON_TYPE, nullable=False),
        _created_at(),
    )
    op.create_index(
        "idx_moderation_thread_created", "support_moderation_history", ["thread_id", "created_at"]
    )
    op.create_index(
        "idx_moderation_actor_created", "support_moderation_history", ["actor_id", "created_at"]
    )
    op.create_index(
        "idx_moderation_action_created", "support_moderation_history", ["action_type", "created_at"]
    )


def downgrade() -> None:
    """Drop support triage tables."""
    op.drop_table("support_moderation_history")
    op.drop_table("admin_audit_logs")
    op.drop_table("support_thread_tags")
    op.drop_table("support_threads")
    op.drop_table("conversation_flags_extended")
    op.drop_table("conversation_flags")
    op.drop_table("conversations")
    op.drop_table("sellers")
    op.drop_table("users")
