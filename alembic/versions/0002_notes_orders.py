"""Internal notes and order number projection

Revision ID: 0002_notes_orders
Revises: 0001_baseline
Create Date: 2026-10-17

Adds staff-only thread notes and the orders table that thread search
matches order numbers against.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_notes_orders'
down_revision: Union[str, Sequence[str], None] = '0001_baseline'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIMESTAMP = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create orders and support_internal_notes."""
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "support_internal_notes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "thread_id",
            sa.Uuid(),
            sa.ForeignKey("support_threads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "author_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_support_internal_notes_thread_created",
        "support_internal_notes",
        ["thread_id", "created_at"],
    )


def downgrade() -> None:
    """Drop support_internal_notes and orders."""
    op.drop_index("idx_support_internal_notes_thread_created", table_name="support_internal_notes")
    op.drop_table("support_internal_notes")
    op.drop_table("orders")
