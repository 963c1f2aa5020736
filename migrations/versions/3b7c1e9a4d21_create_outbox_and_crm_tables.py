"""create outbox and crm tables

Revision ID: 3b7c1e9a4d21
Revises:
Create Date: 2026-10-12 09:14:03.512207

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7c1e9a4d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "companies",
        sa.Column("company_id", sa.Text, primary_key=True),
        sa.Column("company_name", sa.Text, nullable=False),
        sa.Column(
            "category",
            sa.Text,
            nullable=True,
            comment="customer|distributor|prospect",
        ),
        sa.Column("last_invoice_at", sa.Date, nullable=True),
    )

    op.create_table(
        "contacts",
        sa.Column("contact_id", sa.Text, primary_key=True),
        sa.Column(
            "company_id",
            sa.Text,
            sa.ForeignKey("companies.company_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.Text, nullable=False),
        sa.Column("full_name", sa.Text, nullable=True),
        sa.Column(
            "marketing_status",
            sa.Text,
            nullable=False,
            server_default="pending",
        ),
    )
    op.create_index("ix_contacts_company_id", "contacts", ["company_id"])

    op.create_table(
        "outbox",
        sa.Column("job_id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_type", sa.Text, nullable=False, comment="Handler discriminator"),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            comment="Handler-specific parameters, write-once",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|processing|completed|failed",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Leases granted so far",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempt ceiling before failure",
        ),
        sa.Column(
            "scheduled_for",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job may be leased",
        ),
        # Lease
        sa.Column(
            "locked_until", sa.TIMESTAMP(timezone=True), nullable=True, comment="Lease expiry"
        ),
        sa.Column(
            "locked_by", sa.Text, nullable=True, comment="Worker holding the lease"
        ),
        # Outcome
        sa.Column("last_error", sa.Text, nullable=True, comment="Most recent failure reason"),
        sa.Column("result", sa.JSON, nullable=True, comment="Handler result on success"),
        sa.Column(
            "idempotency_key",
            sa.Text,
            nullable=True,
            comment="Producer deduplication key",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="outbox_status_check",
        ),
        sa.CheckConstraint("max_attempts >= 1", name="outbox_max_attempts_check"),
        sa.CheckConstraint("attempts >= 0", name="outbox_attempts_check"),
        sa.UniqueConstraint("idempotency_key", name="outbox_idempotency_key_key"),
    )

    # Leasing scans (status, scheduled_for); the dashboard filters by type
    op.create_index(
        "ix_outbox_status_scheduled_for", "outbox", ["status", "scheduled_for"]
    )
    op.create_index("ix_outbox_job_type_status", "outbox", ["job_type", "status"])
    op.create_index("ix_outbox_created_at", "outbox", ["created_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("outbox")
    op.drop_index("ix_contacts_company_id", table_name="contacts")
    op.drop_table("contacts")
    op.drop_table("companies")
