"""Create loans table

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates the `loans` table owned by the Loan service.
How:   Portable column types only (integer identity, VARCHAR status, DATE and
       TIMESTAMP WITH TIME ZONE) so the same migration runs on SQLite.

Rollback: downgrade() drops the table entirely (destructive, all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),

        # Opaque ids owned by the Profile and Book services (no FKs across services)
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("book_id", sa.String(255), nullable=False),

        sa.Column("borrowed_at", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),

        # NULL until the loan is returned
        sa.Column("returned_at", sa.TIMESTAMP(timezone=True), nullable=True),

        # borrowed | returned
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'borrowed'"),
        ),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),

        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("idx_loans_book_id", "loans", ["book_id"])
    op.create_index("idx_loans_user_id", "loans", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_loans_user_id", table_name="loans")
    op.drop_index("idx_loans_book_id", table_name="loans")
    op.drop_table("loans")
