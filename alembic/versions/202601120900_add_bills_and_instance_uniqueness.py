"""add bill columns and one instance per template date

Revision ID: 202601120900
Revises: 202601050900
Create Date: 2026-01-12 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601120900"
down_revision = "202601050900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("transactions") as batch_op:
        batch_op.add_column(sa.Column("due_date", sa.Date()))
        batch_op.add_column(
            sa.Column(
                "bill_status",
                sa.Enum("unpaid", "paid", "overdue", "pending", name="billstatus"),
            )
        )
        batch_op.add_column(
            sa.Column(
                "bill_frequency",
                sa.Enum(
                    "monthly", "quarterly", "yearly", "one-time", name="billfrequency"
                ),
            )
        )
        batch_op.add_column(sa.Column("next_due_date", sa.Date()))
        batch_op.add_column(sa.Column("last_paid_date", sa.Date()))
        batch_op.add_column(sa.Column("bill_provider", sa.String(length=120)))
        batch_op.add_column(sa.Column("reminder_days", sa.Integer()))
        batch_op.add_column(
            sa.Column(
                "payment_method",
                sa.Enum(
                    "manual",
                    "auto-pay",
                    "bank-transfer",
                    "credit-card",
                    "debit-card",
                    "cash",
                    name="paymentmethod",
                ),
            )
        )
        batch_op.create_unique_constraint(
            "uq_txn_template_date", ["template_id", "date"]
        )
        batch_op.create_index(
            "ix_transactions_user_due_date", ["user_id", "due_date"]
        )


def downgrade() -> None:
    with op.batch_alter_table("transactions") as batch_op:
        batch_op.drop_index("ix_transactions_user_due_date")
        batch_op.drop_constraint("uq_txn_template_date", type_="unique")
        for column in (
            "payment_method",
            "reminder_days",
            "bill_provider",
            "last_paid_date",
            "next_due_date",
            "bill_frequency",
            "bill_status",
            "due_date",
        ):
            batch_op.drop_column(column)
