"""initial flex rental schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "rentals",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("powerbank_id", sa.String(64), nullable=False),
        sa.Column("station_start_id", sa.String(128), nullable=False),
        sa.Column("station_end_id", sa.String(128), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("total_minutes", sa.Integer(), nullable=True),
        sa.Column("usage_amount", sa.Integer(), nullable=True),
        sa.Column("penalty_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("validation_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stripe_customer_id", sa.String(128), nullable=True),
        sa.Column("stripe_payment_method_id", sa.String(128), nullable=False),
        sa.Column("validation_charge_id", sa.String(128), nullable=True),
        sa.Column("usage_charge_id", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rentals_user_id", "rentals", ["user_id"])
    op.create_index(
        "uq_rentals_active_powerbank",
        "rentals",
        ["powerbank_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "stations",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("total_capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pb_available", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("return_slots", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("stripe_customer_id", sa.String(128), nullable=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_points", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("stripe_payment_method_id", sa.String(128), nullable=False),
        sa.Column("brand", sa.String(32), nullable=True),
        sa.Column("last4", sa.String(4), nullable=True),
        sa.Column("exp_month", sa.Integer(), nullable=True),
        sa.Column("exp_year", sa.Integer(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "payment_method_status", sa.String(16), nullable=False, server_default="active"
        ),
    )
    op.create_index("ix_payment_methods_user_id", "payment_methods", ["user_id"])
    op.create_index(
        "ix_payment_methods_stripe_payment_method_id",
        "payment_methods",
        ["stripe_payment_method_id"],
    )

    op.create_table(
        "payment_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("rental_id", sa.String(64), nullable=False),
        sa.Column("purpose", sa.String(16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("charge_id", sa.String(128), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_attempts_rental_id", "payment_attempts", ["rental_id"])

    op.create_table(
        "debts",
        sa.Column("rental_id", sa.String(64), primary_key=True),
        sa.Column("amount_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "idempotency_keys",
        sa.Column("key", sa.String(128), primary_key=True),
        sa.Column("scope", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("response_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="earned"),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "user_id", "source", "reference_id", name="uq_points_user_source_ref"
        ),
    )
    op.create_index("ix_points_transactions_user_id", "points_transactions", ["user_id"])


def downgrade() -> None:
    op.drop_table("points_transactions")
    op.drop_table("idempotency_keys")
    op.drop_table("debts")
    op.drop_table("payment_attempts")
    op.drop_table("payment_methods")
    op.drop_table("users")
    op.drop_index("uq_rentals_active_powerbank", table_name="rentals")
    op.drop_table("rentals")
    op.drop_table("stations")
