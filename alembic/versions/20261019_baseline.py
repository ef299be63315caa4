"""Baseline schema.

Revision ID: 20261019_baseline
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "markets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("icon", sa.String(length=16), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("external_id", name="uq_markets_external_id"),
    )
    op.create_index("ix_markets_status_created", "markets", ["status", "created_at"])

    op.create_table(
        "market_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "market_id",
            sa.Integer(),
            sa.ForeignKey("markets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("external_id", sa.String(length=160), nullable=True),
        sa.Column("current_probability", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("market_id", "title", name="uq_market_options_market_title"),
        sa.UniqueConstraint("market_id", "external_id", name="uq_market_options_market_external_id"),
        sa.CheckConstraint(
            "current_probability >= 0 AND current_probability <= 100",
            name="ck_market_options_probability_range",
        ),
    )
    op.create_index("ix_market_options_market_id", "market_options", ["market_id"])

    op.create_table(
        "probability_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "market_id",
            sa.Integer(),
            sa.ForeignKey("markets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "option_id",
            sa.Integer(),
            sa.ForeignKey("market_options.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("probability", sa.Integer(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_probability_history_market_recorded",
        "probability_history",
        ["market_id", "recorded_at"],
    )
    op.create_index(
        "ix_probability_history_option_recorded",
        "probability_history",
        ["option_id", "recorded_at"],
    )

    op.create_table(
        "profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("balance >= 0", name="ck_profiles_balance_non_negative"),
    )

    op.create_table(
        "positions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("market_id", sa.Integer(), sa.ForeignKey("markets.id"), nullable=False),
        sa.Column("option_id", sa.Integer(), sa.ForeignKey("market_options.id"), nullable=False),
        sa.Column("outcome", sa.String(length=256), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_share", sa.Numeric(6, 4), nullable=False),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_positions_quantity_positive"),
    )
    op.create_index("ix_positions_user_created", "positions", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_positions_user_created", table_name="positions")
    op.drop_table("positions")
    op.drop_table("profiles")
    op.drop_index("ix_probability_history_option_recorded", table_name="probability_history")
    op.drop_index("ix_probability_history_market_recorded", table_name="probability_history")
    op.drop_table("probability_history")
    op.drop_index("ix_market_options_market_id", table_name="market_options")
    op.drop_table("market_options")
    op.drop_index("ix_markets_status_created", table_name="markets")
    op.drop_table("markets")
