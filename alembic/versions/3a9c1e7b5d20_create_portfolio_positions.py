"""create portfolio positions, snapshots and analyses

Revision ID: 3a9c1e7b5d20
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3a9c1e7b5d20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "portfolio_positions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("symbol", sa.String(length=64), nullable=False),
        sa.Column("quote_symbol", sa.String(length=128), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("position_type", sa.String(length=16), nullable=False),
        sa.Column("purchase_price_label", sa.Text(), nullable=False),
        sa.Column("position_currency", sa.String(length=8), nullable=True),
        sa.Column("position_size_type", sa.String(length=16), nullable=True),
        sa.Column("position_size_value", sa.Float(), nullable=True),
        sa.Column("position_size_label", sa.Text(), nullable=True),
        sa.Column("position_size_per_pip", sa.Float(), nullable=True),
        sa.Column("position_size_per_pip_label", sa.Text(), nullable=True),
        sa.Column("position_total_value", sa.Float(), nullable=True),
        sa.Column("position_total_value_currency", sa.String(length=8), nullable=True),
        sa.Column("position_total_value_label", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("symbol", name="uq_portfolio_positions_symbol"),
        sa.CheckConstraint(
            "category IN ('stock', 'commodity', 'hedge', 'cash', 'cryptocurrency')",
            name="ck_portfolio_positions_category",
        ),
        sa.CheckConstraint("position_type IN ('long', 'short')", name="ck_portfolio_positions_type"),
        sa.CheckConstraint(
            "position_size_type IS NULL OR position_size_type IN ('capital', 'units', 'pips')",
            name="ck_portfolio_positions_size_type",
        ),
    )
    op.create_index("ix_portfolio_positions_slug", "portfolio_positions", ["slug"], unique=True)

    op.create_table(
        "portfolio_position_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "position_id",
            sa.Integer(),
            sa.ForeignKey("portfolio_positions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("current_price_value", sa.Float(), nullable=True),
        sa.Column("current_price_currency", sa.String(length=8), nullable=True),
        sa.Column("current_price_label", sa.Text(), nullable=False),
        sa.Column("return_value", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("return_label", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index(
        "ix_portfolio_position_snapshots_position_id",
        "portfolio_position_snapshots",
        ["position_id"],
        unique=False,
    )
    op.create_index(
        "ix_portfolio_position_snapshots_latest",
        "portfolio_position_snapshots",
        ["position_id", sa.text("recorded_at DESC")],
        unique=False,
    )

    op.create_table(
        "portfolio_position_analyses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "position_id",
            sa.Integer(),
            sa.ForeignKey("portfolio_positions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("trend", sa.String(length=16), nullable=False),
        sa.Column("target_tp1", sa.Text(), nullable=True),
        sa.Column("target_tp2", sa.Text(), nullable=True),
        sa.Column("target_tp3", sa.Text(), nullable=True),
        sa.Column("stop_loss", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("analysis_image", sa.Text(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("completion_note", sa.Text(), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("position_closed", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("position_closed_note", sa.Text(), nullable=True),
        sa.Column("position_closed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entry_strategy", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("position_id", name="uq_portfolio_position_analyses_position_id"),
        sa.CheckConstraint(
            "trend IN ('bullish', 'bearish', 'neutral')",
            name="ck_portfolio_position_analyses_trend",
        ),
    )


def downgrade() -> None:
    op.drop_table("portfolio_position_analyses")
    op.drop_index("ix_portfolio_position_snapshots_latest", table_name="portfolio_position_snapshots")
    op.drop_index("ix_portfolio_position_snapshots_position_id", table_name="portfolio_position_snapshots")
    op.drop_table("portfolio_position_snapshots")
    op.drop_index("ix_portfolio_positions_slug", table_name="portfolio_positions")
    op.drop_table("portfolio_positions")
