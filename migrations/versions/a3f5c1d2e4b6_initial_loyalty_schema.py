"""initial loyalty schema

Revision ID: a3f5c1d2e4b6
Revises:
Create Date: 2026-09-28 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "a3f5c1d2e4b6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _get_inspector():
    conn = op.get_bind()
    return conn, sa.inspect(conn)


def _table_exists(inspector, table_name: str) -> bool:
    try:
        return table_name in inspector.get_table_names()
    except Exception:
        return False


def upgrade() -> None:
    # init_db 会先 create_all，这里只补齐缺失的表
    _, inspector = _get_inspector()

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("display_name", sa.String(length=100), nullable=True),
            sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_qr_checkin_code", sa.String(length=64), nullable=True),
            sa.Column("last_qr_checkin_at", sa.DateTime(), nullable=True),
            sa.Column("last_visit_at", sa.DateTime(), nullable=True),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists(inspector, "delivery_codes"):
        op.create_table(
            "delivery_codes",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("points_awarded", sa.Integer(), nullable=True),
            sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("used_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("used_at", sa.DateTime(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("order_type", sa.String(length=32), nullable=True),
            sa.Column("delivery_partner", sa.String(length=64), nullable=True),
            sa.Column("batch_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_delivery_codes_code", "delivery_codes", ["code"], unique=True)
        op.create_index("ix_delivery_codes_batch_id", "delivery_codes", ["batch_id"])

    if not _table_exists(inspector, "points_transactions"):
        op.create_table(
            "points_transactions",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("points", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=32), nullable=False),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("code_id", sa.String(length=36), nullable=True),
            sa.Column("order_type", sa.String(length=32), nullable=True),
            sa.Column("delivery_partner", sa.String(length=64), nullable=True),
            sa.Column("qr_code", sa.String(length=64), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("reward_id", sa.String(length=36), nullable=True),
            sa.Column("redemption_id", sa.String(length=36), nullable=True),
            sa.Column("admin_id", sa.String(length=36), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_points_transactions_user_id", "points_transactions", ["user_id"])
        op.create_index("ix_points_transactions_type", "points_transactions", ["type"])
        op.create_index("ix_points_transactions_created_at", "points_transactions", ["created_at"])

    if not _table_exists(inspector, "rewards"):
        op.create_table(
            "rewards",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("name_ja", sa.String(length=200), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("description_ja", sa.Text(), nullable=True),
            sa.Column("points_cost", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=32), nullable=False, server_default="in_store_item"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _table_exists(inspector, "redemptions"):
        op.create_table(
            "redemptions",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("reward_id", sa.String(length=36), sa.ForeignKey("rewards.id"), nullable=False),
            sa.Column("reward_name", sa.String(length=200), nullable=False),
            sa.Column("reward_name_ja", sa.String(length=200), nullable=True),
            sa.Column("reward_description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=32), nullable=False),
            sa.Column("points_cost", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=32), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("used_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_redemptions_user_id", "redemptions", ["user_id"])
        op.create_index("ix_redemptions_code", "redemptions", ["code"])
        op.create_index("idx_redemptions_user_active", "redemptions", ["user_id", "used", "expires_at"])

    if not _table_exists(inspector, "store_locations"):
        op.create_table(
            "store_locations",
            sa.Column("qr_code", sa.String(length=64), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=False),
            sa.Column("longitude", sa.Float(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _table_exists(inspector, "failed_code_attempts"):
        op.create_table(
            "failed_code_attempts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("ip_address", sa.String(length=45), nullable=True),
            sa.Column("code", sa.String(length=64), nullable=True),
            sa.Column("reason", sa.String(length=32), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_failed_code_attempts_user_id", "failed_code_attempts", ["user_id"])
        op.create_index("ix_failed_code_attempts_ip_address", "failed_code_attempts", ["ip_address"])
        op.create_index("ix_failed_code_attempts_created_at", "failed_code_attempts", ["created_at"])

    if not _table_exists(inspector, "operator_alerts"):
        op.create_table(
            "operator_alerts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("alert_type", sa.String(length=64), nullable=False),
            sa.Column("severity", sa.String(length=16), nullable=False, server_default="warning"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("current_value", sa.Integer(), nullable=True),
            sa.Column("threshold_value", sa.Integer(), nullable=True),
            sa.Column("extra_data", sa.JSON(), nullable=True),
            sa.Column("fired_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_operator_alerts_alert_type", "operator_alerts", ["alert_type"])
        op.create_index("idx_operator_alerts_fired_at", "operator_alerts", ["fired_at"])


def downgrade() -> None:
    op.drop_table("operator_alerts")
    op.drop_table("failed_code_attempts")
    op.drop_table("store_locations")
    op.drop_table("redemptions")
    op.drop_table("rewards")
    op.drop_table("points_transactions")
    op.drop_table("delivery_codes")
    op.drop_table("users")
