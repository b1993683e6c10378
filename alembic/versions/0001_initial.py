"""initial schema: ledger, referrals, check-ins, exchange, redeem codes, admin log

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

# enum types are shared between tables, so they are created once up front
currency_kind = postgresql.ENUM("CREDITS", "POINTS", name="currencykind", create_type=False)
transaction_type = postgresql.ENUM(
    "RECHARGE", "CONSUME", "REFUND", "GIFT", "ADMIN_ADJUST",
    name="transactiontype", create_type=False,
)
relation_status = postgresql.ENUM(
    "PENDING", "COMPLETED", "EXPIRED", name="relationstatus", create_type=False
)
reward_type = postgresql.ENUM(
    "INVITER", "UPLINE", "INVITEE", name="rewardtype", create_type=False
)
reward_status = postgresql.ENUM(
    "PENDING", "ISSUED", "FAILED", name="rewardstatus", create_type=False
)
redeem_code_status = postgresql.ENUM(
    "ACTIVE", "INACTIVE", "EXPIRED", "USED_UP", name="redeemcodestatus", create_type=False
)
admin_operation_type = postgresql.ENUM(
    "ADJUST_BALANCE", "CREATE_REDEEM_CODE", "CREATE_CHECKIN_RULE", "UPDATE_CHECKIN_RULE",
    "DEACTIVATE_CHECKIN_RULE", "EXPIRE_REFERRALS",
    name="adminoperationtype", create_type=False,
)

ENUMS = (
    currency_kind, transaction_type, relation_status, reward_type,
    reward_status, redeem_code_status, admin_operation_type,
)


def _timestamps():
    return (
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "accounts",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("currency", currency_kind, nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("total_in", sa.Integer(), nullable=False),
        sa.Column("total_out", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id", "currency", name="pk_accounts"),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("currency", currency_kind, nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("related_type", sa.String(50), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("operator_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ledger_transactions_account", "ledger_transactions",
        ["user_id", "currency", "id"],
    )

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("total_invites", sa.Integer(), nullable=False),
        sa.Column("successful_invites", sa.Integer(), nullable=False),
        sa.Column("total_rewards_issued", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "referral_relations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("inviter_id", sa.String(64), nullable=False),
        sa.Column("invitee_id", sa.String(64), nullable=False),
        sa.Column("referral_code", sa.String(20), nullable=False),
        sa.Column("status", relation_status, nullable=False),
        sa.Column("inviter_reward_amount", sa.Integer(), nullable=False),
        sa.Column("invitee_reward_amount", sa.Integer(), nullable=False),
        sa.Column("inviter_rewarded", sa.Boolean(), nullable=False),
        sa.Column("invitee_rewarded", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invitee_id"),
    )
    op.create_index(
        "ix_referral_relations_inviter_id", "referral_relations", ["inviter_id"]
    )

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("relation_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("reward_type", reward_type, nullable=False),
        sa.Column("reward_amount", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("status", reward_status, nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fail_reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["relation_id"], ["referral_relations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "relation_id", "user_id", "reward_type", name="uq_referral_rewards_party"
        ),
    )

    op.create_table(
        "referral_campaigns",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("inviter_reward", sa.Integer(), nullable=False),
        sa.Column("invitee_reward", sa.Integer(), nullable=False),
        sa.Column("requirement_type", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_invites_per_user", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "check_ins",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("consecutive_days", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "check_in_date", name="uq_check_ins_user_date"),
    )

    op.create_table(
        "check_in_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("consecutive_days", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "exchange_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("credits_received", sa.Integer(), nullable=False),
        sa.Column("exchange_rate", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_exchange_history_user_id", "exchange_history", ["user_id"])

    op.create_table(
        "redeem_codes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False),
        sa.Column("status", redeem_code_status, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "redeem_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.String(), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["code_id"], ["redeem_codes.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code_id", "user_id", name="uq_redeem_history_code_user"),
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("operation_type", admin_operation_type, nullable=False),
        sa.Column("operator_id", sa.String(64), nullable=True),
        sa.Column("entity", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("admin_log")
    op.drop_table("redeem_history")
    op.drop_table("redeem_codes")
    op.drop_index("ix_exchange_history_user_id", table_name="exchange_history")
    op.drop_table("exchange_history")
    op.drop_table("check_in_rules")
    op.drop_table("check_ins")
    op.drop_table("referral_campaigns")
    op.drop_table("referral_rewards")
    op.drop_index("ix_referral_relations_inviter_id", table_name="referral_relations")
    op.drop_table("referral_relations")
    op.drop_table("referral_codes")
    op.drop_index("ix_ledger_transactions_account", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("accounts")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
