import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, Index

from rewards_ledger.core.database import Base, utc_now
from rewards_ledger.models.account import CurrencyKind


class TransactionType(enum.Enum):
    RECHARGE = "recharge"          # top-up
    CONSUME = "consume"            # spending
    REFUND = "refund"
    GIFT = "gift"                  # rewards: check-in, referral
    ADMIN_ADJUST = "admin_adjust"  # manual correction by an operator


class LedgerTransaction(Base):
    """Append-only: one row per balance mutation, never updated."""
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        Index("ix_ledger_transactions_account", "user_id", "currency", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    currency = Column(Enum(CurrencyKind), nullable=False)

    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Integer, nullable=False)  # + or -
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    related_id = Column(Integer, nullable=True)  # what caused it
    related_type = Column(String(50), nullable=True)
    description = Column(String, nullable=True)
    operator_id = Column(String(64), nullable=True)  # admin who authorized it
    created_at = Column(DateTime(timezone=True), default=utc_now)
