import enum

from sqlalchemy import (
	Column, Integer, String, DateTime, Enum, CheckConstraint, PrimaryKeyConstraint
)

from rewards_ledger.core.database import Base, utc_now


class CurrencyKind(str, enum.Enum):
	CREDITS = "credits"  # spent on generation
	POINTS = "points"    # earned through engagement


class Account(Base):
	__tablename__ = "accounts"
	__table_args__ = (
		PrimaryKeyConstraint("user_id", "currency", name="pk_accounts"),
		CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
	)

	user_id = Column(String(64), nullable=False)
	currency = Column(Enum(CurrencyKind), nullable=False)
	balance = Column(Integer, nullable=False, default=0)  # current balance
	total_in = Column(Integer, nullable=False, default=0)  # everything ever added
	total_out = Column(Integer, nullable=False, default=0)  # everything ever taken
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)
