from sqlalchemy import (
	Column, Integer, String, Date, DateTime, Boolean, UniqueConstraint
)

from rewards_ledger.core.database import Base, utc_now


class CheckIn(Base):
	__tablename__ = "check_ins"
	__table_args__ = (
		# once per day
		UniqueConstraint("user_id", "check_in_date", name="uq_check_ins_user_date"),
	)

	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), nullable=False)
	check_in_date = Column(Date, nullable=False)
	points = Column(Integer, nullable=False)
	consecutive_days = Column(Integer, nullable=False, default=1)
	created_at = Column(DateTime(timezone=True), default=utc_now)


class CheckInRule(Base):
	__tablename__ = "check_in_rules"

	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(100), nullable=False)
	consecutive_days = Column(Integer, nullable=False)  # streak threshold
	points = Column(Integer, nullable=False)
	description = Column(String, nullable=True)
	is_active = Column(Boolean, nullable=False, default=True)
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)


class ExchangeHistory(Base):
	__tablename__ = "exchange_history"

	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), nullable=False, index=True)
	points_spent = Column(Integer, nullable=False)
	credits_received = Column(Integer, nullable=False)
	exchange_rate = Column(Integer, nullable=False)  # points per credit
	created_at = Column(DateTime(timezone=True), default=utc_now)
