import enum

from sqlalchemy import (
	Column, Integer, String, DateTime, Enum, ForeignKey, UniqueConstraint
)

from rewards_ledger.core.database import Base, utc_now


class RedeemCodeStatus(enum.Enum):
	ACTIVE = "active"
	INACTIVE = "inactive"
	EXPIRED = "expired"
	USED_UP = "used_up"


class RedeemCode(Base):
	__tablename__ = "redeem_codes"

	id = Column(Integer, primary_key=True, autoincrement=True)
	code = Column(String(50), unique=True, nullable=False)
	credits = Column(Integer, nullable=False)
	max_uses = Column(Integer, nullable=False, default=1)
	used_count = Column(Integer, nullable=False, default=0)
	status = Column(Enum(RedeemCodeStatus), nullable=False, default=RedeemCodeStatus.ACTIVE)
	expires_at = Column(DateTime(timezone=True), nullable=True)
	created_by = Column(String(64), nullable=True)
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)


class RedeemHistory(Base):
	__tablename__ = "redeem_history"
	__table_args__ = (
		UniqueConstraint("code_id", "user_id", name="uq_redeem_history_code_user"),
	)

	id = Column(Integer, primary_key=True, autoincrement=True)
	code_id = Column(Integer, ForeignKey("redeem_codes.id", ondelete="RESTRICT"), nullable=False)
	user_id = Column(String(64), nullable=False)
	credits = Column(Integer, nullable=False)
	status = Column(String(20), nullable=False)
	message = Column(String, nullable=True)
	redeemed_at = Column(DateTime(timezone=True), default=utc_now)
