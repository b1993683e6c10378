import enum
from sqlalchemy import (
	Column, DateTime, String, JSON, Enum as AlchemyEnum
)

from rewards_ledger.core.database import Base, utc_now


# AdminLog stores every change an admin made through the API
class AdminOperationType(enum.Enum):
	ADJUST_BALANCE = "adjust_balance"
	CREATE_REDEEM_CODE = "create_redeem_code"
	CREATE_CHECKIN_RULE = "create_checkin_rule"
	UPDATE_CHECKIN_RULE = "update_checkin_rule"
	DEACTIVATE_CHECKIN_RULE = "deactivate_checkin_rule"
	EXPIRE_REFERRALS = "expire_referrals"


class AdminLog(Base):
	__tablename__ = "admin_log"

	id = Column(String, primary_key=True)
	operation_type = Column(AlchemyEnum(AdminOperationType), nullable=False)
	operator_id = Column(String(64), nullable=True)
	entity = Column(String, nullable=False)  # object: "Account", "RedeemCode", ...
	entity_id = Column(String, nullable=True)
	changes = Column(JSON, nullable=False)  # {"balance_before": 0, "balance_after": 20}
	created_at = Column(DateTime(timezone=True), default=utc_now)
