from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rewards_ledger.schemas.base import OperationResult


# **************    Check-in
class CheckInResponse(OperationResult):
	points: int = 0
	consecutive_days: int = 0
	balance: int = 0


class CheckInDetail(BaseModel):
	check_in_date: date
	points: int
	consecutive_days: int

	model_config = ConfigDict(from_attributes=True)


class CheckInRuleCreate(BaseModel):
	name: str
	consecutive_days: int = Field(..., gt=0)
	points: int = Field(..., gt=0)
	description: Optional[str] = None


class CheckInRuleUpdate(BaseModel):
	name: Optional[str] = None
	consecutive_days: Optional[int] = Field(None, gt=0)
	points: Optional[int] = Field(None, gt=0)
	description: Optional[str] = None
	is_active: Optional[bool] = None


class CheckInRuleResponse(CheckInRuleCreate):
	id: int
	is_active: bool

	model_config = ConfigDict(from_attributes=True)


class CheckInRuleList(BaseModel):
	rules: List[CheckInRuleResponse]


class CheckInStatusResponse(BaseModel):
	has_checked_in_today: bool
	today_check_in: Optional[CheckInDetail] = None
	consecutive_days: int
	month_check_in_days: int
	recent_check_ins: List[CheckInDetail]
	rules: List[CheckInRuleResponse] = []


# **************    Exchange
class ExchangePayload(BaseModel):
	credits: int = Field(..., gt=0)


class ExchangeResponse(OperationResult):
	points_spent: int = 0
	credits_received: int = 0
	point_balance: int = 0
	credit_balance: int = 0


class ExchangeHistoryDetail(BaseModel):
	id: int
	points_spent: int
	credits_received: int
	exchange_rate: int
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ExchangeHistoryList(BaseModel):
	history: List[ExchangeHistoryDetail]
