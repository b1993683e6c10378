from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from rewards_ledger.models import CurrencyKind
from rewards_ledger.schemas.base import OperationResult


class BalanceResponse(BaseModel):
	user_id: str
	currency: CurrencyKind
	balance: int
	total_in: int
	total_out: int

	model_config = ConfigDict(from_attributes=True)


class UserBalancesResponse(BaseModel):
	user_id: str
	credits: BalanceResponse
	points: BalanceResponse


class BalanceCheckResponse(BaseModel):
	user_id: str
	currency: CurrencyKind
	sufficient: bool
	balance: int
	required: int
	shortage: int


class LedgerOperationRequest(BaseModel):
	user_id: str
	currency: CurrencyKind = CurrencyKind.CREDITS
	amount: int = Field(..., gt=0)
	related_id: Optional[int] = None
	related_type: Optional[str] = None
	description: Optional[str] = None
	operator_id: Optional[str] = None


class AdjustRequest(BaseModel):
	user_id: str
	currency: CurrencyKind = CurrencyKind.CREDITS
	amount: int  # signed
	description: str
	related_id: Optional[int] = None
	related_type: Optional[str] = None


class LedgerOperationResponse(OperationResult):
	balance: int = 0
	transaction_id: Optional[int] = None


class TransactionDetail(BaseModel):
	id: int
	currency: CurrencyKind
	type: str
	amount: int
	balance_before: int
	balance_after: int
	related_id: Optional[int] = None
	related_type: Optional[str] = None
	description: Optional[str] = None
	operator_id: Optional[str] = None
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@field_serializer("created_at")
	def format_created_at(self, v: datetime, _info):
		return v.isoformat()


class TransactionPaginatedList(BaseModel):
	total: int
	limit: int
	offset: int
	transactions: List[TransactionDetail]
