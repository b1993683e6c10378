from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rewards_ledger.schemas.base import OperationResult


class RedeemPayload(BaseModel):
	code: str


class RedeemResponse(OperationResult):
	credits: int = 0
	balance: int = 0


class RedeemCodeCreate(BaseModel):
	code: Optional[str] = None  # generated when empty
	credits: int = Field(..., gt=0)
	max_uses: int = Field(1, gt=0)
	expires_at: Optional[datetime] = None


class RedeemCodeResponse(BaseModel):
	id: int
	code: str
	credits: int
	max_uses: int
	used_count: int
	status: str
	expires_at: Optional[datetime] = None
