from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from rewards_ledger.schemas.base import OperationResult


class CampaignConfig(BaseModel):
	id: Optional[int] = None
	name: str
	inviter_reward: int
	invitee_reward: int
	requirement_type: str
	max_invites_per_user: Optional[int] = None
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class ReferralRelationRequest(BaseModel):
	invitee_id: str
	code: str


class ReferralRedeemPayload(BaseModel):
	code: str


class ReferralRelationResponse(OperationResult):
	pass


class ReferralTaskRequest(BaseModel):
	invitee_id: str
	task_type: str


class UplineReward(BaseModel):
	user_id: str
	level: int
	amount: int


class ReferralTaskResponse(OperationResult):
	inviter_reward: int = 0
	invitee_reward: int = 0
	upline_rewards: List[UplineReward] = []


class ReferralCodeResponse(OperationResult):
	code: Optional[str] = None


class ReferralCodeValidation(BaseModel):
	valid: bool
	user_id: Optional[str] = None
	message: str


class InviteeDetail(BaseModel):
	invitee_id: str
	status: str
	inviter_reward_amount: int
	invitee_reward_amount: int
	completed_at: Optional[datetime] = None
	created_at: datetime


class ReferralStatsResponse(BaseModel):
	referral_code: Optional[str] = None
	total_invites: int = 0
	successful_invites: int = 0
	total_rewards_issued: int = 0
	invitees: List[InviteeDetail] = []


class ExpireReferralsResponse(BaseModel):
	success: bool = True
	expired: int
