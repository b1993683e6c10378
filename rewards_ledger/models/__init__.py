from rewards_ledger.models.account import Account, CurrencyKind
from rewards_ledger.models.transaction import LedgerTransaction, TransactionType
from rewards_ledger.models.referral import (
	ReferralCode, ReferralRelation, RewardRecord, ReferralCampaign,
	RelationStatus, RewardType, RewardStatus, RequirementType
)
from rewards_ledger.models.points import CheckIn, CheckInRule, ExchangeHistory
from rewards_ledger.models.redeem import RedeemCode, RedeemHistory, RedeemCodeStatus
from rewards_ledger.models.settings import AdminLog, AdminOperationType
