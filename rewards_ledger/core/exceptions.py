"""
Business failures of the ledger.

Services raise these inside a transaction (so it rolls back) and the
operation boundary turns them into `{success: False, message, error}`
results. Callers of the services never see them.
"""
import enum


class ErrorCode(str, enum.Enum):
	INVALID_AMOUNT = "InvalidAmount"
	INSUFFICIENT_BALANCE = "InsufficientBalance"
	INSUFFICIENT_POINTS = "InsufficientPoints"
	NEGATIVE_RESULTING_BALANCE = "NegativeResultingBalance"
	ALREADY_CHECKED_IN = "AlreadyCheckedIn"
	DUPLICATE_REFERRAL = "DuplicateReferral"
	REFERRAL_CODE_NOT_FOUND = "ReferralCodeNotFound"
	INVITE_LIMIT_REACHED = "InviteLimitReached"
	CAMPAIGN_MISMATCH = "CampaignMismatch"
	RELATION_NOT_FOUND = "RelationNotFound"
	REDEEM_CODE_NOT_FOUND = "RedeemCodeNotFound"
	REDEEM_CODE_UNAVAILABLE = "RedeemCodeUnavailable"
	ALREADY_REDEEMED = "AlreadyRedeemed"
	CONCURRENCY_CONFLICT = "ConcurrencyConflict"
	INTERNAL_ERROR = "InternalError"


class LedgerError(Exception):
	code = ErrorCode.INTERNAL_ERROR
	default_message = "Operation failed, please try again later"

	def __init__(self, message: str | None = None, **context):
		self.message = message or self.default_message
		self.context = context
		super().__init__(self.message)


class InvalidAmount(LedgerError):
	code = ErrorCode.INVALID_AMOUNT
	default_message = "Amount must be a positive integer"


class InsufficientBalance(LedgerError):
	code = ErrorCode.INSUFFICIENT_BALANCE
	default_message = "Insufficient balance"


class InsufficientPoints(LedgerError):
	code = ErrorCode.INSUFFICIENT_POINTS
	default_message = "Insufficient points"


class NegativeResultingBalance(LedgerError):
	code = ErrorCode.NEGATIVE_RESULTING_BALANCE
	default_message = "Balance after adjustment can not be negative"


class AlreadyCheckedIn(LedgerError):
	code = ErrorCode.ALREADY_CHECKED_IN
	default_message = "Already checked in today"


class DuplicateReferral(LedgerError):
	code = ErrorCode.DUPLICATE_REFERRAL
	default_message = "Referral code was already used"


class ReferralCodeNotFound(LedgerError):
	code = ErrorCode.REFERRAL_CODE_NOT_FOUND
	default_message = "Referral code does not exist"


class InviteLimitReached(LedgerError):
	code = ErrorCode.INVITE_LIMIT_REACHED
	default_message = "Referral code reached its invite limit"


class CampaignMismatch(LedgerError):
	code = ErrorCode.CAMPAIGN_MISMATCH
	default_message = "Task does not match the active campaign"


class RelationNotFound(LedgerError):
	code = ErrorCode.RELATION_NOT_FOUND
	default_message = "No pending referral relation found"


class RedeemCodeNotFound(LedgerError):
	code = ErrorCode.REDEEM_CODE_NOT_FOUND
	default_message = "Redeem code does not exist"


class RedeemCodeUnavailable(LedgerError):
	code = ErrorCode.REDEEM_CODE_UNAVAILABLE
	default_message = "Redeem code is no longer valid"


class AlreadyRedeemed(LedgerError):
	code = ErrorCode.ALREADY_REDEEMED
	default_message = "Redeem code was already used by this user"


class ConcurrencyConflict(LedgerError):
	code = ErrorCode.CONCURRENCY_CONFLICT
	default_message = "Account is busy, please try again"


class InternalError(LedgerError):
	code = ErrorCode.INTERNAL_ERROR
