import enum

from sqlalchemy import (
	Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from rewards_ledger.core.database import Base, utc_now


class RelationStatus(enum.Enum):
	PENDING = "pending"
	COMPLETED = "completed"  # terminal
	EXPIRED = "expired"      # terminal


class RewardType(enum.Enum):
	INVITER = "inviter"  # direct inviter of the invitee
	UPLINE = "upline"    # inviter's own inviters, decayed
	INVITEE = "invitee"


class RewardStatus(enum.Enum):
	PENDING = "pending"
	ISSUED = "issued"
	FAILED = "failed"


class RequirementType(str, enum.Enum):
	REGISTER = "register"
	VERIFIED_EMAIL = "verified_email"
	FIRST_COMIC = "first_comic"


class ReferralCode(Base):
	__tablename__ = "referral_codes"

	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), unique=True, nullable=False)
	code = Column(String(20), unique=True, nullable=False)
	total_invites = Column(Integer, nullable=False, default=0)
	successful_invites = Column(Integer, nullable=False, default=0)  # invitee completed the task
	total_rewards_issued = Column(Integer, nullable=False, default=0)
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)


class ReferralRelation(Base):
	__tablename__ = "referral_relations"

	id = Column(Integer, primary_key=True, autoincrement=True)
	inviter_id = Column(String(64), nullable=False, index=True)
	# one user can be invited only once
	invitee_id = Column(String(64), unique=True, nullable=False)
	referral_code = Column(String(20), nullable=False)
	status = Column(Enum(RelationStatus), nullable=False, default=RelationStatus.PENDING)

	# nominal at creation, actual (decayed) after completion
	inviter_reward_amount = Column(Integer, nullable=False, default=0)
	invitee_reward_amount = Column(Integer, nullable=False, default=0)
	inviter_rewarded = Column(Boolean, nullable=False, default=False)
	invitee_rewarded = Column(Boolean, nullable=False, default=False)

	completed_at = Column(DateTime(timezone=True), nullable=True)
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)

	rewards = relationship("RewardRecord", back_populates="relation")


class RewardRecord(Base):
	__tablename__ = "referral_rewards"
	__table_args__ = (
		UniqueConstraint(
			"relation_id", "user_id", "reward_type", name="uq_referral_rewards_party"
		),
	)

	id = Column(Integer, primary_key=True, autoincrement=True)
	relation_id = Column(Integer, ForeignKey("referral_relations.id"), nullable=False)
	user_id = Column(String(64), nullable=False)
	reward_type = Column(Enum(RewardType), nullable=False)
	reward_amount = Column(Integer, nullable=False)
	level = Column(Integer, nullable=False, default=0)  # distance from the direct inviter
	status = Column(Enum(RewardStatus), nullable=False, default=RewardStatus.PENDING)
	issued_at = Column(DateTime(timezone=True), nullable=True)
	fail_reason = Column(String, nullable=True)
	created_at = Column(DateTime(timezone=True), default=utc_now)

	relation = relationship("ReferralRelation", back_populates="rewards")


class ReferralCampaign(Base):
	"""Managed outside of this service, only read here."""
	__tablename__ = "referral_campaigns"

	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(100), nullable=False)
	description = Column(String, nullable=True)
	inviter_reward = Column(Integer, nullable=False, default=10)
	invitee_reward = Column(Integer, nullable=False, default=5)
	requirement_type = Column(String(50), nullable=False, default=RequirementType.REGISTER.value)
	is_active = Column(Boolean, nullable=False, default=True)
	start_date = Column(DateTime(timezone=True), nullable=True)
	end_date = Column(DateTime(timezone=True), nullable=True)
	max_invites_per_user = Column(Integer, nullable=True)  # None: no limit
	created_at = Column(DateTime(timezone=True), default=utc_now)
	updated_at = Column(DateTime(timezone=True), default=utc_now)
