from rewards_ledger.models import (
	LedgerTransaction, ReferralRelation, RedeemCode
)
from rewards_ledger.schemas.ledger import TransactionDetail
from rewards_ledger.schemas.redeem import RedeemCodeResponse
from rewards_ledger.schemas.referral import InviteeDetail
from rewards_ledger.utils.common import as_utc


def serialize_transaction(tx: LedgerTransaction) -> TransactionDetail:
    tx_dict = {
        "id": tx.id,
        "currency": tx.currency,
        "type": tx.type.value,
        "amount": tx.amount,
        "balance_before": tx.balance_before,
        "balance_after": tx.balance_after,
        "related_id": tx.related_id,
        "related_type": tx.related_type,
        "description": tx.description,
        "operator_id": tx.operator_id,
        "created_at": as_utc(tx.created_at),
    }
    return TransactionDetail.model_validate(tx_dict)


def serialize_invitee(relation: ReferralRelation) -> InviteeDetail:
    return InviteeDetail(
        invitee_id=relation.invitee_id,
        status=relation.status.value,
        inviter_reward_amount=relation.inviter_reward_amount,
        invitee_reward_amount=relation.invitee_reward_amount,
        completed_at=as_utc(relation.completed_at),
        created_at=as_utc(relation.created_at),
    )


def serialize_redeem_code(code: RedeemCode) -> RedeemCodeResponse:
    return RedeemCodeResponse(
        id=code.id,
        code=code.code,
        credits=code.credits,
        max_uses=code.max_uses,
        used_count=code.used_count,
        status=code.status.value,
        expires_at=as_utc(code.expires_at),
    )
