import logging
from typing import Optional

from fastapi import APIRouter, Depends, status, HTTPException
from sqlalchemy.exc import IntegrityError

from rewards_ledger.core.dependencies import (
    access_admin, get_operator_id, get_ledger_service, get_redeem_service,
    get_checkin_service, get_referral_service
)
from rewards_ledger.schemas.ledger import AdjustRequest, LedgerOperationResponse
from rewards_ledger.schemas.points import (
    CheckInRuleCreate, CheckInRuleUpdate, CheckInRuleResponse, CheckInRuleList
)
from rewards_ledger.schemas.redeem import RedeemCodeCreate, RedeemCodeResponse
from rewards_ledger.schemas.referral import ExpireReferralsResponse
from rewards_ledger.utils.service_checkin import CheckInService
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_redeem import RedeemService
from rewards_ledger.utils.service_referral import ReferralService

logger = logging.getLogger("[ADMIN]")


FORBIDDEN = {
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid admin token."}
            },
        },
    },
}

SERVER_ERROR = {
    500: {
        "description": "Internal Server Error.",
        "content": {
            "application/json": {
                "example": {"detail": "Internal Server Error."}
            }
        },
    },
}

NOT_FOUND = {
    404: {
        "description": "Not Found.",
        "content": {
            "application/json": {
                "example": {"detail": "Check-in rule not found."}
            },
        },
    },
}

ADMIN_DESCRIPTION = "Admin access only. Headers: X-Admin-Token, X-Operator-Id"


# Admin API
admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin API"],
    dependencies=[Depends(access_admin)],
)


@admin_router.post(
    "/balance/adjust",
    summary="Manual balance adjustment (signed amount)",
    description=ADMIN_DESCRIPTION,
    response_model=LedgerOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def adjust_balance(
    payload: AdjustRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.adjust(
        payload.user_id,
        payload.currency,
        payload.amount,
        operator_id=operator_id,
        description=payload.description,
        related_id=payload.related_id,
        related_type=payload.related_type,
    )


@admin_router.post(
    "/redeem-codes",
    summary="Create a redeem code",
    description=ADMIN_DESCRIPTION,
    response_model=RedeemCodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **FORBIDDEN,
        409: {
            "description": "Conflict.",
            "content": {
                "application/json": {
                    "example": {"detail": "Unique: code already exists."}
                },
            },
        },
        **SERVER_ERROR,
    },
)
async def create_redeem_code(
    payload: RedeemCodeCreate,
    operator_id: Optional[str] = Depends(get_operator_id),
    redeem: RedeemService = Depends(get_redeem_service),
):
    try:
        return await redeem.create_redeem_code(payload, operator_id=operator_id)
    except IntegrityError:
        logger.warning(f"Redeem code '{payload.code}' already exists")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Unique: code='{payload.code}' already exists."
        )


@admin_router.post(
    "/checkin/rules",
    summary="Create a check-in streak rule",
    description=ADMIN_DESCRIPTION + ". Active rules are shown with the user check-in status.",
    response_model=CheckInRuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def create_check_in_rule(
    payload: CheckInRuleCreate,
    operator_id: Optional[str] = Depends(get_operator_id),
    checkins: CheckInService = Depends(get_checkin_service),
):
    return await checkins.create_rule(payload, operator_id=operator_id)


def _rule_or_404(rule: Optional[CheckInRuleResponse], rule_id: int) -> CheckInRuleResponse:
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Check-in rule {rule_id} not found."
        )
    return rule


@admin_router.get(
    "/checkin/rules",
    summary="List check-in rules",
    description=ADMIN_DESCRIPTION,
    response_model=CheckInRuleList,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def list_check_in_rules(
    active_only: bool = False,
    checkins: CheckInService = Depends(get_checkin_service),
):
    return await checkins.list_rules(active_only=active_only)


@admin_router.get(
    "/checkin/rules/{rule_id}",
    summary="Get a check-in rule",
    description=ADMIN_DESCRIPTION,
    response_model=CheckInRuleResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **NOT_FOUND, **SERVER_ERROR},
)
async def get_check_in_rule(
    rule_id: int,
    checkins: CheckInService = Depends(get_checkin_service),
):
    return _rule_or_404(await checkins.get_rule(rule_id), rule_id)


@admin_router.put(
    "/checkin/rules/{rule_id}",
    summary="Update a check-in rule",
    description=ADMIN_DESCRIPTION,
    response_model=CheckInRuleResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **NOT_FOUND, **SERVER_ERROR},
)
async def update_check_in_rule(
    rule_id: int,
    payload: CheckInRuleUpdate,
    operator_id: Optional[str] = Depends(get_operator_id),
    checkins: CheckInService = Depends(get_checkin_service),
):
    rule = await checkins.update_rule(rule_id, payload, operator_id=operator_id)
    return _rule_or_404(rule, rule_id)


@admin_router.delete(
    "/checkin/rules/{rule_id}",
    summary="Deactivate a check-in rule",
    description=ADMIN_DESCRIPTION + ". The rule is kept with is_active=false.",
    response_model=CheckInRuleResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **NOT_FOUND, **SERVER_ERROR},
)
async def deactivate_check_in_rule(
    rule_id: int,
    operator_id: Optional[str] = Depends(get_operator_id),
    checkins: CheckInService = Depends(get_checkin_service),
):
    rule = await checkins.deactivate_rule(rule_id, operator_id=operator_id)
    return _rule_or_404(rule, rule_id)


@admin_router.post(
    "/referrals/expire",
    summary="Expire pending referral relations older than the TTL",
    description=ADMIN_DESCRIPTION,
    response_model=ExpireReferralsResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def expire_referrals(
    operator_id: Optional[str] = Depends(get_operator_id),
    referrals: ReferralService = Depends(get_referral_service),
):
    expired = await referrals.expire_stale_relations(operator_id=operator_id)
    return ExpireReferralsResponse(expired=expired)
