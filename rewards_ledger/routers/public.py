from typing import Optional

from fastapi import APIRouter, status, Depends, Query

from rewards_ledger.core.dependencies import (
    get_current_user, get_ledger_service, get_checkin_service,
    get_exchange_service, get_referral_service, get_redeem_service
)
from rewards_ledger.models import CurrencyKind
from rewards_ledger.schemas.ledger import UserBalancesResponse, TransactionPaginatedList
from rewards_ledger.schemas.points import (
    CheckInResponse, CheckInStatusResponse, ExchangePayload, ExchangeResponse,
    ExchangeHistoryList
)
from rewards_ledger.schemas.redeem import RedeemPayload, RedeemResponse
from rewards_ledger.schemas.referral import (
    ReferralCodeResponse, ReferralStatsResponse, ReferralRedeemPayload,
    ReferralRelationResponse
)
from rewards_ledger.utils.service_checkin import CheckInService
from rewards_ledger.utils.service_exchange import ExchangeService
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_redeem import RedeemService
from rewards_ledger.utils.service_referral import ReferralService


USER_AUTH = {
    401: {
        "description": "Unauthorized.",
        "content": {
            "application/json": {
                "example": {"detail": "Not authenticated."}
            },
        },
    },
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid user token."}
            },
        },
    },
    500: {
        "description": "Internal Server Error.",
        "content": {
            "application/json": {
                "example": {"detail": "Internal Server Error."}
            }
        },
    },
}

AUTH_DESCRIPTION = "Headers: Authorization: Bearer {user_token}, X-User-Id"


# API for the frontend (end users)
public_router = APIRouter(prefix="/api/v1", tags=["Public API"])


@public_router.get(
    "/balance",
    summary="Credits and points of the current user",
    description=AUTH_DESCRIPTION,
    response_model=UserBalancesResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_my_balances(
    user_id: str = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return UserBalancesResponse(
        user_id=user_id,
        credits=await ledger.get_balance(user_id, CurrencyKind.CREDITS),
        points=await ledger.get_balance(user_id, CurrencyKind.POINTS),
    )


@public_router.get(
    "/transactions",
    summary="Ledger history of the current user, newest first",
    description=AUTH_DESCRIPTION,
    response_model=TransactionPaginatedList,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_my_transactions(
    currency: Optional[CurrencyKind] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.list_transactions(user_id, currency, limit=limit, offset=offset)


@public_router.post(
    "/checkin",
    summary="Daily check-in",
    description=AUTH_DESCRIPTION,
    response_model=CheckInResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def check_in(
    user_id: str = Depends(get_current_user),
    checkins: CheckInService = Depends(get_checkin_service),
):
    return await checkins.daily_check_in(user_id)


@public_router.get(
    "/checkin/status",
    summary="Today's check-in, streak and recent check-ins",
    description=AUTH_DESCRIPTION,
    response_model=CheckInStatusResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_check_in_status(
    user_id: str = Depends(get_current_user),
    checkins: CheckInService = Depends(get_checkin_service),
):
    return await checkins.get_check_in_status(user_id)


@public_router.post(
    "/exchange",
    summary="Exchange points for credits",
    description=AUTH_DESCRIPTION,
    response_model=ExchangeResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def exchange_points(
    payload: ExchangePayload,
    user_id: str = Depends(get_current_user),
    exchange: ExchangeService = Depends(get_exchange_service),
):
    return await exchange.exchange_points_for_credits(user_id, payload.credits)


@public_router.get(
    "/exchange/history",
    summary="Points exchanges of the current user",
    description=AUTH_DESCRIPTION,
    response_model=ExchangeHistoryList,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_exchange_history(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    exchange: ExchangeService = Depends(get_exchange_service),
):
    return await exchange.get_exchange_history(user_id, limit=limit)


@public_router.get(
    "/referral/code",
    summary="Referral code of the current user (created on first call)",
    description=AUTH_DESCRIPTION,
    response_model=ReferralCodeResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_my_referral_code(
    user_id: str = Depends(get_current_user),
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.get_or_create_referral_code(user_id)


@public_router.get(
    "/referral/stats",
    summary="Invites and rewards of the current user",
    description=AUTH_DESCRIPTION,
    response_model=ReferralStatsResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def get_my_referral_stats(
    user_id: str = Depends(get_current_user),
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.get_referral_stats(user_id)


@public_router.post(
    "/referral/redeem",
    summary="Use somebody's referral code",
    description=AUTH_DESCRIPTION,
    response_model=ReferralRelationResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def redeem_referral_code(
    payload: ReferralRedeemPayload,
    user_id: str = Depends(get_current_user),
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.create_referral_relation(user_id, payload.code)


@public_router.post(
    "/redeem",
    summary="Redeem a credits code",
    description=AUTH_DESCRIPTION,
    response_model=RedeemResponse,
    status_code=status.HTTP_200_OK,
    responses=USER_AUTH,
)
async def redeem_code(
    payload: RedeemPayload,
    user_id: str = Depends(get_current_user),
    redeem: RedeemService = Depends(get_redeem_service),
):
    return await redeem.redeem_code(user_id, payload.code)
