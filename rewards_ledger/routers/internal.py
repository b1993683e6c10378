from fastapi import APIRouter, Depends, status, Query

from rewards_ledger.core.dependencies import (
    access_internal, get_ledger_service, get_referral_service
)
from rewards_ledger.models import CurrencyKind
from rewards_ledger.schemas.ledger import (
    BalanceResponse, BalanceCheckResponse, LedgerOperationRequest,
    LedgerOperationResponse
)
from rewards_ledger.schemas.referral import (
    ReferralRelationRequest, ReferralRelationResponse, ReferralTaskRequest,
    ReferralTaskResponse, ReferralCodeValidation
)
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_referral import ReferralService


FORBIDDEN = {
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid service token."}
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


# Internal API (other backend services)
internal_router = APIRouter(
    prefix="/api/internal",
    tags=["Internal API"],
    dependencies=[Depends(access_internal)],
)


@internal_router.get(
    "/balance/{user_id}",
    summary="Balance of one account",
    description="Internal access only. Headers: X-Service-Token",
    response_model=BalanceResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def get_user_balance(
    user_id: str,
    currency: CurrencyKind = Query(CurrencyKind.CREDITS),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.get_balance(user_id, currency)


@internal_router.get(
    "/balance/{user_id}/check",
    summary="Is the balance enough for an amount?",
    description="Internal access only. Headers: X-Service-Token",
    response_model=BalanceCheckResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def check_user_balance(
    user_id: str,
    required: int = Query(..., ge=0),
    currency: CurrencyKind = Query(CurrencyKind.CREDITS),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.check_balance(user_id, currency, required)


@internal_router.post(
    "/credit",
    summary="Add to a balance",
    description=(
        "Internal access only. Headers: X-Service-Token. "
        "Business failures come back as success=false with an error code."
    ),
    response_model=LedgerOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def credit_user(
    payload: LedgerOperationRequest,
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.credit(
        payload.user_id,
        payload.currency,
        payload.amount,
        related_id=payload.related_id,
        related_type=payload.related_type,
        description=payload.description,
        operator_id=payload.operator_id,
    )


@internal_router.post(
    "/debit",
    summary="Spend from a balance",
    description=(
        "Internal access only. Headers: X-Service-Token. "
        "Insufficient balance is success=false, error=InsufficientBalance."
    ),
    response_model=LedgerOperationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def debit_user(
    payload: LedgerOperationRequest,
    ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.debit(
        payload.user_id,
        payload.currency,
        payload.amount,
        related_id=payload.related_id,
        related_type=payload.related_type,
        description=payload.description,
        operator_id=payload.operator_id,
    )


@internal_router.get(
    "/referral/validate/{code}",
    summary="Check a referral code",
    description="Internal access only. Headers: X-Service-Token",
    response_model=ReferralCodeValidation,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def validate_referral_code(
    code: str,
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.validate_referral_code(code)


@internal_router.post(
    "/referral/relation",
    summary="Bind an invitee to the owner of a referral code",
    description="Internal access only (called at sign-up). Headers: X-Service-Token",
    response_model=ReferralRelationResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def create_referral_relation(
    payload: ReferralRelationRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.create_referral_relation(payload.invitee_id, payload.code)


@internal_router.post(
    "/referral/task",
    summary="Invitee finished the qualifying task: pay the referral rewards",
    description="Internal access only. Headers: X-Service-Token",
    response_model=ReferralTaskResponse,
    status_code=status.HTTP_200_OK,
    responses={**FORBIDDEN, **SERVER_ERROR},
)
async def complete_referral_task(
    payload: ReferralTaskRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    return await referrals.complete_referral_task(payload.invitee_id, payload.task_type)
