from typing import Optional

from fastapi import Header, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.database import async_session
from rewards_ledger.utils.campaign import DatabaseCampaignProvider
from rewards_ledger.utils.service_checkin import CheckInService
from rewards_ledger.utils.service_exchange import ExchangeService
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_redeem import RedeemService
from rewards_ledger.utils.service_referral import ReferralService


# Dependency: one session per request
async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session


# Dependency: admin token
def access_admin(x_admin_token: str = Header(...)):
    if x_admin_token != config.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid admin token")


# Dependency: admin id for the audit log
def get_operator_id(x_operator_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_operator_id


# Dependency: internal service token
def access_internal(x_service_token: str = Header(...)):
    if x_service_token != config.SERVICE_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid service token")


security = HTTPBearer()


# Dependency: user token; the user id comes from the auth gateway
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    x_user_id: Optional[str] = Header(None),
) -> str:
    if credentials.credentials != config.USER_TOKEN_BEARER:
        raise HTTPException(status_code=403, detail="Invalid user token")
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


# Dependencies: services bound to the request session
def get_ledger_service(session: AsyncSession = Depends(get_session)) -> LedgerService:
    return LedgerService(session)


def get_referral_service(session: AsyncSession = Depends(get_session)) -> ReferralService:
    return ReferralService(session, campaign_provider=DatabaseCampaignProvider())


def get_exchange_service(session: AsyncSession = Depends(get_session)) -> ExchangeService:
    return ExchangeService(session)


def get_checkin_service(session: AsyncSession = Depends(get_session)) -> CheckInService:
    return CheckInService(session)


def get_redeem_service(session: AsyncSession = Depends(get_session)) -> RedeemService:
    return RedeemService(session)
