import logging
from datetime import timedelta

import pytest
from sqlalchemy import select

from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import ErrorCode
from rewards_ledger.models import (
	AdminLog, AdminOperationType, LedgerTransaction, RedeemCode,
	RedeemCodeStatus, RedeemHistory
)
from rewards_ledger.schemas.redeem import RedeemCodeCreate
from rewards_ledger.utils.service_redeem import RedeemService


@pytest.mark.asyncio
async def test_create_and_redeem_code(session, fetch):
	service = RedeemService(session)
	created = await service.create_redeem_code(
		RedeemCodeCreate(code="welcome", credits=50, max_uses=2), operator_id="admin_1"
	)
	assert created.code == "WELCOME"
	assert created.status == "active"

	result = await service.redeem_code("user_1", " welcome ")

	assert result.success
	assert (result.credits, result.balance) == (50, 50)
	code = (await fetch(select(RedeemCode)))[0]
	assert code.used_count == 1
	assert code.status == RedeemCodeStatus.ACTIVE

	history = await fetch(select(RedeemHistory))
	assert [(h.user_id, h.credits, h.status) for h in history] == [("user_1", 50, "success")]
	tx = (await fetch(select(LedgerTransaction)))[0]
	assert (tx.related_type, tx.related_id) == ("redeem_code", code.id)

	logs = await fetch(select(AdminLog))
	assert [log.operation_type for log in logs] == [AdminOperationType.CREATE_REDEEM_CODE]
	assert logs[0].operator_id == "admin_1"


@pytest.mark.asyncio
async def test_generated_code(session):
	created = await RedeemService(session).create_redeem_code(RedeemCodeCreate(credits=5))

	assert len(created.code) == 8
	assert created.max_uses == 1


@pytest.mark.asyncio
async def test_same_user_can_not_redeem_twice(session):
	service = RedeemService(session)
	await service.create_redeem_code(RedeemCodeCreate(code="TWICE", credits=10, max_uses=5))
	await service.redeem_code("user_1", "TWICE")

	result = await service.redeem_code("user_1", "TWICE")

	assert not result.success
	assert result.error == ErrorCode.ALREADY_REDEEMED.value


@pytest.mark.asyncio
async def test_used_up_code(session, fetch):
	service = RedeemService(session)
	await service.create_redeem_code(RedeemCodeCreate(code="ONCE", credits=10))
	await service.redeem_code("user_1", "ONCE")

	result = await service.redeem_code("user_2", "ONCE")

	assert not result.success
	assert result.error == ErrorCode.REDEEM_CODE_UNAVAILABLE.value
	code = (await fetch(select(RedeemCode)))[0]
	assert code.status == RedeemCodeStatus.USED_UP
	assert code.used_count == 1


@pytest.mark.asyncio
async def test_expired_code_is_marked_expired(session, fetch):
	service = RedeemService(session)
	await service.create_redeem_code(
		RedeemCodeCreate(code="OLD", credits=10, expires_at=utc_now() - timedelta(minutes=1))
	)

	result = await service.redeem_code("user_1", "OLD")

	assert result.error == ErrorCode.REDEEM_CODE_UNAVAILABLE.value
	assert "expired" in result.message
	code = (await fetch(select(RedeemCode)))[0]
	assert code.status == RedeemCodeStatus.EXPIRED
	assert await fetch(select(LedgerTransaction)) == []


@pytest.mark.asyncio
async def test_unknown_code(session):
	result = await RedeemService(session).redeem_code("user_1", "MISSING")

	assert not result.success
	assert result.error == ErrorCode.REDEEM_CODE_NOT_FOUND.value


@pytest.mark.asyncio
async def test_redemption_is_logged_to_redeem_log(session, caplog):
	service = RedeemService(session)
	await service.create_redeem_code(RedeemCodeCreate(code="LOGGED", credits=3))

	with caplog.at_level(logging.INFO, logger="[REDEEM]"):
		await service.redeem_code("user_1", "LOGGED")

	assert any(
		r.name == "[REDEEM]" and "redeemed code LOGGED" in r.getMessage() for r in caplog.records
	)
	handlers = logging.getLogger("[REDEEM]").handlers
	assert any(getattr(h, "baseFilename", "").endswith("redeem.log") for h in handlers)
