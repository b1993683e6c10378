import asyncio
from datetime import datetime, timedelta, timezone, date

import pytest
from sqlalchemy import select

from rewards_ledger.core.config import config
from rewards_ledger.core.exceptions import ErrorCode
from rewards_ledger.models import (
	AdminLog, AdminOperationType, CheckIn, CurrencyKind, LedgerTransaction,
	TransactionType
)
from rewards_ledger.schemas.points import CheckInRuleCreate, CheckInRuleUpdate
from rewards_ledger.utils.service_checkin import CheckInService, points_for_streak
from rewards_ledger.utils.service_ledger import LedgerService


class Clock:
	def __init__(self, start: datetime):
		self.now = start

	def __call__(self) -> datetime:
		return self.now

	def next_day(self, days: int = 1):
		self.now += timedelta(days=days)


@pytest.fixture
def clock():
	return Clock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.mark.parametrize("streak, points", [
	(1, 10), (2, 10), (3, 20), (6, 20), (7, 30), (13, 30), (14, 50), (29, 50), (30, 100), (45, 100),
])
def test_streak_tiers(streak, points):
	assert points_for_streak(streak) == points


@pytest.mark.asyncio
async def test_seven_day_streak(session, clock, fetch):
	service = CheckInService(session, clock=clock)

	results = []
	for _ in range(7):
		results.append(await service.daily_check_in("user_1"))
		clock.next_day()

	assert all(r.success for r in results)
	assert [r.consecutive_days for r in results] == [1, 2, 3, 4, 5, 6, 7]
	assert [r.points for r in results] == [10, 10, 20, 20, 20, 20, 30]
	assert results[-1].balance == 130

	balance = await LedgerService(session).get_balance("user_1", CurrencyKind.POINTS)
	assert balance.balance == 130

	txs = await fetch(select(LedgerTransaction).order_by(LedgerTransaction.id))
	assert {(tx.type, tx.related_type) for tx in txs} == {(TransactionType.GIFT, "daily_checkin")}


@pytest.mark.asyncio
async def test_second_check_in_same_day(session, clock, fetch):
	service = CheckInService(session, clock=clock)
	await service.daily_check_in("user_1")

	clock.now += timedelta(hours=10)
	result = await service.daily_check_in("user_1")

	assert not result.success
	assert result.error == ErrorCode.ALREADY_CHECKED_IN.value
	assert len(await fetch(select(CheckIn))) == 1
	assert len(await fetch(select(LedgerTransaction))) == 1


@pytest.mark.asyncio
async def test_gap_resets_streak(session, clock):
	service = CheckInService(session, clock=clock)
	await service.daily_check_in("user_1")
	clock.next_day()
	assert (await service.daily_check_in("user_1")).consecutive_days == 2

	clock.next_day(2)
	result = await service.daily_check_in("user_1")

	assert result.consecutive_days == 1
	assert result.points == 10


@pytest.mark.asyncio
async def test_check_in_day_follows_configured_timezone(session, monkeypatch):
	monkeypatch.setattr(config, "CHECKIN_TIMEZONE", "Asia/Shanghai")
	# 20:00 UTC is already the next day in UTC+8
	service = CheckInService(session, clock=lambda: datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc))

	assert service.today() == date(2026, 3, 2)
	await service.daily_check_in("user_1")

	status = await service.get_check_in_status("user_1")
	assert status.today_check_in.check_in_date == date(2026, 3, 2)


@pytest.mark.asyncio
async def test_check_in_status(session, clock):
	service = CheckInService(session, clock=clock)

	status = await service.get_check_in_status("user_1")
	assert not status.has_checked_in_today
	assert status.consecutive_days == 0
	assert status.recent_check_ins == []

	for _ in range(3):
		await service.daily_check_in("user_1")
		clock.next_day()

	# next morning, not checked in yet: streak still alive
	status = await service.get_check_in_status("user_1")
	assert not status.has_checked_in_today
	assert status.consecutive_days == 3
	assert status.month_check_in_days == 3
	assert [c.check_in_date.day for c in status.recent_check_ins] == [3, 2, 1]

	await service.daily_check_in("user_1")
	status = await service.get_check_in_status("user_1")
	assert status.has_checked_in_today
	assert status.today_check_in.points == 20
	assert status.consecutive_days == 4


@pytest.mark.asyncio
async def test_rules_do_not_change_streak_payout(session, clock, fetch):
	service = CheckInService(session, clock=clock)
	rule = await service.create_rule(
		CheckInRuleCreate(name="Five days", consecutive_days=5, points=25),
		operator_id="admin_1",
	)
	assert rule.is_active

	paid = []
	for _ in range(7):
		result = await service.daily_check_in("user_1")
		paid.append((result.consecutive_days, result.points))
		clock.next_day()

	assert paid == [(1, 10), (2, 10), (3, 20), (4, 20), (5, 20), (6, 20), (7, 30)]

	status = await service.get_check_in_status("user_1")
	assert [(r.name, r.points) for r in status.rules] == [("Five days", 25)]

	logs = await fetch(select(AdminLog))
	assert [log.operation_type for log in logs] == [AdminOperationType.CREATE_CHECKIN_RULE]
	assert logs[0].entity_id == str(rule.id)


@pytest.mark.asyncio
async def test_update_and_deactivate_rule(session, fetch):
	service = CheckInService(session)
	rule = await service.create_rule(CheckInRuleCreate(name="Week", consecutive_days=7, points=30))

	updated = await service.update_rule(
		rule.id, CheckInRuleUpdate(points=35, description="Week streak"), operator_id="admin_2"
	)
	assert (updated.name, updated.points, updated.description) == ("Week", 35, "Week streak")

	deactivated = await service.deactivate_rule(rule.id, operator_id="admin_2")
	assert not deactivated.is_active

	assert (await service.list_rules(active_only=True)).rules == []
	assert [r.id for r in (await service.list_rules()).rules] == [rule.id]
	assert (await service.get_check_in_status("user_1")).rules == []

	assert await service.get_rule(rule.id + 1) is None
	assert await service.update_rule(rule.id + 1, CheckInRuleUpdate(points=1)) is None

	logs = await fetch(select(AdminLog).where(AdminLog.operator_id == "admin_2"))
	by_type = {log.operation_type: log for log in logs}
	assert set(by_type) == {
		AdminOperationType.UPDATE_CHECKIN_RULE, AdminOperationType.DEACTIVATE_CHECKIN_RULE
	}
	assert by_type[AdminOperationType.UPDATE_CHECKIN_RULE].changes["old"]["points"] == 30
	assert by_type[AdminOperationType.DEACTIVATE_CHECKIN_RULE].changes["new"] == {"is_active": False}


@pytest.mark.asyncio
async def test_concurrent_check_ins_pay_once(clock, file_session_factory):

	async def check_in():
		async with file_session_factory() as s:
			return await CheckInService(s, clock=clock).daily_check_in("user_1")

	results = await asyncio.gather(*(check_in() for _ in range(5)))

	assert sum(r.success for r in results) == 1
	assert sorted(r.error for r in results if not r.success) == [
		ErrorCode.ALREADY_CHECKED_IN.value
	] * 4

	async with file_session_factory() as s:
		rows = (await s.execute(select(CheckIn))).scalars().all()
		txs = (await s.execute(select(LedgerTransaction))).scalars().all()
	assert len(rows) == 1
	assert [(tx.amount, tx.balance_after) for tx in txs] == [(10, 10)]
