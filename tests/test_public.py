import pytest

from rewards_ledger.core.config import config


def user_headers(user_id: str = "user_1") -> dict:
	return {
		"Authorization": f"Bearer {config.USER_TOKEN_BEARER}",
		"X-User-Id": user_id,
	}


ADMIN_HEADERS = {"X-Admin-Token": config.ADMIN_TOKEN, "X-Operator-Id": "admin_1"}


@pytest.mark.asyncio
async def test_user_auth(async_client):
	resp = await async_client.get("/api/v1/balance")
	assert resp.status_code in (401, 403)

	resp = await async_client.get(
		"/api/v1/balance", headers={"Authorization": "Bearer wrong", "X-User-Id": "user_1"}
	)
	assert resp.status_code == 403

	resp = await async_client.get(
		"/api/v1/balance", headers={"Authorization": f"Bearer {config.USER_TOKEN_BEARER}"}
	)
	assert resp.status_code == 401


@pytest.mark.asyncio
async def test_balances_of_new_user(async_client):
	resp = await async_client.get("/api/v1/balance", headers=user_headers())

	assert resp.status_code == 200
	data = resp.json()
	assert data["user_id"] == "user_1"
	assert data["credits"]["balance"] == 0
	assert data["points"]["balance"] == 0


@pytest.mark.asyncio
async def test_check_in_and_exchange(async_client):
	resp = await async_client.post("/api/v1/checkin", headers=user_headers())
	data = resp.json()
	assert data["success"] is True
	assert (data["points"], data["consecutive_days"], data["balance"]) == (10, 1, 10)

	resp = await async_client.post("/api/v1/checkin", headers=user_headers())
	assert resp.json()["error"] == "AlreadyCheckedIn"

	resp = await async_client.get("/api/v1/checkin/status", headers=user_headers())
	assert resp.json()["has_checked_in_today"] is True
	assert resp.json()["consecutive_days"] == 1

	# 10 points do not buy a credit at rate 100
	resp = await async_client.post("/api/v1/exchange", json={"credits": 1}, headers=user_headers())
	assert resp.json()["error"] == "InsufficientPoints"

	resp = await async_client.post(
		"/api/admin/balance/adjust",
		json={"user_id": "user_1", "currency": "points", "amount": 190, "description": "event prize"},
		headers=ADMIN_HEADERS,
	)
	assert resp.json()["balance"] == 200

	resp = await async_client.post("/api/v1/exchange", json={"credits": 2}, headers=user_headers())
	data = resp.json()
	assert data["success"] is True
	assert (data["point_balance"], data["credit_balance"]) == (0, 2)

	resp = await async_client.get("/api/v1/exchange/history", headers=user_headers())
	assert [h["credits_received"] for h in resp.json()["history"]] == [2]


@pytest.mark.asyncio
async def test_transactions(async_client):
	await async_client.post("/api/v1/checkin", headers=user_headers())

	resp = await async_client.get(
		"/api/v1/transactions", params={"currency": "points"}, headers=user_headers()
	)

	assert resp.status_code == 200
	data = resp.json()
	assert data["total"] == 1
	tx = data["transactions"][0]
	assert tx["type"] == "gift"
	assert tx["related_type"] == "daily_checkin"
	assert tx["amount"] == 10
	assert tx["balance_after"] == 10


@pytest.mark.asyncio
async def test_referral_code_redeem_and_stats(async_client):
	code = (await async_client.get("/api/v1/referral/code", headers=user_headers("user_a"))).json()["code"]

	resp = await async_client.post(
		"/api/v1/referral/redeem", json={"code": code}, headers=user_headers("user_b")
	)
	assert resp.json()["success"] is True

	resp = await async_client.post(
		"/api/v1/referral/redeem", json={"code": code}, headers=user_headers("user_a")
	)
	assert resp.json()["error"] == "DuplicateReferral"

	resp = await async_client.get("/api/v1/referral/stats", headers=user_headers("user_a"))
	data = resp.json()
	assert data["referral_code"] == code
	assert data["total_invites"] == 1
	assert data["invitees"][0]["invitee_id"] == "user_b"
	assert data["invitees"][0]["status"] == "pending"


@pytest.mark.asyncio
async def test_redeem_code(async_client):
	resp = await async_client.post(
		"/api/admin/redeem-codes", json={"code": "LAUNCH", "credits": 25}, headers=ADMIN_HEADERS
	)
	assert resp.status_code == 201

	resp = await async_client.post("/api/v1/redeem", json={"code": "launch"}, headers=user_headers())
	data = resp.json()
	assert data["success"] is True
	assert (data["credits"], data["balance"]) == (25, 25)

	resp = await async_client.post("/api/v1/redeem", json={"code": "LAUNCH"}, headers=user_headers("user_2"))
	assert resp.json()["error"] == "RedeemCodeUnavailable"
