import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from rewards_ledger.core.config import config

logger = logging.getLogger("[LEDGER]")


# client
redis_client = redis.from_url(
    f"redis://{config.REDIS_HOST}:{config.REDIS_PORT}/{config.REDIS_DB}",
    encoding="utf-8",
    decode_responses=True,
)


def balance_key(user_id: str, currency: str) -> str:
	return f"user:{user_id}:{currency}:balance"


def balance_version_key(user_id: str, currency: str) -> str:
	return f"user:{user_id}:{currency}:ver"


async def cache_balance_version(user_id: str, currency: str) -> str | None:
	"""Version to hand back to cache_set_balance; read it before the database read."""
	key = balance_version_key(user_id, currency)
	try:
		return await redis_client.get(key)
	except RedisError as exc:
		logger.warning(f"Balance cache version read failed for {key}: {exc}")
		return None


async def cache_set_balance(user_id: str, currency: str, snapshot: dict, version: str | None):
	"""Stores the snapshot only if no invalidation happened since `version` was read."""
	key = balance_key(user_id, currency)
	ver_key = balance_version_key(user_id, currency)
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			await pipe.watch(ver_key)
			if await pipe.get(ver_key) != version:
				logger.info(f"Balance cache write skipped for {key}: stale snapshot")
				return
			pipe.multi()
			pipe.set(key, json.dumps(snapshot), ex=config.CACHE_TTL_SECONDS)
			await pipe.execute()
	except WatchError:
		logger.info(f"Balance cache write skipped for {key}: invalidated concurrently")
	except RedisError as exc:
		logger.warning(f"Balance cache write failed for {key}: {exc}")


async def cache_get_balance(user_id: str, currency: str) -> dict | None:
	key = balance_key(user_id, currency)
	try:
		val = await redis_client.get(key)
	except RedisError as exc:
		logger.warning(f"Balance cache read failed for {key}: {exc}")
		return None
	return json.loads(val) if val is not None else None


async def cache_delete_balance(user_id: str, currency: str):
	key = balance_key(user_id, currency)
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.incr(balance_version_key(user_id, currency))
			pipe.delete(key)
			await pipe.execute()
	except RedisError as exc:
		logger.warning(f"Balance cache invalidation failed for {key}: {exc}")
