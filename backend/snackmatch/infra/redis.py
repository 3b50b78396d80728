"""Redis client used for rate-limit counters and the Snack event stream.

Modules import the module-level ``redis_client`` proxy once; tests swap the
client underneath it (fakeredis) without re-importing anything.
"""

from __future__ import annotations

import redis.asyncio as redis

from snackmatch.settings import settings


class RedisProxy:
	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def swap(self, client: redis.Redis) -> redis.Redis:
		"""Install ``client`` and hand back the one it replaced."""
		previous, self._client = self._client, client
		return previous

	def __getattr__(self, item):
		return getattr(self._client, item)


def _connect() -> redis.Redis:
	return redis.from_url(settings.redis_url, decode_responses=True, health_check_interval=30)


redis_client: RedisProxy = RedisProxy(_connect())


def set_redis_client(client: redis.Redis) -> redis.Redis:
	return redis_client.swap(client)


async def close_redis() -> None:
	await redis_client.client.aclose()
