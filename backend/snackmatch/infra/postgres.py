"""asyncpg pool shared by the Snack repository and the readiness probe."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from snackmatch.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


class PoolUnavailable(RuntimeError):
	"""No pool has been created; callers may fall back to in-process storage."""


def _server_settings() -> dict[str, str]:
	# Pairing and rating transactions hold row locks; cap how long any statement may wait.
	return {
		"application_name": settings.service_name,
		"statement_timeout": str(settings.postgres_statement_timeout_ms),
	}


async def init_pool() -> Optional[asyncpg.Pool]:
	global _pool
	if _pool is not None:
		return _pool
	_pool = await asyncpg.create_pool(
		dsn=settings.postgres_url,
		min_size=settings.postgres_min_pool_size,
		max_size=settings.postgres_max_pool_size,
		ssl="require" if settings.postgres_ssl else "disable",
		server_settings=_server_settings(),
	)
	logger.info(
		"postgres pool ready",
		extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
	)
	return _pool


def set_pool(pool: Optional[asyncpg.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.Pool:
	if _pool is None:
		await init_pool()
	if _pool is None:
		raise PoolUnavailable("postgres pool not initialised")
	return _pool


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
