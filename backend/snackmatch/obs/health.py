"""Liveness and readiness probes for the Snack API."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import asyncpg

from snackmatch.infra import postgres
from snackmatch.infra.redis import redis_client
from snackmatch.obs import metrics
from snackmatch.settings import settings

logger = logging.getLogger(__name__)

Check = Dict[str, Any]


async def _timed(name: str, probe: Callable[[], Awaitable[Any]], timeout: float) -> Check:
	start = perf_counter()
	try:
		await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:
		logger.warning("readiness probe failed", extra={"probe": name}, exc_info=True)
		return {"ok": False, "error": str(exc) or type(exc).__name__}
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


async def _redis_check() -> Check:
	state = await _timed("redis", redis_client.ping, timeout=0.2)
	metrics.mark_redis(state["ok"], latency_seconds=_seconds(state))
	return state


async def _postgres_check() -> Tuple[Check, Optional[asyncpg.Pool]]:
	try:
		pool = await postgres.get_pool()
	except Exception as exc:
		metrics.mark_postgres(False)
		return {"ok": False, "error": str(exc) or "pool_unavailable"}, None

	async def _select_one() -> None:
		async with pool.acquire() as conn:
			await conn.execute("SELECT 1")

	state = await _timed("postgres", _select_one, timeout=0.3)
	metrics.mark_postgres(state["ok"], latency_seconds=_seconds(state))
	return state, pool


async def _schema_check(pool: Optional[asyncpg.Pool]) -> Check:
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	try:
		async with pool.acquire() as conn:
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	except asyncpg.PostgresError as exc:
		return {"ok": False, "error": str(exc)}
	if version is None:
		return {"ok": False, "error": "no_migrations"}
	required = settings.health_min_migration
	return {"ok": str(version) >= required, "version": str(version), "required": required}


def _seconds(state: Check) -> Optional[float]:
	latency = state.get("latency_ms")
	return latency / 1000 if latency is not None else None


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, (postgres_state, pool) = await asyncio.gather(_redis_check(), _postgres_check())
	schema_state = await _schema_check(pool)
	checks = {"redis": redis_state, "postgres": postgres_state, "migrations": schema_state}
	ok = all(check["ok"] for check in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}
