"""Fixed-window counters in Redis for per-user budgets."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from snackmatch.infra.redis import redis_client


@dataclass(frozen=True, slots=True)
class WindowState:
	count: int
	limit: int
	retry_after: int

	@property
	def allowed(self) -> bool:
		return self.count <= self.limit


async def hit(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> WindowState:
	"""Count one use of ``kind`` by ``actor_id`` in the current window."""
	now = time.time() if now is None else now
	window = max(1, int(window_seconds))
	slot = int(now // window)
	key = f"rl:{kind}:{actor_id}:{window}:{slot}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	retry_after = max(1, math.ceil((slot + 1) * window - now))
	return WindowState(count=int(count), limit=limit, retry_after=retry_after)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	if limit <= 0:
		return False
	state = await hit(kind, actor_id, limit=limit, window_seconds=window_seconds, now=now)
	return state.allowed
