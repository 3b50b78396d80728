"""Redis Stream outbox writers for Snack events."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from redis.exceptions import RedisError

from snackmatch.infra.redis import redis_client

logger = logging.getLogger(__name__)

SNACK_EVENT_STREAM = "x:snack.events"


def _stringify_fields(fields: Mapping[str, Any]) -> dict[str, str]:
	return {key: str(value) for key, value in fields.items() if value is not None}


async def append_snack_event(
	event: str,
	*,
	user_id: Optional[str] = None,
	request_id: Optional[str] = None,
	session_id: Optional[str] = None,
	meta: Mapping[str, Any] | None = None,
) -> None:
	fields: dict[str, Any] = {
		"event": event,
		"user_id": user_id,
		"request_id": request_id,
		"session_id": session_id,
	}
	if meta:
		for key, value in meta.items():
			fields[f"meta_{key}"] = value
	try:
		await redis_client.xadd(SNACK_EVENT_STREAM, _stringify_fields(fields), maxlen=100_000, approximate=True)
	except RedisError:
		logger.warning("snack outbox append failed", extra={"event": event}, exc_info=True)
