"""Guards and rate limits for Snack operations."""

from __future__ import annotations

from typing import Any

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import NotParticipant, SnackRateLimited, SnackValidationError
from snackmatch.infra import rate_limit
from snackmatch.obs import metrics as obs_metrics
from snackmatch.settings import settings


async def _enforce(kind: str, user_id: str, *, limit: int, window_seconds: int) -> None:
	if limit <= 0:
		raise SnackRateLimited(kind, retry_after=window_seconds)
	state = await rate_limit.hit(f"snack:{kind}", user_id, limit=limit, window_seconds=window_seconds)
	if not state.allowed:
		obs_metrics.inc_rate_limited(f"snack:{kind}")
		raise SnackRateLimited(kind, retry_after=state.retry_after)


async def enforce_request_limit(user_id: str) -> None:
	await _enforce("request", user_id, limit=settings.snack_request_limit_per_hour, window_seconds=3600)


async def enforce_message_limit(user_id: str) -> None:
	await _enforce("message", user_id, limit=settings.snack_message_limit_per_minute, window_seconds=60)


async def enforce_typing_limit(user_id: str) -> None:
	await _enforce("typing", user_id, limit=settings.snack_typing_limit_per_minute, window_seconds=60)


def clean_message_content(content: Any) -> str:
	if not isinstance(content, str):
		raise SnackValidationError("invalid_content")
	cleaned = content.strip()
	if not cleaned:
		raise SnackValidationError("invalid_content")
	if len(cleaned) > models.MAX_MESSAGE_LENGTH:
		raise SnackValidationError("content_too_long")
	return cleaned


def ensure_participant(session: models.SnackSession, user_id: str) -> None:
	if not session.includes(user_id):
		raise NotParticipant()
