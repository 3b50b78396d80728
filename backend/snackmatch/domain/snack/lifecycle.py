"""Session lifecycle: creation, extension, ending, rating and expiry."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import SnackValidationError
from snackmatch.domain.snack.repository import SnackRepository, new_id
from snackmatch.obs import metrics as obs_metrics
from snackmatch.settings import settings

logger = logging.getLogger(__name__)


class SessionLifecycle:
	"""State machine for sessions.

	``active -> extended -> ... -> ended`` or ``active -> ended``. Extending and
	ending return None instead of raising when the session is already over,
	so callers can treat "nothing to do" as a normal outcome.
	"""

	def __init__(self, repository: Optional[SnackRepository] = None, *, extend_minutes: Optional[int] = None) -> None:
		self._repo = repository or SnackRepository()
		self._extend_minutes = extend_minutes or settings.snack_extend_minutes

	async def create(
		self,
		request: models.SnackRequest,
		candidate: models.SnackRequest,
		*,
		now: Optional[datetime] = None,
	) -> models.SnackSession:
		"""Persist a session for the pair and mark both requests matched.

		Raises MatchConflict when either request was claimed first.
		"""
		started = now or models.now_utc()
		session = models.SnackSession(
			id=new_id(),
			user1_id=request.user_id,
			user2_id=candidate.user_id,
			request1_id=request.id,
			request2_id=candidate.id,
			activity_type=request.activity_type,
			topic=request.topic or candidate.topic,
			duration=request.duration,
			started_at=started,
			expires_at=started + timedelta(minutes=request.duration),
			status="active",
		)
		return await self._repo.claim_pair(session, matched_at=started)

	async def extend(self, session_id: str, *, now: Optional[datetime] = None) -> Optional[models.SnackSession]:
		session = await self._repo.extend_session(
			session_id,
			minutes=self._extend_minutes,
			now=now or models.now_utc(),
		)
		if session is not None:
			obs_metrics.inc_snack_session_extended()
		return session

	async def end(
		self,
		session_id: str,
		reason: models.EndReason = "completed",
		*,
		now: Optional[datetime] = None,
	) -> Optional[models.SnackSession]:
		if reason not in models.END_REASONS:
			raise SnackValidationError("invalid_end_reason")
		session = await self._repo.end_session(session_id, reason=reason, now=now or models.now_utc())
		if session is not None:
			obs_metrics.inc_snack_session_ended(reason)
			logger.info("snack session ended", extra={"session_id": session_id, "reason": reason})
		return session

	async def submit_rating(self, session_id: str, rater_id: str, rating: int) -> models.SnackSession:
		if not models.MIN_RATING <= rating <= models.MAX_RATING:
			raise SnackValidationError("invalid_rating")
		session, reputations = await self._repo.record_rating(session_id, rater_id=rater_id, rating=rating)
		obs_metrics.inc_snack_rating()
		if reputations:
			obs_metrics.inc_snack_reputation_update(len(reputations))
			logger.info(
				"snack reputations updated",
				extra={"session_id": session_id, "users": [rep.user_id for rep in reputations]},
			)
		return session

	async def expire_due(self, *, now: Optional[datetime] = None) -> List[models.SnackSession]:
		"""End every session whose expiry has passed; returns the ones this call ended."""
		moment = now or models.now_utc()
		ended: List[models.SnackSession] = []
		for session in await self._repo.list_due_sessions(now=moment):
			result = await self.end(session.id, "expired", now=moment)
			if result is not None:
				ended.append(result)
		obs_metrics.inc_snack_expired(len(ended))
		return ended


__all__ = ["SessionLifecycle"]
