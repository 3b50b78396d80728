"""Greedy matching of a new request against the waiting pool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from snackmatch.domain.snack import models, scoring
from snackmatch.domain.snack.exceptions import MatchConflict
from snackmatch.domain.snack.lifecycle import SessionLifecycle
from snackmatch.domain.snack.repository import SnackRepository
from snackmatch.domain.snack.safety import SafetyRegistry
from snackmatch.obs import metrics as obs_metrics
from snackmatch.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MatchResult:
	session: models.SnackSession
	request: models.SnackRequest
	candidate: models.SnackRequest
	score: float


def select_candidate(
	request: models.SnackRequest,
	candidates: Sequence[models.SnackRequest],
	*,
	threshold: float,
) -> Optional[tuple[models.SnackRequest, float]]:
	"""Pick the best-scoring candidate, or the newest one when nobody clears the threshold.

	Ties on score go to the newer request.
	"""
	if not candidates:
		return None
	newest_first = sorted(candidates, key=lambda item: (item.created_at, item.id), reverse=True)
	scored = [(candidate, scoring.score(request, candidate)) for candidate in newest_first]
	best, best_score = scored[0]
	for candidate, value in scored[1:]:
		if value > best_score:
			best, best_score = candidate, value
	if best_score >= threshold:
		return best, best_score
	return scored[0]


class MatchFinder:
	def __init__(
		self,
		repository: Optional[SnackRepository] = None,
		*,
		safety: Optional[SafetyRegistry] = None,
		lifecycle: Optional[SessionLifecycle] = None,
		threshold: Optional[float] = None,
		max_attempts: Optional[int] = None,
	) -> None:
		self._repo = repository or SnackRepository()
		self._safety = safety or SafetyRegistry(self._repo)
		self._lifecycle = lifecycle or SessionLifecycle(self._repo)
		self._threshold = settings.snack_match_threshold if threshold is None else threshold
		self._max_attempts = max(1, max_attempts or settings.snack_match_max_attempts)

	async def find_match(self, request: models.SnackRequest) -> Optional[MatchResult]:
		"""Try to pair ``request``; None means it stays in the waiting pool."""
		excluded = await self._safety.exclusion_set(request.user_id)
		lost: set[str] = set()
		for attempt in range(1, self._max_attempts + 1):
			candidates = [
				candidate
				for candidate in await self._repo.list_candidates(request, excluded)
				if candidate.id not in lost
			]
			choice = select_candidate(request, candidates, threshold=self._threshold)
			if choice is None:
				break
			candidate, value = choice
			try:
				session = await self._lifecycle.create(request, candidate)
			except MatchConflict as exc:
				obs_metrics.inc_snack_match("conflict")
				logger.info(
					"snack match lost race",
					extra={"request_id": request.id, "candidate_id": candidate.id, "attempt": attempt},
				)
				if request.id in exc.request_ids:
					return None
				lost.update(exc.request_ids)
				continue
			obs_metrics.inc_snack_match("matched")
			obs_metrics.observe_snack_match_score(value)
			logger.info(
				"snack match created",
				extra={"session_id": session.id, "request_id": request.id, "candidate_id": candidate.id, "score": value},
			)
			return MatchResult(session=session, request=request, candidate=candidate, score=value)
		obs_metrics.inc_snack_match("queued")
		return None


__all__ = ["MatchFinder", "MatchResult", "select_candidate"]
