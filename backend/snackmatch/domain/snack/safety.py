"""Block and report relationships that constrain who may be paired."""

from __future__ import annotations

import logging
from typing import Optional

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import SelfBlockError, SelfReportError
from snackmatch.domain.snack.repository import SnackRepository, new_id
from snackmatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class SafetyRegistry:
	"""Owns block/report edges.

	Blocks are directed but exclude pairing in both directions. Reports only
	remove the reported user from the reporter's own candidate pool.
	"""

	def __init__(self, repository: Optional[SnackRepository] = None) -> None:
		self._repo = repository or SnackRepository()

	async def block(self, blocker_id: str, blocked_id: str) -> bool:
		if blocker_id == blocked_id:
			raise SelfBlockError()
		created = await self._repo.add_block(
			models.Block(blocker_id=blocker_id, blocked_id=blocked_id, created_at=models.now_utc())
		)
		obs_metrics.inc_snack_block("created" if created else "duplicate")
		if created:
			logger.info("snack block created", extra={"blocker_id": blocker_id, "blocked_id": blocked_id})
		return created

	async def report(
		self,
		reporter_id: str,
		reported_id: str,
		*,
		reason: str,
		session_id: Optional[str] = None,
		description: Optional[str] = None,
	) -> models.Report:
		if reporter_id == reported_id:
			raise SelfReportError()
		report = await self._repo.add_report(
			models.Report(
				id=new_id(),
				reporter_id=reporter_id,
				reported_id=reported_id,
				reason=reason,
				session_id=session_id,
				description=description,
				created_at=models.now_utc(),
			)
		)
		obs_metrics.inc_snack_report()
		logger.info(
			"snack report filed",
			extra={"reporter_id": reporter_id, "reported_id": reported_id, "reason": reason, "session_id": session_id},
		)
		return report

	async def exclusion_set(self, user_id: str) -> frozenset[str]:
		"""Users that must never appear as ``user_id``'s candidates (self included)."""
		blocked = await self._repo.blocked_user_ids(user_id)
		reported = await self._repo.reported_user_ids(user_id)
		return frozenset({user_id} | blocked | reported)


__all__ = ["SafetyRegistry"]
