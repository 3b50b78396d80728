"""Periodic sweep that ends sessions whose time ran out."""

from __future__ import annotations

import logging
import time
from typing import Optional

from snackmatch.domain.snack.service import SnackService
from snackmatch.infra.scheduler import JobScheduler
from snackmatch.obs import metrics as obs_metrics
from snackmatch.settings import settings

logger = logging.getLogger(__name__)

JOB_ID = "snack-expiry-sweep"
JOB_NAME = "snack_expiry_sweep"


class ExpirySweeper:
	def __init__(self, service: Optional[SnackService] = None) -> None:
		self._service = service or SnackService()

	async def run_once(self) -> int:
		start = time.perf_counter()
		try:
			ended = await self._service.expire_sessions()
		except Exception:
			obs_metrics.record_job_run(JOB_NAME, result="error")
			logger.exception("snack expiry sweep failed")
			raise
		obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=time.perf_counter() - start)
		if ended:
			logger.info("snack expiry sweep ended sessions", extra={"count": ended})
		return ended


def install(scheduler: JobScheduler, sweeper: Optional[ExpirySweeper] = None) -> Optional[ExpirySweeper]:
	"""Register the sweep on ``scheduler``; returns None when disabled by settings."""
	if not settings.snack_expiry_sweep_enabled:
		return None
	sweeper = sweeper or ExpirySweeper()
	scheduler.schedule_every(JOB_ID, sweeper.run_once, seconds=settings.snack_expiry_sweep_seconds)
	return sweeper


__all__ = ["ExpirySweeper", "JOB_ID", "install"]
