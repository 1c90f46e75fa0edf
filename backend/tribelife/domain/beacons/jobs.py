"""Scheduled beacon match job and its APScheduler wrapper."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tribelife.domain.beacons.matcher import BeaconMatchEngine
from tribelife.domain.beacons.models import MatchRunSummary
from tribelife.infra import redis as redis_infra
from tribelife.obs import logging as obs_logging
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

JOB_NAME = "beacon_match"
RUN_LOCK_KEY = "beacon_match:run_lock"


class BeaconMatchJob:
	"""One guarded engine run per tick.

	A Redis ``SET NX`` lock keeps runs from overlapping across ticks and
	processes. Failures stop at this boundary so the next tick still fires.
	"""

	def __init__(
		self,
		engine: BeaconMatchEngine,
		*,
		lock_key: str = RUN_LOCK_KEY,
		lock_ttl_seconds: int | None = None,
	) -> None:
		self.engine = engine
		self.lock_key = lock_key
		self.lock_ttl_seconds = lock_ttl_seconds or settings.match_lock_ttl_seconds

	async def run_once(self) -> Optional[MatchRunSummary]:
		token = obs_logging.bind_context(job=JOB_NAME)
		try:
			return await self._guarded_run()
		finally:
			obs_logging.reset_context(token)

	async def _guarded_run(self) -> Optional[MatchRunSummary]:
		owner = uuid4().hex
		try:
			acquired = await redis_infra.acquire_lock(self.lock_key, owner, ttl_seconds=self.lock_ttl_seconds)
		except Exception:
			obs_metrics.record_job_run(JOB_NAME, result="lock_error")
			_LOG.exception("beacon_match.lock_failed")
			return None
		if not acquired:
			obs_metrics.record_job_run(JOB_NAME, result="skipped")
			_LOG.info("beacon_match.skipped_locked")
			return None

		started = time.perf_counter()
		_LOG.info("beacon_match.started")
		try:
			summary = await self.engine.run()
		except Exception:
			obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
			_LOG.exception("beacon_match.failed")
			return None
		finally:
			try:
				await redis_infra.release_lock(self.lock_key, owner)
			except Exception:
				_LOG.warning("beacon_match.unlock_failed", exc_info=True)
		elapsed = time.perf_counter() - started
		obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=elapsed)
		_LOG.info(
			"beacon_match.finished",
			extra={**summary.as_log_fields(), "duration_ms": round(elapsed * 1000, 3)},
		)
		return summary


class MatchScheduler:
	"""Minimal wrapper around AsyncIOScheduler for the daily match tick."""

	def __init__(self) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._started = False

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def schedule_daily(self, job_id: str, func: Callable[[], object], *, hour: int, minute: int = 0) -> None:
		trigger = CronTrigger(hour=hour, minute=minute, timezone="UTC")
		self._scheduler.add_job(
			func,
			trigger=trigger,
			id=job_id,
			replace_existing=True,
			max_instances=1,
			coalesce=True,
		)

	def get_job(self, job_id: str):
		return self._scheduler.get_job(job_id)


__all__ = ["BeaconMatchJob", "JOB_NAME", "MatchScheduler", "RUN_LOCK_KEY"]
