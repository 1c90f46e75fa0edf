"""Locality-scoped pairwise beacon matching."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from tribelife.domain.beacons.grouping import group_by_locality
from tribelife.domain.beacons.llm import BeaconComparator
from tribelife.domain.beacons.models import Beacon, MatchRunSummary
from tribelife.domain.beacons.repo import BeaconRepository
from tribelife.domain.notifications import (
	BeaconMatchPayload,
	NotificationDispatcher,
	NotificationKind,
	NotificationRequest,
)
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

MATCH_TITLE = "✨ Beacon Match Found!"

Candidate = Tuple[str, Beacon, Beacon]


class BeaconMatchEngine:
	"""Compares every eligible pair inside each locality bucket.

	The pair list is built up front; pairs already linked inside the dedup
	window are dropped before any comparator call. Remaining pairs run on a
	bounded worker pool and a failing pair never aborts the run.
	"""

	def __init__(
		self,
		*,
		comparator: BeaconComparator,
		dispatcher: NotificationDispatcher,
		repository: BeaconRepository | None = None,
		threshold: float | None = None,
		concurrency: int | None = None,
		window: timedelta | None = None,
	) -> None:
		self._comparator = comparator
		self._dispatcher = dispatcher
		self._repo = repository or BeaconRepository()
		self._threshold = settings.match_threshold if threshold is None else threshold
		self._concurrency = max(1, concurrency or settings.match_concurrency)
		self._window = window or timedelta(hours=settings.match_window_hours)

	async def run(self, now: Optional[datetime] = None) -> MatchRunSummary:
		now = now or datetime.now(timezone.utc)
		summary = MatchRunSummary()
		beacons = await self._repo.list_qualifying(now)
		summary.beacons = len(beacons)
		if len(beacons) < 2:
			_LOG.info("beacon_match.not_enough_beacons", extra={"beacons": len(beacons)})
			return summary

		buckets = group_by_locality(beacons)
		summary.buckets = len(buckets)
		since = now - self._window
		pending: List[Candidate] = []
		for locality, bucket in buckets.items():
			for index, first in enumerate(bucket):
				for second in bucket[index + 1 :]:
					if first.owner_id == second.owner_id:
						continue
					summary.candidates += 1
					if await self._repo.recent_match_exists(first.id, second.id, since):
						summary.skipped_recent += 1
						continue
					pending.append((locality, first, second))

		semaphore = asyncio.Semaphore(self._concurrency)

		async def _worker(candidate: Candidate) -> None:
			async with semaphore:
				await self._evaluate(candidate, summary, since, now)

		await asyncio.gather(*(_worker(candidate) for candidate in pending))
		return summary

	async def _evaluate(self, candidate: Candidate, summary: MatchRunSummary, since: datetime, now: datetime) -> None:
		locality, first, second = candidate
		try:
			result = await self._comparator.compare(first.intent, first.keywords, second.intent, second.keywords)
		except Exception:
			summary.failures += 1
			obs_metrics.inc_match_comparison("error")
			_LOG.warning(
				"beacon_match.compare_failed",
				exc_info=True,
				extra={"beacon_id": first.id, "matched_beacon_id": second.id},
			)
			return
		summary.comparisons += 1
		if result.score < self._threshold:
			obs_metrics.inc_match_comparison("no_match")
			return
		obs_metrics.inc_match_comparison("match")
		try:
			inserted = await self._repo.record_match(
				first.id,
				second.id,
				score=result.score,
				reason=result.reason,
				since=since,
				at=now,
			)
		except Exception:
			summary.failures += 1
			_LOG.exception("beacon_match.record_failed", extra={"beacon_id": first.id, "matched_beacon_id": second.id})
			return
		if not inserted:
			summary.skipped_recent += 1
			return
		summary.matches += 1
		summary.matched_pairs.append((first.id, second.id))
		obs_metrics.inc_match_created()
		await self._dispatcher.notify_many(
			[
				self._request(first, second, locality, result.reason),
				self._request(second, first, locality, result.reason),
			]
		)

	@staticmethod
	def _request(own: Beacon, other: Beacon, locality: str, reason: str) -> NotificationRequest:
		return NotificationRequest(
			recipient_id=own.owner_id,
			kind=NotificationKind.BEACON_MATCH,
			title=MATCH_TITLE,
			body=reason,
			payload=BeaconMatchPayload(beacon_id=own.id, matched_beacon_id=other.id, locality=locality),
		)
