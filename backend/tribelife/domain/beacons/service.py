"""Beacon submission, listing and match read side."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from tribelife.domain.beacons.llm import BeaconAnalyzer
from tribelife.domain.beacons.repo import BeaconRepository
from tribelife.domain.beacons.schemas import (
	BeaconEnvelope,
	BeaconListResponse,
	BeaconResponse,
	MatchListResponse,
	MatchResponse,
)
from tribelife.domain.common.errors import ExternalCallFailure, PolicyError
from tribelife.infra.auth import AuthenticatedUser
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)


class BeaconService:
	def __init__(self, *, analyzer: BeaconAnalyzer, repository: BeaconRepository | None = None) -> None:
		self._analyzer = analyzer
		self._repo = repository or BeaconRepository()

	async def create_beacon(self, auth_user: AuthenticatedUser, raw_text: str) -> BeaconEnvelope:
		"""Moderate and store a new beacon, snapshotting the owner's locality.

		Raises PolicyError for length, quota and moderation rejections and
		when the analyzer is unavailable.
		"""
		text = (raw_text or "").strip()
		if len(text) < settings.beacon_min_length:
			raise PolicyError("beacon_too_short", message=f"Beacon must be at least {settings.beacon_min_length} characters")
		if len(text) > settings.beacon_max_length:
			raise PolicyError("beacon_too_long", message=f"Beacon must be under {settings.beacon_max_length} characters")

		limit = settings.beacon_premium_limit if auth_user.is_premium else settings.beacon_free_limit
		if await self._repo.count_active(auth_user.id) >= limit:
			obs_metrics.inc_beacon_created("quota")
			raise PolicyError("beacon_limit_reached", status_code=403)

		try:
			analysis = await self._analyzer.analyze(text)
		except ExternalCallFailure:
			obs_metrics.inc_beacon_created("analyzer_error")
			_LOG.warning("beacon.analysis_failed", exc_info=True, extra={"user_id": auth_user.id})
			raise PolicyError("analysis_unavailable", status_code=503) from None
		if not analysis.is_appropriate:
			obs_metrics.inc_beacon_created("rejected")
			raise PolicyError(
				"beacon_rejected",
				status_code=422,
				message=analysis.flag_reason or "Content policy violation",
			)

		expires_at = datetime.now(timezone.utc) + timedelta(days=settings.beacon_ttl_days)
		beacon = await self._repo.create(
			auth_user.id,
			text,
			analysis,
			locality=auth_user.locality,
			expires_at=expires_at,
		)
		obs_metrics.inc_beacon_created("ok")
		_LOG.info("beacon.created", extra={"beacon_id": beacon.id, "user_id": auth_user.id})
		return BeaconEnvelope(beacon=BeaconResponse.from_model(beacon, analysis))

	async def list_my_beacons(self, auth_user: AuthenticatedUser) -> BeaconListResponse:
		rows = await self._repo.list_for_owner(auth_user.id)
		return BeaconListResponse(beacons=[BeaconResponse.from_model(row) for row in rows])

	async def deactivate_beacon(self, auth_user: AuthenticatedUser, beacon_id: int) -> None:
		if not await self._repo.deactivate(beacon_id, auth_user.id):
			raise PolicyError("beacon_not_found", status_code=404)

	async def list_matches(self, auth_user: AuthenticatedUser) -> MatchListResponse:
		rows = await self._repo.list_matches(auth_user.id)
		return MatchListResponse(matches=[MatchResponse.from_model(row) for row in rows])

	async def mark_match_viewed(self, auth_user: AuthenticatedUser, match_id: int) -> None:
		if not await self._repo.mark_viewed(match_id, auth_user.id):
			raise PolicyError("match_not_found", status_code=404)
