"""Pydantic schemas for the beacons API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Beacon, BeaconAnalysis, MatchRunSummary, MatchView


class _CamelModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True)


class BeaconCreateRequest(_CamelModel):
	raw_text: str = Field(validation_alias="rawText")


class BeaconAnalysisResponse(_CamelModel):
	parsed_intent: str = Field(serialization_alias="parsedIntent")
	category: str
	intent_type: str = Field(serialization_alias="intentType")

	@classmethod
	def from_model(cls, analysis: BeaconAnalysis) -> "BeaconAnalysisResponse":
		return cls(parsed_intent=analysis.parsed_intent, category=analysis.category, intent_type=analysis.intent_type)


class BeaconResponse(_CamelModel):
	id: int
	user_id: int = Field(serialization_alias="userId")
	raw_text: str = Field(serialization_alias="rawText")
	parsed_intent: Optional[str] = Field(serialization_alias="parsedIntent")
	keywords: List[str] = Field(default_factory=list)
	timezone: Optional[str] = None
	is_active: bool = Field(serialization_alias="isActive")
	expires_at: Optional[datetime] = Field(serialization_alias="expiresAt")
	last_matched_at: Optional[datetime] = Field(default=None, serialization_alias="lastMatchedAt")
	created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
	analysis: Optional[BeaconAnalysisResponse] = None

	@classmethod
	def from_model(cls, beacon: Beacon, analysis: BeaconAnalysis | None = None) -> "BeaconResponse":
		return cls(
			id=beacon.id,
			user_id=beacon.owner_id,
			raw_text=beacon.raw_text,
			parsed_intent=beacon.normalized_intent,
			keywords=list(beacon.keywords),
			timezone=beacon.locality,
			is_active=beacon.is_active,
			expires_at=beacon.expires_at,
			last_matched_at=beacon.last_matched_at,
			created_at=beacon.created_at,
			analysis=BeaconAnalysisResponse.from_model(analysis) if analysis else None,
		)


class BeaconEnvelope(_CamelModel):
	beacon: BeaconResponse


class BeaconListResponse(_CamelModel):
	beacons: List[BeaconResponse]


class MatchedUser(_CamelModel):
	user_id: Optional[int] = Field(serialization_alias="userId")
	handle: Optional[str] = None
	raw_text: Optional[str] = Field(serialization_alias="rawText")
	parsed_intent: Optional[str] = Field(serialization_alias="parsedIntent")


class MatchResponse(_CamelModel):
	match_id: int = Field(serialization_alias="matchId")
	beacon_id: int = Field(serialization_alias="beaconId")
	my_beacon_text: str = Field(serialization_alias="myBeaconText")
	matched_beacon_id: int = Field(serialization_alias="matchedBeaconId")
	similarity_score: float = Field(serialization_alias="similarityScore")
	match_reason: str = Field(serialization_alias="matchReason")
	viewed_at: Optional[datetime] = Field(serialization_alias="viewedAt")
	created_at: datetime = Field(serialization_alias="createdAt")
	matched_user: Optional[MatchedUser] = Field(serialization_alias="matchedUser")

	@classmethod
	def from_model(cls, view: MatchView) -> "MatchResponse":
		matched_user = None
		if view.matched_user_id is not None:
			matched_user = MatchedUser(
				user_id=view.matched_user_id,
				handle=view.matched_user_handle,
				raw_text=view.matched_text,
				parsed_intent=view.matched_intent,
			)
		return cls(
			match_id=view.match_id,
			beacon_id=view.beacon_id,
			my_beacon_text=view.my_beacon_text,
			matched_beacon_id=view.matched_beacon_id,
			similarity_score=view.score,
			match_reason=view.reason,
			viewed_at=view.viewed_at,
			created_at=view.created_at,
			matched_user=matched_user,
		)


class MatchListResponse(_CamelModel):
	matches: List[MatchResponse]


class MatchRunResponse(_CamelModel):
	ran: bool
	beacons: int = 0
	buckets: int = 0
	candidates: int = 0
	skipped_recent: int = Field(default=0, serialization_alias="skippedRecent")
	comparisons: int = 0
	matches: int = 0
	failures: int = 0

	@classmethod
	def from_summary(cls, summary: MatchRunSummary | None) -> "MatchRunResponse":
		if summary is None:
			return cls(ran=False)
		return cls(ran=True, **summary.as_log_fields())
