"""Beacon, match-edge and run-summary models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


@dataclass(slots=True)
class Beacon:
	id: int
	owner_id: int
	raw_text: str
	normalized_intent: Optional[str]
	keywords: Tuple[str, ...]
	locality: Optional[str]
	is_active: bool = True
	is_moderated: bool = False
	expires_at: Optional[datetime] = None
	last_matched_at: Optional[datetime] = None
	created_at: Optional[datetime] = None

	@property
	def intent(self) -> str:
		"""Text handed to the comparator."""
		return self.normalized_intent or self.raw_text

	def qualifies(self, now: datetime) -> bool:
		if not (self.is_active and self.is_moderated):
			return False
		return self.expires_at is None or self.expires_at > now


@dataclass(slots=True)
class MatchEdge:
	"""Directed match from one beacon to another."""

	id: int
	beacon_id: int
	matched_beacon_id: int
	score: float
	reason: str
	created_at: datetime
	viewed_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class MatchResult:
	score: float
	reason: str
	is_match: bool


@dataclass(slots=True, frozen=True)
class BeaconAnalysis:
	is_appropriate: bool
	flag_reason: Optional[str]
	parsed_intent: str
	category: str
	intent_type: str
	keywords: Tuple[str, ...] = ()


@dataclass(slots=True)
class MatchView:
	"""A match edge as seen by the owner of its source beacon."""

	match_id: int
	beacon_id: int
	my_beacon_text: str
	matched_beacon_id: int
	score: float
	reason: str
	viewed_at: Optional[datetime]
	created_at: datetime
	matched_text: Optional[str] = None
	matched_intent: Optional[str] = None
	matched_user_id: Optional[int] = None
	matched_user_handle: Optional[str] = None


@dataclass(slots=True)
class MatchRunSummary:
	beacons: int = 0
	buckets: int = 0
	candidates: int = 0
	skipped_recent: int = 0
	comparisons: int = 0
	matches: int = 0
	failures: int = 0
	matched_pairs: List[Tuple[int, int]] = field(default_factory=list)

	def as_log_fields(self) -> dict:
		return {
			"beacons": self.beacons,
			"buckets": self.buckets,
			"candidates": self.candidates,
			"skipped_recent": self.skipped_recent,
			"comparisons": self.comparisons,
			"matches": self.matches,
			"failures": self.failures,
		}
