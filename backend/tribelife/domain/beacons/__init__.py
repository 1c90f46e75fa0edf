"""Beacons and the scheduled match engine."""

from .grouping import group_by_locality
from .jobs import BeaconMatchJob, MatchScheduler
from .matcher import BeaconMatchEngine
from .models import Beacon, BeaconAnalysis, MatchEdge, MatchResult, MatchRunSummary
from .service import BeaconService

__all__ = [
	"Beacon",
	"BeaconAnalysis",
	"BeaconMatchEngine",
	"BeaconMatchJob",
	"BeaconService",
	"MatchEdge",
	"MatchResult",
	"MatchRunSummary",
	"MatchScheduler",
	"group_by_locality",
]
