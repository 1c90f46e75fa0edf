"""Partition beacons into locality buckets."""

from __future__ import annotations

from typing import Dict, Iterable, List

from tribelife.domain.beacons.models import Beacon

UNKNOWN_LOCALITY = "unknown"


def locality_key(locality: str | None) -> str:
	key = (locality or "").strip()
	return key or UNKNOWN_LOCALITY


def group_by_locality(beacons: Iterable[Beacon]) -> Dict[str, List[Beacon]]:
	"""Bucket beacons by locality, preserving input order inside each bucket.

	Beacons with a missing or blank locality share the ``unknown`` bucket.
	"""
	buckets: Dict[str, List[Beacon]] = {}
	for beacon in beacons:
		buckets.setdefault(locality_key(beacon.locality), []).append(beacon)
	return buckets
