from tribelife.domain.beacons.grouping import UNKNOWN_LOCALITY, group_by_locality
from tribelife.domain.beacons.models import Beacon


def _beacon(beacon_id: int, locality):
	return Beacon(
		id=beacon_id,
		owner_id=beacon_id,
		raw_text=f"beacon {beacon_id}",
		normalized_intent=None,
		keywords=(),
		locality=locality,
		is_moderated=True,
	)


def test_groups_by_locality_preserving_order():
	beacons = [_beacon(1, "UTC"), _beacon(2, "Europe/Berlin"), _beacon(3, "UTC")]
	buckets = group_by_locality(beacons)
	assert [b.id for b in buckets["UTC"]] == [1, 3]
	assert [b.id for b in buckets["Europe/Berlin"]] == [2]


def test_missing_or_blank_locality_goes_to_unknown():
	buckets = group_by_locality([_beacon(1, None), _beacon(2, "  "), _beacon(3, "")])
	assert list(buckets) == [UNKNOWN_LOCALITY]
	assert [b.id for b in buckets[UNKNOWN_LOCALITY]] == [1, 2, 3]


def test_empty_input():
	assert group_by_locality([]) == {}
