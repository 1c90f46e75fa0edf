from datetime import datetime, timedelta, timezone

import pytest

from tribelife.domain.beacons import repo as beacons_repo
from tribelife.domain.beacons.models import BeaconAnalysis
from tribelife.domain.beacons.repo import BeaconRepository
from tribelife.domain.beacons.service import BeaconService
from tribelife.domain.common.errors import ExternalCallFailure, PolicyError
from tribelife.infra.auth import AuthenticatedUser


class StubAnalyzer:
	def __init__(self, *, appropriate: bool = True, fail: bool = False) -> None:
		self.appropriate = appropriate
		self.fail = fail
		self.calls: list = []

	async def analyze(self, raw_text: str) -> BeaconAnalysis:
		self.calls.append(raw_text)
		if self.fail:
			raise ExternalCallFailure("llm")
		return BeaconAnalysis(
			is_appropriate=self.appropriate,
			flag_reason=None if self.appropriate else "Personal contact info",
			parsed_intent="Looking for a weekend babysitter",
			category="childcare",
			intent_type="seeking",
			keywords=("babysitter", "weekend"),
		)


def _user(user_id: int = 1, *, premium: bool = False, locality: str = "America/Toronto") -> AuthenticatedUser:
	return AuthenticatedUser(id=user_id, handle=f"user{user_id}", locality=locality, is_premium=premium)


@pytest.mark.asyncio
async def test_create_beacon_snapshots_locality_and_expiry():
	service = BeaconService(analyzer=StubAnalyzer())

	envelope = await service.create_beacon(_user(), "  need a babysitter on weekends  ")

	beacon = envelope.beacon
	assert beacon.raw_text == "need a babysitter on weekends"
	assert beacon.timezone == "America/Toronto"
	assert beacon.parsed_intent == "Looking for a weekend babysitter"
	assert beacon.analysis.category == "childcare"
	expected = datetime.now(timezone.utc) + timedelta(days=30)
	assert abs((beacon.expires_at - expected).total_seconds()) < 60
	stored = beacons_repo._MEMORY.beacons[beacon.id]
	assert stored.is_moderated and stored.is_active
	assert stored.keywords == ("babysitter", "weekend")


@pytest.mark.asyncio
@pytest.mark.parametrize("text, code", [("too short", "beacon_too_short"), ("x" * 281, "beacon_too_long")])
async def test_create_beacon_rejects_bad_length(text, code):
	analyzer = StubAnalyzer()
	service = BeaconService(analyzer=analyzer)
	with pytest.raises(PolicyError) as excinfo:
		await service.create_beacon(_user(), text)
	assert excinfo.value.code == code
	assert analyzer.calls == []


@pytest.mark.asyncio
async def test_free_quota_is_one_active_beacon():
	service = BeaconService(analyzer=StubAnalyzer())
	await service.create_beacon(_user(), "first beacon text")

	with pytest.raises(PolicyError) as excinfo:
		await service.create_beacon(_user(), "second beacon text")
	assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_premium_quota_is_three_and_deactivation_frees_a_slot():
	service = BeaconService(analyzer=StubAnalyzer())
	user = _user(premium=True)
	created = [await service.create_beacon(user, f"premium beacon {i}") for i in range(3)]
	with pytest.raises(PolicyError):
		await service.create_beacon(user, "premium beacon 4")

	await service.deactivate_beacon(user, created[0].beacon.id)
	await service.create_beacon(user, "premium beacon 4")

	listing = await service.list_my_beacons(user)
	assert len(listing.beacons) == 4
	assert sum(1 for b in listing.beacons if b.is_active) == 3


@pytest.mark.asyncio
async def test_flagged_beacon_is_not_stored():
	service = BeaconService(analyzer=StubAnalyzer(appropriate=False))
	with pytest.raises(PolicyError) as excinfo:
		await service.create_beacon(_user(), "call me at 555 0100 now")
	assert excinfo.value.status_code == 422
	assert excinfo.value.detail == "Personal contact info"
	assert beacons_repo._MEMORY.beacons == {}


@pytest.mark.asyncio
async def test_analyzer_outage_maps_to_unavailable():
	service = BeaconService(analyzer=StubAnalyzer(fail=True))
	with pytest.raises(PolicyError) as excinfo:
		await service.create_beacon(_user(), "need a dog walker please")
	assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_only_owner_can_deactivate():
	service = BeaconService(analyzer=StubAnalyzer())
	envelope = await service.create_beacon(_user(1), "need a dog walker please")
	with pytest.raises(PolicyError) as excinfo:
		await service.deactivate_beacon(_user(2), envelope.beacon.id)
	assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_matches_are_enriched_and_viewable_by_owner_only(add_profile):
	await add_profile(2, "bob")
	service = BeaconService(analyzer=StubAnalyzer())
	mine = (await service.create_beacon(_user(1), "need a babysitter please")).beacon
	theirs = (await service.create_beacon(_user(2), "offering babysitting help")).beacon
	since = datetime.now(timezone.utc) - timedelta(hours=24)
	await BeaconRepository().record_match(mine.id, theirs.id, score=0.9, reason="childcare fit", since=since)

	matches = (await service.list_matches(_user(1))).matches
	assert len(matches) == 1
	match = matches[0]
	assert match.matched_beacon_id == theirs.id
	assert match.my_beacon_text == "need a babysitter please"
	assert match.matched_user.handle == "bob"
	assert match.matched_user.raw_text == "offering babysitting help"

	with pytest.raises(PolicyError):
		await service.mark_match_viewed(_user(2), match.match_id)
	await service.mark_match_viewed(_user(1), match.match_id)
	assert (await service.list_matches(_user(1))).matches[0].viewed_at is not None
