from unittest.mock import AsyncMock

import pytest

from tribelife.domain.beacons.jobs import RUN_LOCK_KEY, BeaconMatchJob, MatchScheduler
from tribelife.domain.beacons.models import MatchRunSummary


@pytest.mark.asyncio
async def test_run_once_returns_summary_and_releases_lock(fake_redis):
	engine = AsyncMock()
	engine.run.return_value = MatchRunSummary(beacons=2, matches=1)
	job = BeaconMatchJob(engine)

	summary = await job.run_once()

	assert summary.matches == 1
	assert await fake_redis.get(RUN_LOCK_KEY) is None


@pytest.mark.asyncio
async def test_held_lock_skips_the_tick(fake_redis):
	await fake_redis.set(RUN_LOCK_KEY, "other-runner", ex=60)
	engine = AsyncMock()
	job = BeaconMatchJob(engine)

	assert await job.run_once() is None
	engine.run.assert_not_awaited()
	assert await fake_redis.get(RUN_LOCK_KEY) == "other-runner"


@pytest.mark.asyncio
async def test_engine_failure_is_contained_and_next_tick_runs(fake_redis):
	engine = AsyncMock()
	engine.run.side_effect = [RuntimeError("db gone"), MatchRunSummary(beacons=0)]
	job = BeaconMatchJob(engine)

	assert await job.run_once() is None
	assert await fake_redis.get(RUN_LOCK_KEY) is None
	assert isinstance(await job.run_once(), MatchRunSummary)


def test_scheduler_registers_daily_cron_job():
	scheduler = MatchScheduler()

	async def tick():
		return None

	scheduler.schedule_daily("beacon-match-daily", tick, hour=6, minute=0)
	job = scheduler.get_job("beacon-match-daily")

	assert job is not None
	assert "hour='6'" in str(job.trigger)
	assert "minute='0'" in str(job.trigger)
