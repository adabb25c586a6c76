"""
Tests for the bounded work queue
"""
import asyncio
import logging
import sys
from pathlib import Path

import pytest

# Add the app directory to Python path
sys.path.insert(0, str(Path(__file__).parent / 'app'))

from iliassync.locator import raw_locator
from iliassync.models import Resource, ResourceKind
from iliassync.scheduler import Scheduler


def resource(name: str) -> Resource:
    return Resource.of(ResourceKind.GENERIC, raw_locator(name), name)


def test_jobs_must_be_positive():
    async def worker(unit):
        pass

    with pytest.raises(ValueError):
        Scheduler(0, worker)


@pytest.mark.parametrize("jobs", [1, 4, 16])
def test_fan_out_reaches_quiescence_within_permit_bound(jobs):
    processed = []

    async def run():
        async def worker(unit):
            assert scheduler.running <= jobs
            if unit.path.name == 'root':
                for i in range(50):
                    scheduler.submit(resource(f"child{i}"), unit.path / f"child{i}")
            await asyncio.sleep(0.005)
            processed.append(unit.path)

        scheduler = Scheduler(jobs, worker)
        scheduler.submit(resource('root'), Path('root'))
        await scheduler.join()
        return scheduler

    scheduler = asyncio.run(run())
    assert len(processed) == 51
    assert 1 <= scheduler.peak_running <= jobs
    assert scheduler.running == 0
    stats = scheduler.get_stats()
    assert stats['completed'] == 51
    assert stats['submitted'] == 51
    assert stats['queued'] == 0
    assert stats['failed'] == 0


def test_parallelism_is_used():
    async def run():
        async def worker(unit):
            await asyncio.sleep(0.02)

        scheduler = Scheduler(4, worker)
        for i in range(20):
            scheduler.submit(resource(str(i)), Path(str(i)))
        await scheduler.join()
        return scheduler.peak_running

    assert asyncio.run(run()) == 4


def test_nested_submissions():
    depth_reached = []

    async def run():
        async def worker(unit):
            depth = len(unit.path.parts)
            depth_reached.append(depth)
            if depth < 5:
                for i in range(2):
                    scheduler.submit(resource(str(i)), unit.path / str(i))
            await asyncio.sleep(0)

        scheduler = Scheduler(2, worker)
        scheduler.submit(resource('root'), Path('root'))
        await scheduler.join()

    asyncio.run(run())
    # 1 + 2 + 4 + 8 + 16
    assert len(depth_reached) == 31
    assert max(depth_reached) == 5


def test_failing_unit_does_not_starve_pool(caplog):
    caplog.set_level(logging.ERROR)

    async def run():
        async def worker(unit):
            if unit.path.name.startswith('bad'):
                raise RuntimeError("unparsable page")
            await asyncio.sleep(0)

        scheduler = Scheduler(1, worker)
        for name in ('bad1', 'good1', 'bad2', 'good2', 'good3'):
            scheduler.submit(resource(name), Path(name))
        await scheduler.join()
        return scheduler

    scheduler = asyncio.run(run())
    assert scheduler.failed == 2
    assert scheduler.get_stats()['completed'] == 3
    errors = [r.message for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 2
    assert any('bad1' in message and 'unparsable page' in message for message in errors)


def test_join_without_units_returns():
    async def run():
        async def worker(unit):
            pass

        scheduler = Scheduler(3, worker)
        await scheduler.join()
        return scheduler.get_stats()

    assert asyncio.run(run())['submitted'] == 0
