"""Tests for the background job scheduler."""

import asyncio

import pytest

from fencehook.jobs import Job, JobScheduler


class CountingJob:
    """Job that counts its runs and can be told to fail."""

    def __init__(self, name: str = "counting", interval: float = 0.01, fail: bool = False):
        self.name = name
        self.interval = interval
        self.fail = fail
        self.runs = 0

    async def execute(self) -> int:
        self.runs += 1
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return self.runs


async def wait_for_runs(job: CountingJob, count: int, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while job.runs < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


class TestJobScheduler:
    """Tests for JobScheduler."""

    def test_job_protocol(self):
        assert isinstance(CountingJob(), Job)

    def test_register_duplicate(self):
        scheduler = JobScheduler()
        scheduler.register(CountingJob("a"))

        with pytest.raises(ValueError):
            scheduler.register(CountingJob("a"))

    def test_register_non_positive_interval(self):
        with pytest.raises(ValueError):
            JobScheduler().register(CountingJob(interval=0))

    @pytest.mark.asyncio
    async def test_runs_repeatedly(self):
        job = CountingJob()
        scheduler = JobScheduler()
        scheduler.register(job)

        async with scheduler:
            assert scheduler.is_running
            await wait_for_runs(job, 3)

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self):
        """A run that raises is logged and the next run still happens."""
        failing = CountingJob("failing", fail=True)
        healthy = CountingJob("healthy")
        scheduler = JobScheduler()
        scheduler.register(failing)
        scheduler.register(healthy)

        async with scheduler:
            await wait_for_runs(failing, 3)
            await wait_for_runs(healthy, 3)

    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self):
        """stop() does not wait out a long interval."""
        job = CountingJob(interval=3600)
        scheduler = JobScheduler()
        scheduler.register(job)

        await scheduler.start()
        await wait_for_runs(job, 1)
        await asyncio.wait_for(scheduler.stop(), timeout=1.0)

        assert job.runs == 1

    @pytest.mark.asyncio
    async def test_run_on_start_disabled(self):
        job = CountingJob(interval=3600)
        scheduler = JobScheduler(run_on_start=False)
        scheduler.register(job)

        async with scheduler:
            await asyncio.sleep(0.02)

        assert job.runs == 0

    @pytest.mark.asyncio
    async def test_register_while_running(self):
        scheduler = JobScheduler()
        async with scheduler:
            job = CountingJob()
            scheduler.register(job)
            await wait_for_runs(job, 1)

        assert scheduler.jobs == ["counting"]

    @pytest.mark.asyncio
    async def test_run_now(self):
        job = CountingJob()
        scheduler = JobScheduler()
        scheduler.register(job)

        assert await scheduler.run_now("counting") == 1
        with pytest.raises(KeyError):
            await scheduler.run_now("missing")

    @pytest.mark.asyncio
    async def test_stop_cancels_stuck_job(self):
        class StuckJob:
            name = "stuck"
            interval = 1.0

            async def execute(self) -> None:
                await asyncio.sleep(3600)

        scheduler = JobScheduler(shutdown_timeout=0.05)
        scheduler.register(StuckJob())
        await scheduler.start()
        await asyncio.sleep(0.01)

        await asyncio.wait_for(scheduler.stop(), timeout=1.0)

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_restart(self):
        job = CountingJob()
        scheduler = JobScheduler()
        scheduler.register(job)

        async with scheduler:
            await wait_for_runs(job, 1)
        runs = job.runs
        async with scheduler:
            await wait_for_runs(job, runs + 1)
