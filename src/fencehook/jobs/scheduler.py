"""Fixed-interval scheduler for background jobs.

Each registered job runs in its own asyncio task: run, then wait
``interval`` seconds or until shutdown, whichever comes first. A failing
run is logged and the loop carries on with the next interval.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 30.0


@runtime_checkable
class Job(Protocol):
    """A periodic job.

    Attributes:
        name: Unique name used in logs.
        interval: Seconds between the end of one run and the start of the next.
    """

    name: str
    interval: float

    async def execute(self) -> Any:
        """Run once."""
        ...


class JobScheduler:
    """Runs registered jobs on fixed intervals until stopped.

    Example:
        ```python
        scheduler = JobScheduler()
        scheduler.register(RetryWorker(storage, transport))
        scheduler.register(DeliveryCleanupJob(storage))

        async with scheduler:
            await shutdown_requested.wait()
        ```
    """

    def __init__(
        self,
        run_on_start: bool = True,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """Initialize the scheduler.

        Args:
            run_on_start: Run each job immediately on start rather than
                after its first interval.
            shutdown_timeout: Seconds stop() waits for in-flight runs
                before cancelling them.
        """
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_event = asyncio.Event()
        self._run_on_start = run_on_start
        self._shutdown_timeout = shutdown_timeout
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> list[str]:
        return list(self._jobs)

    def register(self, job: Job) -> None:
        """Add a job. Jobs registered after start() begin immediately.

        Raises:
            ValueError: If a job with the same name is already registered.
        """
        if job.name in self._jobs:
            raise ValueError(f"Job already registered: {job.name}")
        if job.interval <= 0:
            raise ValueError(f"Job {job.name} has non-positive interval {job.interval}")
        self._jobs[job.name] = job
        logger.info("Registered job %s (every %ss)", job.name, job.interval)
        if self._running:
            self._spawn(job)

    async def start(self) -> None:
        """Start a task per registered job."""
        if self._running:
            logger.warning("JobScheduler already running")
            return

        self._stop_event.clear()
        self._running = True
        for job in self._jobs.values():
            self._spawn(job)
        logger.info("JobScheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Signal shutdown and wait for in-flight runs to finish."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        tasks = list(self._tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("Cancelled %d jobs that did not stop in time", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)

        self._tasks.clear()
        logger.info("JobScheduler stopped")

    async def run_now(self, name: str) -> Any:
        """Run a registered job once, outside its schedule.

        Raises:
            KeyError: If no job has this name.
        """
        return await self._jobs[name].execute()

    def _spawn(self, job: Job) -> None:
        self._tasks[job.name] = asyncio.create_task(self._run_loop(job), name=f"job:{job.name}")

    async def _run_loop(self, job: Job) -> None:
        if not self._run_on_start and await self._wait_interval(job):
            return

        while not self._stop_event.is_set():
            try:
                await job.execute()
            except Exception as e:
                logger.exception("Job %s failed: %s", job.name, e)

            if await self._wait_interval(job):
                return

    async def _wait_interval(self, job: Job) -> bool:
        """Sleep for the job's interval. Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=job.interval)
        except TimeoutError:
            return False
        return True

    async def __aenter__(self) -> JobScheduler:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
