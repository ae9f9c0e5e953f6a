"""Background jobs for Fencehook.

Example:
    ```python
    from fencehook.jobs import DeliveryCleanupJob, JobScheduler
    from fencehook.webhooks import RetryWorker

    async with JobScheduler() as scheduler:
        scheduler.register(RetryWorker(storage, transport))
        scheduler.register(DeliveryCleanupJob(storage))
        await stop_requested.wait()
    ```
"""

from .cleanup import DeliveryCleanupJob
from .scheduler import Job, JobScheduler

__all__ = ["DeliveryCleanupJob", "Job", "JobScheduler"]
