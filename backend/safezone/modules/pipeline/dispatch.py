"""Job dispatchers.

Accepted uploads are handed to a dispatcher after the HTTP response has been
sent. Both implementations bound the number of jobs running at once:

- ``CeleryJobDispatcher`` sends the job to the transcode queue, consumed by a
  fixed-size Celery worker pool.
- ``InProcessJobPool`` keeps a bounded ``asyncio.Queue`` drained by a fixed
  number of worker tasks inside the API process.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from safezone.core.errors import QueueFullError
from safezone.core.metrics import QUEUE_DEPTH
from safezone.modules.pipeline.jobs import VideoJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[VideoJob], Awaitable[Any]]


class JobDispatcher(ABC):
    """Hands accepted jobs to whatever runs them."""

    @abstractmethod
    async def submit(self, job: VideoJob) -> None:
        """Enqueue a job.

        Raises:
            QueueFullError: If no capacity is left
        """


class CeleryJobDispatcher(JobDispatcher):
    """Sends jobs to the Celery transcode queue."""

    def __init__(self, queue: str, task=None):
        """Initialize dispatcher.

        Args:
            queue: Celery queue name
            task: Celery task to call; defaults to ``process_video_task``
        """
        self.queue = queue
        self._task = task

    def _get_task(self):
        if self._task is None:
            from safezone.modules.video.tasks import process_video_task

            self._task = process_video_task
        return self._task

    async def submit(self, job: VideoJob) -> None:
        task = self._get_task()
        # apply_async blocks on the broker connection
        result = await asyncio.to_thread(
            task.apply_async,
            args=[job.to_payload()],
            queue=self.queue,
        )
        logger.info(
            "Video job queued",
            extra={"video_id": job.job_id, "task_id": getattr(result, "id", None)},
        )


class InProcessJobPool(JobDispatcher):
    """Bounded queue with a fixed number of asyncio workers."""

    def __init__(self, workers: int, max_pending: int, name: str = "transcode"):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self.workers = workers
        self.max_pending = max_pending
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []
        self._handler: Optional[JobHandler] = None
        self._active = 0

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def active(self) -> int:
        return self._active

    def start(self, handler: JobHandler) -> None:
        """Start the worker tasks on the running event loop."""
        if self.started:
            raise RuntimeError("Job pool already started")
        self._handler = handler
        self._queue = asyncio.Queue(maxsize=self.max_pending)
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(
            "Job pool started",
            extra={"pool": self.name, "workers": self.workers, "max_pending": self.max_pending},
        )

    async def submit(self, job: VideoJob) -> None:
        if self._queue is None:
            raise RuntimeError("Job pool is not started")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as e:
            raise QueueFullError(
                f"Transcode queue is full ({self.max_pending} pending jobs)"
            ) from e
        QUEUE_DEPTH.labels(queue_name=self.name).set(self._queue.qsize())

    async def join(self) -> None:
        """Wait until every submitted job has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the workers, optionally after draining the queue."""
        if not self.started:
            return
        if drain:
            await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        logger.info("Job pool stopped", extra={"pool": self.name})

    async def _worker(self, index: int) -> None:
        assert self._queue is not None and self._handler is not None
        while True:
            job = await self._queue.get()
            QUEUE_DEPTH.labels(queue_name=self.name).set(self._queue.qsize())
            self._active += 1
            try:
                await self._handler(job)
            except Exception:
                logger.exception(
                    "Job handler raised",
                    extra={"pool": self.name, "worker": index, "video_id": job.job_id},
                )
            finally:
                self._active -= 1
                self._queue.task_done()
