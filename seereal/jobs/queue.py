"""
Background Job Queue
====================

In-process queue for fire-and-forget work (cache eviction, history saves).

Jobs run as detached asyncio tasks. The caller that enqueues a job never
awaits it; failures go to the job's own error channel (logged and recorded
in its status) and never reach the request that triggered it.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_FINISHED_JOBS = 200


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class JobInfo:
    job_id: str
    name: str
    status: JobStatus = JobStatus.QUEUED
    enqueued_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "job_id": self.job_id,
            "name": self.name,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }
        if self.status == JobStatus.DONE:
            data["result"] = self.result
        elif self.status == JobStatus.FAILED:
            data["error"] = self.error
        return data


class BackgroundQueue:
    """
    Tracks detached asyncio jobs by id.

    Usage:
        queue = BackgroundQueue()
        job_id = queue.enqueue_job(storage.evict_older_than, max_age_ms, name="evict")
        await queue.drain()  # on shutdown / in tests
    """

    def __init__(self, max_finished: int = MAX_FINISHED_JOBS):
        self.max_finished = max_finished
        self._jobs: "OrderedDict[str, JobInfo]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task] = {}

    def enqueue_job(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        name: Optional[str] = None,
        job_id: Optional[str] = None,
        **kwargs
    ) -> str:
        """
        Schedule ``func(*args, **kwargs)`` as a detached task.

        Must be called from a running event loop.

        Returns:
            The job id
        """
        loop = asyncio.get_running_loop()
        job_id = job_id or uuid.uuid4().hex
        info = JobInfo(job_id=job_id, name=name or getattr(func, "__name__", "job"))
        self._jobs[job_id] = info

        task = loop.create_task(self._run(info, func, args, kwargs))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, jid=job_id: self._tasks.pop(jid, None))
        self._prune()
        logger.debug(f"Enqueued background job {info.name} ({job_id})")
        return job_id

    async def _run(self, info: JobInfo, func, args, kwargs) -> None:
        info.status = JobStatus.RUNNING
        info.started_at = datetime.utcnow()
        try:
            info.result = await func(*args, **kwargs)
            info.status = JobStatus.DONE
        except asyncio.CancelledError:
            info.status = JobStatus.CANCELLED
            raise
        except Exception as e:
            info.status = JobStatus.FAILED
            info.error = str(e)
            logger.warning(f"Background job {info.name} ({info.job_id}) failed: {e}")
        finally:
            info.ended_at = datetime.utcnow()

    def _prune(self) -> None:
        finished = [
            jid for jid, info in self._jobs.items()
            if info.status in (JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELLED)
        ]
        for jid in finished[: max(0, len(finished) - self.max_finished)]:
            self._jobs.pop(jid, None)

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Status, timing and result/error of a job"""
        info = self._jobs.get(job_id)
        if info is None:
            return {"job_id": job_id, "status": "not_found"}
        return info.to_dict()

    def cancel_job(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        return task.cancel()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def failed_jobs(self) -> List[JobInfo]:
        return [info for info in self._jobs.values() if info.status == JobStatus.FAILED]

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for all pending jobs, including jobs enqueued while draining.

        Jobs still running at the timeout are left running.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            pending = [t for t in self._tasks.values() if not t.done()]
            if not pending:
                return
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                logger.warning(f"Timed out draining {len(pending)} background jobs")
                return
            await asyncio.wait(pending, timeout=remaining)

    async def cancel_all(self) -> int:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)
