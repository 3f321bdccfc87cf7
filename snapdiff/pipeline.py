"""Job pipeline: single-worker FIFO queue driving capture, baseline and diff stages."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from snapdiff.baseline.manager import BaselineManager, Established
from snapdiff.capture.acquirer import RenderAcquirer
from snapdiff.diff.codec import encode_png
from snapdiff.diff.engine import diff
from snapdiff.errors import QueueFullError, SnapdiffError, StorageError, UnexpectedError
from snapdiff.models.capture import CaptureRequest, CaptureResponse
from snapdiff.models.config import ServiceConfig
from snapdiff.models.job import Job, JobState
from snapdiff.storage.base import ArtifactStore
from snapdiff.url_utils import GenerationClock, derive_keys

logger = logging.getLogger(__name__)

_STOP = object()


def _retrieve_outcome(future: asyncio.Future) -> None:
    # Marks the exception as seen when the submitter has gone away
    if not future.cancelled():
        future.exception()


class JobPipeline:
    """Runs capture jobs one at a time, in submission order.

    Each pipeline owns its queue and worker, so several can coexist (tests
    build one per case). Use ``start``/``stop`` or ``async with``.
    """

    def __init__(
        self,
        acquirer: RenderAcquirer,
        baseline_manager: BaselineManager,
        store: ArtifactStore,
        config: ServiceConfig,
        clock: GenerationClock | None = None,
        on_finish: Callable[[Job], None] | None = None,
    ):
        self.acquirer = acquirer
        self.baseline_manager = baseline_manager
        self.store = store
        self.config = config
        self.clock = clock or GenerationClock()
        self.on_finish = on_finish
        self._queue: asyncio.Queue | None = None
        self._worker: asyncio.Task | None = None
        self.current_job: Job | None = None

    async def __aenter__(self) -> "JobPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._work(), name="snapdiff-worker")
        logger.debug("Job pipeline started")

    async def stop(self) -> None:
        """Finish every queued job, then stop the worker."""
        if not self.running:
            return
        await self._queue.put(_STOP)
        await self._worker
        self._worker = None
        logger.debug("Job pipeline stopped")

    async def submit(self, request: CaptureRequest) -> CaptureResponse:
        """Queue a capture and wait for its terminal state.

        Raises InvalidInputError before queueing, QueueFullError when the
        depth limit is reached, or the job's CaptureJobError on failure.
        """
        if not self.running:
            raise RuntimeError("Job pipeline is not running")

        keys = derive_keys(request.target_url, self.clock.next())

        limit = self.config.max_queue_depth
        if limit and self._queue.qsize() >= limit:
            raise QueueFullError(f"Capture queue is full ({limit} pending)")

        job = Job(request=request, keys=keys, future=asyncio.get_running_loop().create_future())
        job.future.add_done_callback(_retrieve_outcome)
        self._queue.put_nowait(job)
        logger.info("Queued %s for %s (%d pending)", job.job_id, request.target_url, self._queue.qsize())
        # A caller that stops waiting does not cancel the job itself
        return await asyncio.shield(job.future)

    async def _work(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is _STOP:
                    return
                await self._run(job)
            except Exception as e:
                logger.error("Worker fault while running %s", job.job_id, exc_info=True)
                if not job.future.done():
                    wrapped = UnexpectedError(f"Unexpected failure: {e}")
                    wrapped.__cause__ = e
                    job.future.set_exception(wrapped)
            finally:
                self._queue.task_done()

    async def _run(self, job: Job) -> None:
        self.current_job = job
        job.started_at = time.time()
        logger.info("Starting %s: %s (waited %.1fs)",
                    job.job_id, job.request.target_url, job.started_at - job.enqueued_at)
        try:
            response = await self._execute(job)
        except SnapdiffError as e:
            await self._fail(job, e)
        except Exception as e:
            logger.error("%s hit an unexpected fault in state %s",
                         job.job_id, job.state.value, exc_info=True)
            wrapped = UnexpectedError(f"Unexpected failure: {e}")
            wrapped.__cause__ = e
            await self._fail(job, wrapped)
        else:
            job.response = response
            if not job.future.done():
                job.future.set_result(response)
        finally:
            job.finished_at = time.time()
            self.current_job = None
            logger.info("Finished %s as %s in %.1fs",
                        job.job_id, job.state.value, job.finished_at - job.started_at)
            if self.on_finish:
                try:
                    self.on_finish(job)
                except Exception:
                    logger.error("on_finish hook failed for %s", job.job_id, exc_info=True)

    def _transition(self, job: Job, state: JobState) -> None:
        previous = job.state
        job.transition(state)
        logger.debug("%s: %s -> %s", job.job_id, previous.value, state.value)

    async def _execute(self, job: Job) -> CaptureResponse:
        request, keys = job.request, job.keys

        self._transition(job, JobState.CAPTURING)
        candidate = await self.acquirer.capture(request.target_url)

        outcome = await self.baseline_manager.resolve(keys, candidate)
        if isinstance(outcome, Established):
            self._transition(job, JobState.BASELINE_ESTABLISHED)
            response = CaptureResponse(message="Baseline created", baseline_url=outcome.url)
            self._transition(job, JobState.COMPLETED)
            return response

        self._transition(job, JobState.COMPARING)
        result = await asyncio.to_thread(
            diff, outcome.image, candidate, request.ignore_regions, self.config.diff_threshold
        )
        job.changed_pixels = result.changed_pixels

        await self._persist(job, keys.raw_key, encode_png(candidate), "raw")
        await self._persist(job, keys.diff_key, encode_png(result.diff_image), "diff")

        response = CaptureResponse(
            message=f"Diff complete: {result.changed_pixels} pixels changed",
            capture_url=self.store.signed_url(keys.raw_key),
            baseline_url=self.store.signed_url(keys.baseline_key),
            diff_url=self.store.signed_url(keys.diff_key),
            changed_pixels=result.changed_pixels,
        )
        self._transition(job, JobState.COMPLETED)
        return response

    async def _persist(self, job: Job, key: str, data: bytes, artifact: str) -> None:
        try:
            await self.store.put(key, data, "image/png", overwrite=False)
        except StorageError as e:
            e.artifact = artifact
            raise
        job.written_keys.append(key)

    async def _fail(self, job: Job, error: SnapdiffError) -> None:
        if not job.is_terminal:
            self._transition(job, JobState.FAILED)
        job.error = error
        artifact = getattr(error, "artifact", None)
        logger.error("%s failed at %s: %s%s", job.job_id, getattr(error, "step", "job"), error,
                     f" (artifact '{artifact}' not persisted)" if artifact else "")
        await self._discard_written(job)
        if not job.future.done():
            job.future.set_exception(error)

    async def _discard_written(self, job: Job) -> None:
        """Best-effort removal of artifacts written before the failure."""
        for key in job.written_keys:
            try:
                await self.store.delete(key)
                logger.debug("Removed partial artifact %s", key)
            except Exception as e:
                logger.warning("Could not remove partial artifact %s: %s", key, e)
        job.written_keys.clear()
