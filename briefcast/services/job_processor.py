"""
Background processor that drives podcast jobs to completion.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Set

from briefcast.config import (
    PODCAST_CLEANUP_INTERVAL_SECONDS,
    PODCAST_DRAIN_TIMEOUT_SECONDS,
    PODCAST_MAX_CONCURRENT_JOBS,
    PODCAST_POLL_INTERVAL_SECONDS,
    PODCAST_STALE_THRESHOLD_MINUTES,
)
from briefcast.exceptions import StaleJobError
from briefcast.services.podcast_service import PodcastService

logger = logging.getLogger(__name__)

DeliveryHook = Callable[[str, str], Awaitable[None]]


class JobProcessor:
    """
    Polls for pending podcast jobs and runs them as asyncio tasks.

    At most max_concurrent jobs run at once; ids of running jobs are kept
    in an in-flight set. Each poll also recovers jobs left mid-stage by a
    crashed worker.
    """

    def __init__(
        self,
        podcast_service: PodcastService,
        poll_interval: float = PODCAST_POLL_INTERVAL_SECONDS,
        max_concurrent: int = PODCAST_MAX_CONCURRENT_JOBS,
        stale_threshold_minutes: int = PODCAST_STALE_THRESHOLD_MINUTES,
        drain_timeout: float = PODCAST_DRAIN_TIMEOUT_SECONDS,
        cleanup_interval: float = PODCAST_CLEANUP_INTERVAL_SECONDS,
        delivery: Optional[DeliveryHook] = None,
    ):
        self.podcast_service = podcast_service
        self.poll_interval = poll_interval
        self.max_concurrent = max(1, max_concurrent)
        self.stale_threshold_minutes = stale_threshold_minutes
        self.drain_timeout = drain_timeout
        self.cleanup_interval = cleanup_interval
        self.delivery = delivery

        self._in_flight: Set[str] = set()
        self._job_tasks: Set[asyncio.Task] = set()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    async def start(self):
        """Start polling and the retention sweep."""
        if self._running:
            logger.warning('Podcast processor is already running')
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._poll_loop())
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info('Podcast processor started (poll every %ss, max %d concurrent)',
                    self.poll_interval, self.max_concurrent)

    async def stop(self) -> List[str]:
        """
        Stop polling and wait for running jobs to finish.

        Jobs still running after drain_timeout are left alone and reported.

        Returns:
            Ids of jobs abandoned at shutdown
        """
        if not self._running:
            return []

        self._running = False
        self._stop_event.set()

        for task in (self._task, self._cleanup_task):
            if task:
                await task
        self._task = None
        self._cleanup_task = None

        if self._job_tasks:
            logger.info('Waiting for %d podcast jobs to complete...', len(self._job_tasks))
            await asyncio.wait(set(self._job_tasks), timeout=self.drain_timeout)

        abandoned = sorted(self._in_flight)
        if abandoned:
            logger.warning('Stopping with %d podcast jobs still in progress: %s',
                           len(abandoned), ', '.join(abandoned))

        logger.info('Podcast processor stopped')
        return abandoned

    async def _sleep(self, seconds: float) -> bool:
        """Wait for seconds or until stop. Returns True if stopping."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()

    async def _poll_loop(self):
        """Main loop - dispatch due jobs, then sweep for stale ones."""
        while self._running:
            try:
                await self.poll_once()
            except Exception:
                # Log but don't crash the loop
                logger.exception('Error in podcast processor loop')

            if await self._sleep(self.poll_interval):
                break

    async def _cleanup_loop(self):
        while self._running:
            try:
                await self.podcast_service.cleanup_expired()
            except Exception:
                logger.exception('Podcast cleanup failed')

            if await self._sleep(self.cleanup_interval):
                break

    async def poll_once(self):
        await self.dispatch_pending()
        await self.sweep_stale()

    async def dispatch_pending(self) -> List[str]:
        """Start pending jobs up to the free concurrency slots. Returns started ids."""
        available = self.max_concurrent - len(self._in_flight)
        if available <= 0:
            return []

        # Just-dispatched jobs may still read as PENDING, so over-fetch
        pending_ids = await self.podcast_service.get_pending_ids(limit=available + len(self._in_flight))

        started = []
        for podcast_id in pending_ids:
            if len(started) >= available:
                break
            if podcast_id in self._in_flight:
                continue

            self._in_flight.add(podcast_id)
            task = asyncio.create_task(self._run_job(podcast_id))
            self._job_tasks.add(task)
            task.add_done_callback(self._job_tasks.discard)
            started.append(podcast_id)

        return started

    async def _run_job(self, podcast_id: str):
        logger.info('Processing podcast job: %s', podcast_id)
        try:
            job = await self.podcast_service.process_podcast(podcast_id)
            logger.info('Podcast job completed: %s', podcast_id)

            if self.delivery and job.final_audio_path:
                try:
                    await self.delivery(podcast_id, job.final_audio_path)
                except Exception:
                    logger.exception('Delivery failed for podcast %s', podcast_id)
        except Exception as e:
            logger.error('Podcast job failed: %s: %s', podcast_id, e)
        finally:
            self._in_flight.discard(podcast_id)

    async def sweep_stale(self, now: Optional[datetime] = None) -> List[str]:
        """
        Reset jobs stuck mid-stage past the staleness threshold.

        Jobs in this process's in-flight set are never touched.

        Returns:
            Ids of recovered jobs
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=self.stale_threshold_minutes)

        recovered = []
        for job in await self.podcast_service.find_stale(cutoff):
            if job.id in self._in_flight:
                continue

            error = StaleJobError(
                f'Job timed out in {job.status} after {self.stale_threshold_minutes} minutes '
                f'and was reset for retry'
            )
            if await self.podcast_service.recover_stale(job.id, error, cutoff):
                recovered.append(job.id)

        return recovered

    def get_status(self) -> dict:
        return {
            'is_running': self._running,
            'active_jobs': len(self._in_flight),
            'active_job_ids': sorted(self._in_flight),
            'poll_interval_seconds': self.poll_interval,
            'max_concurrent': self.max_concurrent,
        }
