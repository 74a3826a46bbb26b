"""
Background processing tests.

Tests for dispatching pending jobs, the concurrency limit, stale job
recovery, graceful shutdown and the delivery hook.
"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from briefcast.exceptions import StaleJobError
from briefcast.models import PodcastDuration, PodcastJob, PodcastStatus, PodcastTemplate
from briefcast.services.job_processor import JobProcessor


async def create_job(podcast_service, make_report):
    report_id = await make_report()
    job = await podcast_service.request_podcast(report_id, PodcastTemplate.EXECUTIVE_BRIEF, PodcastDuration.SHORT)
    return job.id


async def mark_in_progress(session_factory, podcast_id, status, minutes_ago):
    async with session_factory() as session:
        job = (await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))).scalar_one()
        started = datetime.utcnow() - timedelta(minutes=minutes_ago)
        job.status = status.value
        job.started_at = started
        job.stage_started_at = started
        await session.commit()


async def wait_for_jobs(processor):
    tasks = list(processor._job_tasks)
    if tasks:
        await asyncio.gather(*tasks)


def blocking_processor(podcast_service, release: asyncio.Event, **kwargs):
    """Processor whose jobs wait until release is set, then run normally."""
    real_process = podcast_service.process_podcast

    async def process(podcast_id):
        await release.wait()
        return await real_process(podcast_id)

    podcast_service.process_podcast = AsyncMock(side_effect=process)
    return JobProcessor(podcast_service, **kwargs)


class TestDispatch:
    """Tests for picking up pending jobs."""

    @pytest.mark.asyncio
    async def test_pending_job_is_completed(self, services, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        processor = services.job_processor

        started = await processor.dispatch_pending()
        assert started == [podcast_id]
        assert processor.in_flight == {podcast_id}

        await wait_for_jobs(processor)

        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.COMPLETED.value
        assert processor.in_flight == set()

    @pytest.mark.asyncio
    async def test_max_concurrency_is_respected(self, podcast_service, make_report):
        ids = [await create_job(podcast_service, make_report) for _ in range(3)]
        release = asyncio.Event()
        processor = blocking_processor(podcast_service, release, max_concurrent=2)

        first = await processor.dispatch_pending()
        second = await processor.dispatch_pending()

        assert first == ids[:2]
        assert second == []
        assert processor.get_status()['active_jobs'] == 2

        release.set()
        await wait_for_jobs(processor)

        assert await processor.dispatch_pending() == [ids[2]]
        await wait_for_jobs(processor)

    @pytest.mark.asyncio
    async def test_in_flight_jobs_are_not_dispatched_twice(self, podcast_service, make_report):
        podcast_id = await create_job(podcast_service, make_report)
        release = asyncio.Event()
        processor = blocking_processor(podcast_service, release, max_concurrent=3)

        assert await processor.dispatch_pending() == [podcast_id]
        # Still PENDING in the database while the task waits
        assert await processor.dispatch_pending() == []
        assert podcast_service.process_podcast.await_count <= 1

        release.set()
        await wait_for_jobs(processor)
        assert podcast_service.process_podcast.await_count == 1

    @pytest.mark.asyncio
    async def test_job_failure_frees_the_slot(self, services, make_report, fake_llm):
        podcast_id = await create_job(services.podcast_service, make_report)
        fake_llm.error = RuntimeError('model unavailable')
        processor = services.job_processor

        await processor.dispatch_pending()
        await wait_for_jobs(processor)

        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.FAILED.value
        assert 'model unavailable' in job.error_message
        assert processor.in_flight == set()


class TestStaleRecovery:
    """Tests for resetting abandoned jobs."""

    @pytest.mark.asyncio
    async def test_stale_job_is_reset_for_retry(self, services, session_factory, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.GENERATING_AUDIO, minutes_ago=31)

        recovered = await services.job_processor.sweep_stale()

        assert recovered == [podcast_id]
        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.PENDING.value
        assert job.retry_count == 1
        assert job.error_message == 'Job timed out in GENERATING_AUDIO after 30 minutes and was reset for retry'
        assert job.stage_started_at is None

        # A second sweep finds nothing to do
        assert await services.job_processor.sweep_stale() == []
        assert (await services.podcast_service.get_podcast(podcast_id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_recent_job_is_left_alone(self, services, session_factory, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.MIXING, minutes_ago=5)

        assert await services.job_processor.sweep_stale() == []
        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.MIXING.value
        assert job.retry_count == 0

    @pytest.mark.asyncio
    async def test_job_that_moved_to_a_new_stage_is_not_reset(self, services, session_factory, make_report):
        """Test recovery re-checks the stage start against the sweep cutoff."""
        podcast_id = await create_job(services.podcast_service, make_report)
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.GENERATING_AUDIO, minutes_ago=45)
        cutoff = datetime.utcnow() - timedelta(minutes=30)
        stale = await services.podcast_service.find_stale(cutoff)
        assert [job.id for job in stale] == [podcast_id]

        # Another worker advances the job before recovery runs
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.MIXING, minutes_ago=0)

        recovered = await services.podcast_service.recover_stale(podcast_id, StaleJobError('timed out'), cutoff)

        assert recovered is False
        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.MIXING.value
        assert job.retry_count == 0

    @pytest.mark.asyncio
    async def test_in_flight_job_is_never_recovered(self, services, session_factory, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.GENERATING_SCRIPT, minutes_ago=60)
        services.job_processor._in_flight.add(podcast_id)

        assert await services.job_processor.sweep_stale() == []
        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.GENERATING_SCRIPT.value

    @pytest.mark.asyncio
    async def test_recovered_job_completes_on_next_dispatch(self, services, session_factory, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        await mark_in_progress(session_factory, podcast_id, PodcastStatus.GENERATING_SCRIPT, minutes_ago=45)

        await services.job_processor.sweep_stale()
        await services.job_processor.dispatch_pending()
        await wait_for_jobs(services.job_processor)

        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.COMPLETED.value
        assert job.retry_count == 1
        assert job.error_message is None


class TestLifecycle:
    """Tests for start, stop and delivery."""

    @pytest.mark.asyncio
    async def test_start_processes_queue_and_stops(self, services, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        processor = services.job_processor

        await processor.start()
        assert processor.is_running

        for _ in range(200):
            job = await services.podcast_service.get_podcast(podcast_id)
            if job.status == PodcastStatus.COMPLETED.value:
                break
            await asyncio.sleep(0.01)

        abandoned = await processor.stop()

        assert job.status == PodcastStatus.COMPLETED.value
        assert abandoned == []
        assert not processor.is_running

    @pytest.mark.asyncio
    async def test_stop_reports_abandoned_jobs(self, podcast_service, make_report):
        podcast_id = await create_job(podcast_service, make_report)
        release = asyncio.Event()
        processor = blocking_processor(podcast_service, release, drain_timeout=0.05, poll_interval=0.01)

        await processor.start()
        for _ in range(100):
            if processor.in_flight:
                break
            await asyncio.sleep(0.01)

        abandoned = await processor.stop()

        assert abandoned == [podcast_id]

        release.set()
        await wait_for_jobs(processor)

    @pytest.mark.asyncio
    async def test_stop_without_start(self, services):
        assert await services.job_processor.stop() == []

    @pytest.mark.asyncio
    async def test_delivery_hook_receives_final_file(self, services, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        delivery = AsyncMock()
        processor = JobProcessor(services.podcast_service, delivery=delivery)

        await processor.dispatch_pending()
        await wait_for_jobs(processor)

        job = await services.podcast_service.get_podcast(podcast_id)
        delivery.assert_awaited_once_with(podcast_id, job.final_audio_path)

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_fail_job(self, services, make_report):
        podcast_id = await create_job(services.podcast_service, make_report)
        processor = JobProcessor(services.podcast_service, delivery=AsyncMock(side_effect=RuntimeError('smtp down')))

        await processor.dispatch_pending()
        await wait_for_jobs(processor)

        job = await services.podcast_service.get_podcast(podcast_id)
        assert job.status == PodcastStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_close_releases_provider_clients(self, services, fake_llm, fake_synthesizer):
        fake_llm.close = AsyncMock()
        fake_synthesizer.close = AsyncMock()

        await services.close()

        fake_llm.close.assert_awaited_once()
        fake_synthesizer.close.assert_awaited_once()

    def test_status_snapshot(self, services):
        status = services.job_processor.get_status()

        assert status == {
            'is_running': False,
            'active_jobs': 0,
            'active_job_ids': [],
            'poll_interval_seconds': 0.05,
            'max_concurrent': 1,
        }
