"""
Podcast orchestration: job lifecycle and the generation pipeline.
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from briefcast.config import OPENAI_TTS_MODEL, PAUSE_BETWEEN_SPEAKERS_MS, PODCAST_EXPIRATION_HOURS
from briefcast.exceptions import (
    InvalidStateError,
    PodcastNotFoundError,
    ReportNotCompletedError,
    ReportNotFoundError,
    StaleJobError,
)
from briefcast.formats import DURATION_CONFIG, STATUS_PROGRESS
from briefcast.models.podcast import (
    IN_PROGRESS_STATUSES,
    REUSABLE_STATUSES,
    PodcastDuration,
    PodcastJob,
    PodcastStatus,
    PodcastTemplate,
    PodcastTrigger,
)
from briefcast.schemas.podcast import (
    CostEstimate,
    PodcastStatusResponse,
    ScriptCostEstimate,
    TTSCostEstimate,
)
from briefcast.services.audio_assembler import AudioAssembler, MixOptions
from briefcast.services.report_source import ReportSource
from briefcast.services.script_generator import ScriptGenerator
from briefcast.services.tts_service import TTSService, estimate_tts_cost

logger = logging.getLogger(__name__)

# Cost model used for up-front estimates
LLM_TOKENS_PER_WORD = 2
LLM_COST_PER_1K_TOKENS = 0.01
CHARS_PER_WORD = 5


class PodcastService:
    """
    Owns podcast jobs and drives them through the pipeline.

    PENDING -> GENERATING_SCRIPT -> GENERATING_AUDIO -> MIXING -> COMPLETED,
    with FAILED reachable from any in-progress state. Each status change is
    committed before the stage it names starts, so status reads always show
    the live stage.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        report_source: ReportSource,
        script_generator: ScriptGenerator,
        tts_service: TTSService,
        assembler: AudioAssembler,
        mix_options: Optional[MixOptions] = None,
        pause_ms: int = PAUSE_BETWEEN_SPEAKERS_MS,
        expiration_hours: int = PODCAST_EXPIRATION_HOURS,
        tts_model: str = OPENAI_TTS_MODEL,
    ):
        self._session_factory = session_factory
        self.report_source = report_source
        self.script_generator = script_generator
        self.tts_service = tts_service
        self.assembler = assembler
        self.mix_options = mix_options or MixOptions()
        self.pause_ms = pause_ms
        self.expiration_hours = expiration_hours
        self.tts_model = tts_model

    # ------------------------------------------------------------------
    # Requests and queries
    # ------------------------------------------------------------------

    async def request_podcast(
        self,
        report_id: str,
        template: PodcastTemplate,
        duration: PodcastDuration,
        triggered_by: PodcastTrigger = PodcastTrigger.ON_DEMAND,
    ) -> PodcastJob:
        """
        Request a podcast for a completed report.

        An existing pending, running or completed job is returned unchanged.
        A failed job is discarded and replaced by a fresh one.

        Raises:
            ReportNotFoundError: the report does not exist
            ReportNotCompletedError: the report is not completed
        """
        report = await self.report_source.get_report(report_id)
        if report is None:
            raise ReportNotFoundError(f'Report not found: {report_id}')
        if not report.is_completed:
            raise ReportNotCompletedError(f'Report is not completed: {report.status}')

        existing = await self.get_podcast_by_report(report_id)
        if existing is not None:
            if existing.status_enum in REUSABLE_STATUSES:
                logger.info('Podcast already exists for report %s: %s', report_id, existing.status)
                return existing

            logger.info('Replacing failed podcast %s for report %s', existing.id, report_id)
            await self.delete_podcast(existing.id)

        estimate = self.estimate_cost(duration)
        now = datetime.utcnow()
        job = PodcastJob(
            report_id=report_id,
            template=PodcastTemplate(template).value,
            duration=PodcastDuration(duration).value,
            triggered_by=PodcastTrigger(triggered_by).value,
            status=PodcastStatus.PENDING.value,
            estimated_cost=estimate.total_cost,
            retry_count=0,
            created_at=now,
            expires_at=now + timedelta(hours=self.expiration_hours),
        )

        async with self._session_factory() as session:
            session.add(job)
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent request created the job first
                await session.rollback()
                winner = await self.get_podcast_by_report(report_id)
                if winner is None:
                    raise
                return winner

        logger.info('Podcast generation requested: %s for report %s', job.id, report_id)
        return job

    async def get_podcast(self, podcast_id: str) -> Optional[PodcastJob]:
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            return result.scalar_one_or_none()

    async def get_podcast_by_report(self, report_id: str) -> Optional[PodcastJob]:
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.report_id == report_id))
            return result.scalar_one_or_none()

    async def get_status(self, report_id: str) -> PodcastStatusResponse:
        """Status, progress percentage and message for a report's podcast."""
        job = await self.get_podcast_by_report(report_id)
        if job is None:
            return PodcastStatusResponse(status=PodcastStatus.PENDING.value, progress=0, message='No podcast found')

        progress, message = STATUS_PROGRESS[job.status_enum]
        return PodcastStatusResponse(
            status=job.status,
            progress=progress,
            message=message,
            error=job.error_message if job.status_enum == PodcastStatus.FAILED else None,
        )

    async def get_download(self, report_id: str) -> Tuple[PodcastJob, Path]:
        """
        Resolve the finished audio file for a report's podcast.

        Raises:
            PodcastNotFoundError: no podcast for the report
            InvalidStateError: podcast not completed or file missing
        """
        job = await self.get_podcast_by_report(report_id)
        if job is None:
            raise PodcastNotFoundError(f'No podcast found for report {report_id}')
        if job.status_enum != PodcastStatus.COMPLETED:
            raise InvalidStateError(f'Podcast is not ready. Status: {job.status}')
        if not job.final_audio_path or not Path(job.final_audio_path).exists():
            raise InvalidStateError('Podcast audio file is missing')
        return job, Path(job.final_audio_path)

    def estimate_cost(self, duration: PodcastDuration) -> CostEstimate:
        """Fixed-rate estimate from the duration class's word budget."""
        words = DURATION_CONFIG[PodcastDuration(duration)].word_count

        tokens = words * LLM_TOKENS_PER_WORD
        llm_cost = tokens / 1000 * LLM_COST_PER_1K_TOKENS

        characters = words * CHARS_PER_WORD
        tts_cost = estimate_tts_cost(characters, self.tts_model)

        return CostEstimate(
            script_generation=ScriptCostEstimate(tokens=tokens, cost=round(llm_cost, 3)),
            tts_generation=TTSCostEstimate(characters=characters, cost=tts_cost),
            total_cost=round(llm_cost + tts_cost, 3),
            breakdown=(
                f'Script (~{tokens} tokens): ${llm_cost:.3f}, '
                f'TTS ({characters:,} chars): ${tts_cost:.3f}'
            ),
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _transition(self, podcast_id: str, target: PodcastStatus, **fields) -> PodcastJob:
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            job = result.scalar_one_or_none()
            if job is None:
                raise PodcastNotFoundError(f'Podcast not found: {podcast_id}')

            job.transition_to(target)
            for name, value in fields.items():
                setattr(job, name, value)
            await session.commit()
            return job

    async def _update(self, podcast_id: str, **fields):
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            job = result.scalar_one_or_none()
            if job is None:
                raise PodcastNotFoundError(f'Podcast not found: {podcast_id}')
            for name, value in fields.items():
                setattr(job, name, value)
            await session.commit()

    async def _mark_failed(self, podcast_id: str, error: str):
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            job = result.scalar_one_or_none()
            if job is None:
                logger.warning('Podcast %s vanished before its failure could be recorded', podcast_id)
                return
            if job.status_enum in (PodcastStatus.COMPLETED, PodcastStatus.FAILED):
                logger.warning('Not marking podcast %s failed, status is %s', podcast_id, job.status)
                return

            job.transition_to(PodcastStatus.FAILED)
            job.error_message = error
            job.retry_count = (job.retry_count or 0) + 1
            await session.commit()

    async def process_podcast(self, podcast_id: str) -> PodcastJob:
        """
        Run script generation, speech synthesis and assembly for a job.

        On any stage failure the job is marked FAILED with the error
        message and the exception is re-raised.

        Raises:
            PodcastNotFoundError: the job does not exist
            InvalidStateError: the job is not PENDING
        """
        job = await self._transition(podcast_id, PodcastStatus.GENERATING_SCRIPT, error_message=None)
        logger.info('Processing podcast %s: %s - %s', podcast_id, job.template, job.duration)

        try:
            source = await self.report_source.get_report(job.report_id)
            if source is None:
                raise ReportNotFoundError(f'Report not found for podcast {podcast_id}: {job.report_id}')

            # Stage 1: script
            script = await self.script_generator.generate(job, source)
            await self._update(
                podcast_id,
                script=script.model_dump(mode='json', by_alias=True),
                script_tokens=script.metadata.tokens if script.metadata else 0,
                script_generated_at=datetime.utcnow(),
            )

            # Stage 2: speech
            await self._transition(podcast_id, PodcastStatus.GENERATING_AUDIO)

            def on_progress(completed: int, total: int):
                logger.debug('TTS progress for %s: %d/%d', podcast_id, completed, total)

            segments = await self.tts_service.synthesize_script(podcast_id, script, on_progress=on_progress)
            await self._update(
                podcast_id,
                audio_segments=[s.model_dump(mode='json', by_alias=True) for s in segments],
                audio_segment_count=len(segments),
            )

            # Stage 3: assembly
            await self._transition(podcast_id, PodcastStatus.MIXING)
            assembled = await self.assembler.assemble(podcast_id, segments, self.pause_ms, self.mix_options)
            self.tts_service.cleanup_segments(podcast_id)

            job = await self._transition(
                podcast_id,
                PodcastStatus.COMPLETED,
                final_audio_path=assembled.path,
                duration_seconds=assembled.duration_seconds,
                file_size_bytes=assembled.file_size_bytes,
                error_message=None,
            )
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error('Podcast processing failed: %s: %s', podcast_id, error)
            await self._mark_failed(podcast_id, error)
            raise

        logger.info('Podcast completed: %s, %ss', podcast_id, job.duration_seconds)
        return job

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def get_pending_ids(self, limit: int = 10) -> List[str]:
        """Oldest pending job ids first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PodcastJob.id)
                .where(PodcastJob.status == PodcastStatus.PENDING.value)
                .order_by(PodcastJob.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def find_stale(self, cutoff: datetime) -> List[PodcastJob]:
        """In-progress jobs whose current stage started before cutoff."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PodcastJob).where(
                    PodcastJob.status.in_([s.value for s in IN_PROGRESS_STATUSES]),
                    PodcastJob.stage_started_at < cutoff,
                )
            )
            return list(result.scalars().all())

    async def recover_stale(self, podcast_id: str, error: StaleJobError, cutoff: datetime) -> bool:
        """
        Return an abandoned job to the queue.

        The job must still be in progress with its current stage started
        before cutoff. Returns False if it moved on or disappeared in the
        meantime.
        """
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            job = result.scalar_one_or_none()
            if job is None or job.status_enum not in IN_PROGRESS_STATUSES:
                return False
            if job.stage_started_at is None or job.stage_started_at >= cutoff:
                return False

            job.transition_to(PodcastStatus.PENDING, recovery=True)
            job.error_message = str(error)
            job.retry_count = (job.retry_count or 0) + 1
            await session.commit()

        logger.warning('Recovered stale podcast %s: %s', podcast_id, error)
        return True

    async def delete_podcast(self, podcast_id: str):
        """
        Delete a job record and its working directory.

        Running jobs own their directory until they finish or fail, so
        they cannot be deleted.

        Raises:
            PodcastNotFoundError: the job does not exist
            InvalidStateError: the job is still being processed
        """
        async with self._session_factory() as session:
            result = await session.execute(select(PodcastJob).where(PodcastJob.id == podcast_id))
            job = result.scalar_one_or_none()
            if job is None:
                raise PodcastNotFoundError(f'Podcast not found: {podcast_id}')
            if job.status_enum in IN_PROGRESS_STATUSES:
                raise InvalidStateError(f'Podcast is still being generated. Status: {job.status}')

            self.assembler.delete_job_files(podcast_id)
            await session.delete(job)
            await session.commit()

        logger.info('Podcast deleted: %s', podcast_id)

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete jobs past their expiry, skipping running ones. Returns the number deleted."""
        now = now or datetime.utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(PodcastJob.id).where(
                    PodcastJob.expires_at.isnot(None),
                    PodcastJob.expires_at < now,
                    PodcastJob.status.notin_([s.value for s in IN_PROGRESS_STATUSES]),
                )
            )
            expired_ids = list(result.scalars().all())

        deleted = 0
        for podcast_id in expired_ids:
            try:
                await self.delete_podcast(podcast_id)
                deleted += 1
            except Exception:
                logger.exception('Failed to clean up expired podcast %s', podcast_id)

        if deleted:
            logger.info('Cleaned up %d expired podcasts', deleted)
        return deleted

    async def queue_stats(self) -> dict:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PodcastJob.status, func.count(PodcastJob.id)).group_by(PodcastJob.status)
            )
            counts = {status: count for status, count in result.all()}

        pending = counts.get(PodcastStatus.PENDING.value, 0)
        processing = sum(counts.get(s.value, 0) for s in IN_PROGRESS_STATUSES)
        completed = counts.get(PodcastStatus.COMPLETED.value, 0)
        failed = counts.get(PodcastStatus.FAILED.value, 0)

        return {
            'pending': pending,
            'processing': processing,
            'completed': completed,
            'failed': failed,
            'total': pending + processing + completed + failed,
        }
