"""
Podcast endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from briefcast.dependencies import get_podcast_service, get_job_processor
from briefcast.exceptions import (
    InvalidStateError,
    PodcastNotFoundError,
    ReportNotCompletedError,
    ReportNotFoundError,
)
from briefcast.formats import DURATION_CONFIG, TEMPLATES
from briefcast.models.podcast import PodcastDuration
from briefcast.schemas.podcast import (
    CostEstimate,
    DurationInfo,
    PodcastCreate,
    PodcastResponse,
    PodcastStatusResponse,
    ProcessorStatusResponse,
    QueueStatsResponse,
    SegmentInfo,
    TemplateInfo,
    TemplatesResponse,
)
from briefcast.services.job_processor import JobProcessor
from briefcast.services.podcast_service import PodcastService


router = APIRouter(tags=['podcasts'])


@router.post('/reports/{report_id}/podcast', response_model=PodcastResponse, status_code=201)
async def request_podcast(
    report_id: str,
    data: PodcastCreate,
    service: PodcastService = Depends(get_podcast_service),
) -> PodcastResponse:
    """
    Request podcast generation for a completed report.

    Returns immediately; the job is picked up by the background processor.
    Repeated requests return the existing job unless it failed.
    """
    try:
        job = await service.request_podcast(
            report_id=report_id,
            template=data.template,
            duration=data.duration,
            triggered_by=data.triggered_by,
        )
    except ReportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ReportNotCompletedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return PodcastResponse.model_validate(job)


@router.get('/reports/{report_id}/podcast', response_model=PodcastResponse)
async def get_podcast(
    report_id: str,
    service: PodcastService = Depends(get_podcast_service),
) -> PodcastResponse:
    """Get podcast details for a report."""
    job = await service.get_podcast_by_report(report_id)
    if not job:
        raise HTTPException(status_code=404, detail=f'No podcast found for report {report_id}')
    return PodcastResponse.model_validate(job)


@router.get('/reports/{report_id}/podcast/status', response_model=PodcastStatusResponse)
async def get_podcast_status(
    report_id: str,
    service: PodcastService = Depends(get_podcast_service),
) -> PodcastStatusResponse:
    """Status, progress percentage and message for a report's podcast."""
    return await service.get_status(report_id)


@router.get('/reports/{report_id}/podcast/download')
async def download_podcast(
    report_id: str,
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Download the finished podcast.

    Raises:
        404: No podcast for the report
        409: Podcast not completed
    """
    try:
        job, path = await service.get_download(report_id)
    except PodcastNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    timestamp_part = job.completed_at.strftime('%Y%m%d-%H%M%S') if job.completed_at else 'podcast'
    filename = f'podcast-{job.template.lower()}-{timestamp_part}.mp3'

    return FileResponse(path=str(path), media_type='audio/mpeg', filename=filename)


@router.get('/reports/{report_id}/podcast/stream')
async def stream_podcast(
    report_id: str,
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Serve the finished podcast inline for in-browser playback.

    Range requests are answered with 206 partial content so players can seek.

    Raises:
        404: No podcast for the report
        409: Podcast not completed
    """
    try:
        _, path = await service.get_download(report_id)
    except PodcastNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return FileResponse(
        path=str(path),
        media_type='audio/mpeg',
        headers={'Cache-Control': 'public, max-age=3600'},
    )


@router.delete('/reports/{report_id}/podcast', status_code=204)
async def delete_podcast(
    report_id: str,
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Delete a report's podcast and its audio files.

    Raises:
        404: No podcast for the report
        409: Podcast is still being generated
    """
    job = await service.get_podcast_by_report(report_id)
    if not job:
        raise HTTPException(status_code=404, detail=f'No podcast found for report {report_id}')

    try:
        await service.delete_podcast(job.id)
    except PodcastNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get('/podcast/estimate', response_model=CostEstimate)
async def get_cost_estimate(
    duration: PodcastDuration = Query(...),
    service: PodcastService = Depends(get_podcast_service),
) -> CostEstimate:
    """Up-front cost estimate for a duration class."""
    return service.estimate_cost(duration)


@router.get('/podcast/templates', response_model=TemplatesResponse)
async def get_templates() -> TemplatesResponse:
    """Available show formats and duration classes."""
    templates = [
        TemplateInfo(
            id=template.value,
            name=definition.name,
            description=definition.description,
            speakers=list(definition.speakers),
            segments=[
                SegmentInfo(type=s.type, title=s.title, word_percent=s.word_percent)
                for s in definition.segments
            ],
        )
        for template, definition in TEMPLATES.items()
    ]
    durations = {
        duration.value: DurationInfo(minutes=config.minutes, word_count=config.word_count)
        for duration, config in DURATION_CONFIG.items()
    }
    return TemplatesResponse(templates=templates, durations=durations)


@router.get('/podcast/processor/status', response_model=ProcessorStatusResponse)
async def get_processor_status(
    processor: JobProcessor = Depends(get_job_processor),
) -> ProcessorStatusResponse:
    return ProcessorStatusResponse(**processor.get_status())


@router.get('/podcast/queue/stats', response_model=QueueStatsResponse)
async def get_queue_stats(
    service: PodcastService = Depends(get_podcast_service),
) -> QueueStatsResponse:
    return QueueStatsResponse(**await service.queue_stats())
