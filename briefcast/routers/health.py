"""
Health check endpoint.
"""
from pydantic import BaseModel
from fastapi import APIRouter, Depends

from briefcast.config import APP_VERSION
from briefcast.dependencies import get_toolchain, get_job_processor
from briefcast.services.audio_toolchain import FFmpegToolchain
from briefcast.services.job_processor import JobProcessor


router = APIRouter(tags=['health'])


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    ffmpeg_available: bool
    processor_running: bool
    version: str


@router.get('/health', response_model=HealthResponse)
async def health_check(
    toolchain: FFmpegToolchain = Depends(get_toolchain),
    processor: JobProcessor = Depends(get_job_processor),
) -> HealthResponse:
    """
    Check server health status.

    Fast response - no database queries.
    """
    return HealthResponse(
        status='ok',
        ffmpeg_available=toolchain.is_available(),
        processor_running=processor.is_running,
        version=APP_VERSION,
    )
