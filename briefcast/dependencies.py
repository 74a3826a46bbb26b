"""
FastAPI dependencies resolving the services built at startup.

Usage:
    @router.get('/items')
    async def get_items(service: PodcastService = Depends(get_podcast_service)):
        ...
"""
from fastapi import Request

from briefcast.services.audio_toolchain import FFmpegToolchain
from briefcast.services.job_processor import JobProcessor
from briefcast.services.podcast_service import PodcastService


def get_podcast_service(request: Request) -> PodcastService:
    return request.app.state.services.podcast_service


def get_job_processor(request: Request) -> JobProcessor:
    return request.app.state.services.job_processor


def get_toolchain(request: Request) -> FFmpegToolchain:
    return request.app.state.services.toolchain
