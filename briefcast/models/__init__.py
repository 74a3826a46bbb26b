"""
SQLAlchemy models.
"""
from briefcast.models.podcast import (
    Base,
    PodcastJob,
    PodcastStatus,
    PodcastTemplate,
    PodcastDuration,
    PodcastTrigger,
)
from briefcast.models.report import Report

__all__ = [
    'Base',
    'PodcastJob',
    'PodcastStatus',
    'PodcastTemplate',
    'PodcastDuration',
    'PodcastTrigger',
    'Report',
]
