"""
Pydantic schemas for scripts and API request/response validation.
"""
from briefcast.schemas.podcast import (
    Dialogue,
    ScriptSegment,
    Script,
    AudioSegmentResult,
    PodcastCreate,
    PodcastResponse,
    PodcastStatusResponse,
    CostEstimate,
    TemplatesResponse,
    QueueStatsResponse,
    ProcessorStatusResponse,
)

__all__ = [
    'Dialogue',
    'ScriptSegment',
    'Script',
    'AudioSegmentResult',
    'PodcastCreate',
    'PodcastResponse',
    'PodcastStatusResponse',
    'CostEstimate',
    'TemplatesResponse',
    'QueueStatsResponse',
    'ProcessorStatusResponse',
]
