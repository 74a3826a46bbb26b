"""
Pydantic schemas for podcast scripts and API operations.
"""
from datetime import datetime
from typing import Optional, List, Dict

from pydantic import BaseModel, Field, ConfigDict

from briefcast.models.podcast import PodcastTemplate, PodcastDuration, PodcastTrigger


class Dialogue(BaseModel):
    """One speaker's line. Notes are delivery hints only."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    speaker_id: str = Field(..., alias='speakerId', min_length=1)
    text: str = Field(..., min_length=1)
    notes: Optional[str] = None


class ScriptSegment(BaseModel):
    """A titled section of the script."""
    model_config = ConfigDict(frozen=True)

    type: str
    title: str
    dialogues: List[Dialogue]

    def word_count(self) -> int:
        return sum(len(d.text.split()) for d in self.dialogues)


class ScriptMetadata(BaseModel):
    """How a script was produced."""
    model_config = ConfigDict(frozen=True)

    model: str
    tokens: int
    generated_at: datetime


class Script(BaseModel):
    """Complete dialogue script for one podcast."""
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ''
    segments: List[ScriptSegment]
    metadata: Optional[ScriptMetadata] = None

    def dialogues(self) -> List[Dialogue]:
        return [dialogue for segment in self.segments for dialogue in segment.dialogues]

    def word_count(self) -> int:
        return sum(segment.word_count() for segment in self.segments)


class AudioSegmentResult(BaseModel):
    """A synthesized clip for one dialogue line."""
    model_config = ConfigDict(populate_by_name=True)

    index: int
    speaker_id: str = Field(..., alias='speakerId')
    text: str
    file_path: str
    duration: float  # seconds (estimated)
    file_size: int


class PodcastCreate(BaseModel):
    """Schema for requesting a podcast for a report."""
    template: PodcastTemplate = Field(..., description='Show format')
    duration: PodcastDuration = Field(..., description='Target duration class')
    triggered_by: PodcastTrigger = Field(PodcastTrigger.ON_DEMAND, description='What requested the podcast')


class PodcastResponse(BaseModel):
    """Schema for podcast job response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    report_id: str
    template: str
    duration: str
    status: str
    triggered_by: str
    script: Optional[dict]
    audio_segment_count: Optional[int]
    final_audio_path: Optional[str]
    duration_seconds: Optional[int]
    file_size_bytes: Optional[int]
    estimated_cost: Optional[float]
    error_message: Optional[str]
    retry_count: int
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    expires_at: Optional[datetime]


class PodcastStatusResponse(BaseModel):
    """Status surface for polling clients."""
    status: str
    progress: int
    message: str
    error: Optional[str] = None


class ScriptCostEstimate(BaseModel):
    tokens: int
    cost: float


class TTSCostEstimate(BaseModel):
    characters: int
    cost: float


class CostEstimate(BaseModel):
    """Up-front generation cost estimate for a duration class."""
    script_generation: ScriptCostEstimate
    tts_generation: TTSCostEstimate
    total_cost: float
    breakdown: str


class SegmentInfo(BaseModel):
    type: str
    title: str
    word_percent: float


class TemplateInfo(BaseModel):
    id: str
    name: str
    description: str
    speakers: List[str]
    segments: List[SegmentInfo]


class DurationInfo(BaseModel):
    minutes: int
    word_count: int


class TemplatesResponse(BaseModel):
    templates: List[TemplateInfo]
    durations: Dict[str, DurationInfo]


class QueueStatsResponse(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
    total: int


class ProcessorStatusResponse(BaseModel):
    is_running: bool
    active_jobs: int
    active_job_ids: List[str]
    poll_interval_seconds: float
    max_concurrent: int
