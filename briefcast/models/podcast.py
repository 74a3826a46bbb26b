"""
Podcast job model and its state machine.
"""
import uuid
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, Text, DateTime, Integer, Float, JSON
from sqlalchemy.orm import declarative_base

from briefcast.exceptions import InvalidStateError

Base = declarative_base()


class PodcastStatus(str, enum.Enum):
    """Lifecycle states for podcast jobs."""
    PENDING = 'PENDING'
    GENERATING_SCRIPT = 'GENERATING_SCRIPT'
    GENERATING_AUDIO = 'GENERATING_AUDIO'
    MIXING = 'MIXING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'


class PodcastTemplate(str, enum.Enum):
    """Show formats."""
    EXECUTIVE_BRIEF = 'EXECUTIVE_BRIEF'
    STRATEGIC_DEBATE = 'STRATEGIC_DEBATE'
    INDUSTRY_PULSE = 'INDUSTRY_PULSE'


class PodcastDuration(str, enum.Enum):
    """Duration classes, each mapped to a target word count."""
    SHORT = 'SHORT'
    STANDARD = 'STANDARD'
    LONG = 'LONG'


class PodcastTrigger(str, enum.Enum):
    """What caused a podcast to be requested."""
    ON_DEMAND = 'ON_DEMAND'
    EAGER = 'EAGER'
    SCHEDULED = 'SCHEDULED'


IN_PROGRESS_STATUSES = (
    PodcastStatus.GENERATING_SCRIPT,
    PodcastStatus.GENERATING_AUDIO,
    PodcastStatus.MIXING,
)

# Statuses for which a repeated request returns the existing job
REUSABLE_STATUSES = (PodcastStatus.PENDING,) + IN_PROGRESS_STATUSES + (PodcastStatus.COMPLETED,)

ALLOWED_TRANSITIONS = {
    PodcastStatus.PENDING: {PodcastStatus.GENERATING_SCRIPT, PodcastStatus.FAILED},
    PodcastStatus.GENERATING_SCRIPT: {PodcastStatus.GENERATING_AUDIO, PodcastStatus.FAILED},
    PodcastStatus.GENERATING_AUDIO: {PodcastStatus.MIXING, PodcastStatus.FAILED},
    PodcastStatus.MIXING: {PodcastStatus.COMPLETED, PodcastStatus.FAILED},
    PodcastStatus.COMPLETED: set(),
    PodcastStatus.FAILED: set(),
}

# Only the stale-job sweep may move an abandoned job back to the queue
RECOVERY_TRANSITIONS = {status: {PodcastStatus.PENDING} for status in IN_PROGRESS_STATUSES}


def can_transition(current: PodcastStatus, target: PodcastStatus, recovery: bool = False) -> bool:
    """Check whether moving from current to target is legal."""
    if target in ALLOWED_TRANSITIONS[current]:
        return True
    return recovery and target in RECOVERY_TRANSITIONS.get(current, set())


class PodcastJob(Base):
    """
    One podcast generation request for a source report.

    Attributes:
        id: Unique job identifier (UUID)
        report_id: Source report (at most one job per report)
        template: Show format
        duration: Duration class
        status: Current lifecycle status
        script: Generated dialogue script (JSON), null until generated
        audio_segments: Ordered synthesized clip results (JSON)
        final_audio_path: Path to the finished podcast file
        duration_seconds: Length of the finished podcast
        file_size_bytes: Size of the finished podcast
        estimated_cost: Cost estimate computed at creation
        error_message: Error details if failed
        retry_count: Number of failed or abandoned attempts
        stage_started_at: When the current status was entered
    """
    __tablename__ = 'podcast_jobs'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    report_id = Column(String(36), nullable=False, unique=True, index=True)
    template = Column(String(32), nullable=False)
    duration = Column(String(16), nullable=False)
    status = Column(String(20), nullable=False, default=PodcastStatus.PENDING.value, index=True)
    triggered_by = Column(String(16), nullable=False, default=PodcastTrigger.ON_DEMAND.value)
    script = Column(JSON, nullable=True)
    script_tokens = Column(Integer, nullable=True)
    script_generated_at = Column(DateTime, nullable=True)
    audio_segments = Column(JSON, nullable=True)
    audio_segment_count = Column(Integer, nullable=True)
    final_audio_path = Column(Text, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    stage_started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    @property
    def status_enum(self) -> PodcastStatus:
        return PodcastStatus(self.status)

    def transition_to(self, target: PodcastStatus, now: Optional[datetime] = None, recovery: bool = False):
        """
        Move the job to a new status.

        Every status change goes through here so illegal moves
        (e.g. MIXING -> GENERATING_SCRIPT) are rejected outright.

        Raises:
            InvalidStateError: the transition is not allowed
        """
        current = self.status_enum
        if not can_transition(current, target, recovery=recovery):
            raise InvalidStateError(
                f'Illegal podcast transition {current.value} -> {target.value} for job {self.id}'
            )

        now = now or datetime.utcnow()
        self.status = target.value

        if target == PodcastStatus.GENERATING_SCRIPT:
            self.started_at = now
        if target in IN_PROGRESS_STATUSES:
            self.stage_started_at = now
        elif target == PodcastStatus.PENDING:
            self.started_at = None
            self.stage_started_at = None
        elif target == PodcastStatus.COMPLETED:
            self.completed_at = now

    def __repr__(self):
        return f'<PodcastJob {self.id} report={self.report_id} status={self.status}>'
