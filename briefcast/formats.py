"""
Show formats, duration classes, voice profiles and status progress.
"""
import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from briefcast.models.podcast import PodcastDuration, PodcastStatus, PodcastTemplate

# Average dialogue line length used to size a segment
WORDS_PER_LINE = 30

# Average speaking rate at 1.0x
WORDS_PER_MINUTE = 155


@dataclass(frozen=True)
class DurationConfig:
    minutes: int
    word_count: int


DURATION_CONFIG: Dict[PodcastDuration, DurationConfig] = {
    PodcastDuration.SHORT: DurationConfig(minutes=5, word_count=775),
    PodcastDuration.STANDARD: DurationConfig(minutes=12, word_count=1860),
    PodcastDuration.LONG: DurationConfig(minutes=18, word_count=2790),
}


@dataclass(frozen=True)
class SegmentDefinition:
    """One fixed section of a template and its share of the word budget."""
    type: str
    title: str
    word_percent: float
    description: str


@dataclass(frozen=True)
class TemplateDefinition:
    name: str
    description: str
    speakers: Tuple[str, ...]
    segments: Tuple[SegmentDefinition, ...]


TEMPLATES: Dict[PodcastTemplate, TemplateDefinition] = {
    PodcastTemplate.EXECUTIVE_BRIEF: TemplateDefinition(
        name='Executive Brief',
        description='Two hosts walk business leaders through the key findings.',
        speakers=('sarah', 'marcus'),
        segments=(
            SegmentDefinition('intro', 'Opening', 0.10, 'Hook the listener and introduce the topic'),
            SegmentDefinition('content', 'Overview', 0.25, 'Summarize the most important facts'),
            SegmentDefinition('analysis', 'Deep Dive', 0.30, 'Explore market context and implications'),
            SegmentDefinition('analysis', 'Key Insights', 0.25, 'Draw out the insights that matter most'),
            SegmentDefinition('outro', 'Takeaways', 0.10, 'Close with actionable takeaways'),
        ),
    ),
    PodcastTemplate.STRATEGIC_DEBATE: TemplateDefinition(
        name='Strategic Debate',
        description='A moderator and two advisors debate the strategic angles.',
        speakers=('jordan', 'morgan', 'taylor'),
        segments=(
            SegmentDefinition('intro', 'Opening', 0.08, 'Moderator frames the debate'),
            SegmentDefinition('content', 'Topic Setup', 0.14, 'Lay out the facts both sides work from'),
            SegmentDefinition('analysis', 'Debate Round 1', 0.26, 'Contrasting views on the core question'),
            SegmentDefinition('analysis', 'Debate Round 2', 0.26, 'Challenge and defend with evidence'),
            SegmentDefinition('analysis', 'Synthesis', 0.18, 'Find common ground and open questions'),
            SegmentDefinition('outro', 'Closing', 0.08, 'Moderator wraps up'),
        ),
    ),
    PodcastTemplate.INDUSTRY_PULSE: TemplateDefinition(
        name='Industry Pulse',
        description='A fast-paced news show covering the top stories.',
        speakers=('riley', 'casey', 'drew'),
        segments=(
            SegmentDefinition('intro', 'Opening', 0.10, 'Anchor leads with the biggest story'),
            SegmentDefinition('content', 'Headline 1', 0.25, 'First story with quick analysis'),
            SegmentDefinition('content', 'Headline 2', 0.25, 'Second story with quick analysis'),
            SegmentDefinition('content', 'Headline 3', 0.25, 'Third story with quick analysis'),
            SegmentDefinition('outro', 'Wrap Up', 0.15, 'Forward-looking predictions'),
        ),
    ),
}


@dataclass(frozen=True)
class VoiceProfile:
    voice_id: str
    speed: float
    description: str = ''


VOICE_PROFILES: Dict[str, VoiceProfile] = {
    # Executive Brief hosts
    'sarah': VoiceProfile('nova', 1.0, 'Professional host'),
    'marcus': VoiceProfile('echo', 1.0, 'Industry analyst'),
    # Strategic Debate hosts
    'jordan': VoiceProfile('shimmer', 1.0, 'Neutral moderator'),
    'morgan': VoiceProfile('onyx', 1.05, 'Strategist'),
    'taylor': VoiceProfile('fable', 1.0, 'Market analyst'),
    # Industry Pulse hosts
    'riley': VoiceProfile('nova', 1.1, 'News anchor'),
    'casey': VoiceProfile('echo', 1.0, 'Reporter'),
    'drew': VoiceProfile('alloy', 1.0, 'Reporter'),
}

DEFAULT_VOICE_PROFILE = VoiceProfile('nova', 1.0, 'Fallback voice')


def voice_for_speaker(speaker_id: str) -> VoiceProfile:
    """Resolve a speaker to a voice profile, falling back to the default voice."""
    return VOICE_PROFILES.get((speaker_id or '').lower(), DEFAULT_VOICE_PROFILE)


STATUS_PROGRESS: Dict[PodcastStatus, Tuple[int, str]] = {
    PodcastStatus.PENDING: (0, 'Queued for processing'),
    PodcastStatus.GENERATING_SCRIPT: (25, 'Generating podcast script...'),
    PodcastStatus.GENERATING_AUDIO: (50, 'Converting to speech...'),
    PodcastStatus.MIXING: (85, 'Mixing audio tracks...'),
    PodcastStatus.COMPLETED: (100, 'Podcast ready'),
    PodcastStatus.FAILED: (0, 'Generation failed'),
}


def segment_word_targets(template: PodcastTemplate, duration: PodcastDuration) -> List[int]:
    """Per-segment word targets for a template at a duration class."""
    total = DURATION_CONFIG[duration].word_count
    # round first so float noise (1860 * 0.1 = 186.00000000000003) does not add a word
    return [math.ceil(round(total * segment.word_percent, 6)) for segment in TEMPLATES[template].segments]


def lines_for_words(target_words: int) -> int:
    """Approximate number of dialogue lines needed to reach a word target."""
    return math.ceil(target_words / WORDS_PER_LINE)
