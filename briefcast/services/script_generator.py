"""
Segment-by-segment podcast script generation.
"""
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from pydantic import ValidationError

from briefcast.exceptions import ScriptGenerationError
from briefcast.formats import (
    TEMPLATES,
    DURATION_CONFIG,
    SegmentDefinition,
    lines_for_words,
    segment_word_targets,
)
from briefcast.models.podcast import PodcastDuration, PodcastTemplate
from briefcast.schemas.podcast import Script, ScriptSegment, ScriptMetadata
from briefcast.services.llm_client import LLMClient
from briefcast.services.prompts import PromptProvider
from briefcast.services.report_source import SourceReport

logger = logging.getLogger(__name__)

# Below this share of the word budget a script is flagged as short
MIN_WORD_RATIO = 0.8

# Characters of each earlier segment carried into the continuity summary
SUMMARY_CHARS_PER_SEGMENT = 400

_CODE_FENCE = re.compile(r'^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$', re.DOTALL)


@dataclass
class ParsedSegment:
    segment: ScriptSegment


@dataclass
class ParseFailure:
    reason: str
    raw: str


ParseResult = Union[ParsedSegment, ParseFailure]


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` or ```json fence if present."""
    text = text.strip()
    match = _CODE_FENCE.match(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(text: str) -> Optional[dict]:
    """First complete JSON object embedded in text, or None."""
    decoder = json.JSONDecoder()
    start = text.find('{')
    while start != -1:
        try:
            data, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        start = text.find('{', start + 1)
    return None


def parse_segment_reply(text: str, definition: SegmentDefinition) -> ParseResult:
    """
    Parse one segment from a model reply.

    The reply must contain a JSON object shaped
    {type, title, dialogues: [{speakerId, text, notes?}]}, optionally fenced
    or surrounded by prose. The first complete object is used. Missing type
    or title fall back to the segment definition.
    """
    body = strip_code_fence(text or '')
    if not body:
        return ParseFailure('empty reply', text)

    data = extract_json_object(body)
    if data is None:
        return ParseFailure('no JSON object found in reply', text)

    data.setdefault('type', definition.type)
    data.setdefault('title', definition.title)

    try:
        segment = ScriptSegment.model_validate(data)
    except ValidationError as e:
        return ParseFailure(f'segment does not match schema: {e.error_count()} error(s)', text)

    if not segment.dialogues:
        return ParseFailure('segment has no dialogues', text)

    return ParsedSegment(segment)


def summarize_segments(segments: List[ScriptSegment]) -> str:
    """Plain-text recap of earlier segments for continuity."""
    if not segments:
        return 'This is the first segment.'

    lines = []
    for number, segment in enumerate(segments, start=1):
        spoken = ' '.join(f'{d.speaker_id}: {d.text}' for d in segment.dialogues)
        if len(spoken) > SUMMARY_CHARS_PER_SEGMENT:
            spoken = spoken[:SUMMARY_CHARS_PER_SEGMENT].rsplit(' ', 1)[0] + ' ...'
        lines.append(f'{number}. {segment.title} ({segment.type}): {spoken}')
    return '\n'.join(lines)


class ScriptGenerator:
    """
    Writes a podcast script one template segment at a time.

    Each segment gets its share of the duration's word budget; earlier
    segments are summarized into the prompt so the dialogue flows.
    """

    def __init__(self, llm: LLMClient, prompts: PromptProvider):
        self.llm = llm
        self.prompts = prompts

    def build_segment_prompt(
        self,
        source: SourceReport,
        template: PodcastTemplate,
        definition: SegmentDefinition,
        index: int,
        target_words: int,
        previous: List[ScriptSegment],
    ) -> str:
        template_def = TEMPLATES[template]
        target_lines = lines_for_words(target_words)
        speakers = ', '.join(template_def.speakers)

        return f"""Write segment {index + 1} of {len(template_def.segments)} of a podcast based on the following report.

REPORT TITLE: {source.title}

REPORT CONTENT:
{source.content}

SEGMENTS SO FAR:
{summarize_segments(previous)}

THIS SEGMENT:
- Type: {definition.type}
- Title: {definition.title}
- Purpose: {definition.description}
- Target length: about {target_words} words across roughly {target_lines} dialogue lines
- Speakers: {speakers} (use these ids in lowercase)

Continue naturally from the segments so far without repeating them.
Each line should be 20-35 words (1-3 sentences).

OUTPUT FORMAT (a single JSON object, no other text):
{{
  "type": "{definition.type}",
  "title": "{definition.title}",
  "dialogues": [
    {{"speakerId": "speaker_id", "text": "What they say", "notes": "optional tone hint"}}
  ]
}}"""

    async def generate(self, job, source: SourceReport) -> Script:
        """
        Generate the full script for a job.

        Raises:
            ScriptGenerationError: model failure or unparseable reply
        """
        template = PodcastTemplate(job.template)
        duration = PodcastDuration(job.duration)
        template_def = TEMPLATES[template]
        total_target = DURATION_CONFIG[duration].word_count
        targets = segment_word_targets(template, duration)

        system_prompt = self.prompts.get_system_prompt(template)
        temperature = self.prompts.get_temperature(template)

        segments: List[ScriptSegment] = []
        total_tokens = 0
        model_name = ''

        for index, (definition, target_words) in enumerate(zip(template_def.segments, targets)):
            user_prompt = self.build_segment_prompt(source, template, definition, index, target_words, segments)
            max_tokens = math.ceil(target_words * 1.5) + 500

            try:
                completion = await self.llm.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                raise ScriptGenerationError(
                    f'Language model failed on segment {index + 1} ({definition.title}): {e}'
                ) from e

            result = parse_segment_reply(completion.content, definition)
            if isinstance(result, ParseFailure):
                logger.error(
                    'Unparseable reply for segment %d of job %s: %s. First 500 chars: %s',
                    index + 1, job.id, result.reason, result.raw[:500],
                )
                raise ScriptGenerationError(
                    f'Failed to parse segment {index + 1} ({definition.title}): {result.reason}'
                )

            segments.append(result.segment)
            total_tokens += completion.total_tokens
            model_name = completion.model or model_name

            logger.info(
                'Job %s segment %d/%d generated: %d words (target %d)',
                job.id, index + 1, len(targets), result.segment.word_count(), target_words,
            )

        script = Script(
            title=source.title,
            description=f'{template_def.name}: {source.title}',
            segments=segments,
            metadata=ScriptMetadata(model=model_name, tokens=total_tokens, generated_at=datetime.utcnow()),
        )

        actual_words = script.word_count()
        if actual_words < total_target * MIN_WORD_RATIO:
            logger.warning(
                'Script for job %s is short: %d words against a target of %d',
                job.id, actual_words, total_target,
            )

        return script
