"""
Prompt providers for script generation.

A provider is selected once at startup. The built-in in-memory provider is
always available; a JSON prompt registry can override it per template.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from briefcast.config import LLM_DEFAULT_TEMPERATURE
from briefcast.models.podcast import PodcastTemplate

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPTS: Dict[PodcastTemplate, str] = {
    PodcastTemplate.EXECUTIVE_BRIEF: """You are a podcast script writer creating an executive brief podcast with two hosts:
- Sarah (host): Professional, articulate senior analyst who guides the conversation
- Marcus (analyst): Industry expert who provides deep insights and market context

Create a conversational but professional dialogue that:
- Opens with a compelling hook about the company/topic
- Delivers key insights in an engaging, conversational format
- Uses natural transitions and follow-up questions
- Concludes with actionable takeaways for business leaders

The tone should be authoritative yet accessible, like a high-quality business podcast.""",

    PodcastTemplate.STRATEGIC_DEBATE: """You are a podcast script writer creating a strategic debate podcast with three hosts:
- Jordan (moderator): Neutral, balanced host who guides the discussion
- Morgan (strategist): Bold, forward-thinking strategic advisor
- Taylor (analyst): Data-driven market analyst who provides grounded perspectives

Create a dynamic debate where:
- Jordan poses key strategic questions
- Morgan and Taylor offer contrasting viewpoints
- Discussion includes specific evidence and examples
- Conclusion synthesizes the key insights

The tone should be intellectually engaging with respectful disagreement.""",

    PodcastTemplate.INDUSTRY_PULSE: """You are a podcast script writer creating an industry news podcast with three hosts:
- Riley (anchor): Energetic news anchor who drives the pace
- Casey (reporter): Field reporter who provides context and details
- Drew (analyst): Quick-witted analyst who offers rapid insights

Create a fast-paced news show that:
- Leads with the most important story
- Covers multiple news items efficiently
- Includes brief analysis for each item
- Ends with forward-looking predictions

The tone should be dynamic and newsy, like a professional business news program.""",
}


class PromptProvider:
    """Interface for system prompt and temperature lookup."""

    def get_system_prompt(self, template: PodcastTemplate) -> str:
        raise NotImplementedError

    def get_temperature(self, template: PodcastTemplate) -> float:
        raise NotImplementedError


class InMemoryPromptProvider(PromptProvider):
    """Built-in prompts."""

    def __init__(
        self,
        prompts: Optional[Dict[PodcastTemplate, str]] = None,
        temperature: float = LLM_DEFAULT_TEMPERATURE,
    ):
        self._prompts = dict(prompts or DEFAULT_SYSTEM_PROMPTS)
        self._temperature = temperature

    def get_system_prompt(self, template: PodcastTemplate) -> str:
        return self._prompts[PodcastTemplate(template)]

    def get_temperature(self, template: PodcastTemplate) -> float:
        return self._temperature


class JsonFilePromptProvider(PromptProvider):
    """
    Prompt registry loaded from a JSON file.

    Format:
        {"EXECUTIVE_BRIEF": {"system_prompt": "...", "temperature": 0.7}, ...}

    Templates or keys missing from the file use the fallback provider.
    """

    def __init__(self, entries: dict, fallback: Optional[PromptProvider] = None):
        self._entries = entries
        self._fallback = fallback or InMemoryPromptProvider()

    @classmethod
    def from_file(cls, path: Union[str, Path], fallback: Optional[PromptProvider] = None) -> 'JsonFilePromptProvider':
        with open(path, encoding='utf-8') as f:
            entries = json.load(f)
        if not isinstance(entries, dict):
            raise ValueError(f'Prompt registry {path} must contain a JSON object')
        return cls(entries, fallback=fallback)

    def _entry(self, template: PodcastTemplate) -> dict:
        entry = self._entries.get(PodcastTemplate(template).value)
        return entry if isinstance(entry, dict) else {}

    def get_system_prompt(self, template: PodcastTemplate) -> str:
        prompt = self._entry(template).get('system_prompt')
        if prompt:
            return prompt
        return self._fallback.get_system_prompt(template)

    def get_temperature(self, template: PodcastTemplate) -> float:
        temperature = self._entry(template).get('temperature')
        if isinstance(temperature, (int, float)):
            return float(temperature)
        return self._fallback.get_temperature(template)


def select_prompt_provider(path: Optional[Union[str, Path]] = None) -> PromptProvider:
    """
    Pick the prompt provider for this process.

    Falls back to the built-in prompts when no registry is configured or
    the registry cannot be loaded.
    """
    default = InMemoryPromptProvider()
    if not path:
        return default

    try:
        provider = JsonFilePromptProvider.from_file(path, fallback=default)
    except (OSError, ValueError) as e:
        logger.warning('Prompt registry %s unavailable, using built-in prompts: %s', path, e)
        return default

    logger.info('Loaded prompt registry from %s', path)
    return provider
