"""
Construction of the service graph.

Services are built once at startup and passed to each other explicitly,
so tests can assemble an isolated graph with fake collaborators.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from briefcast.config import PODCAST_DIR, PODCAST_MAX_CONCURRENT_TTS, PROMPTS_FILE
from briefcast.services.audio_assembler import AudioAssembler, MixOptions
from briefcast.services.audio_toolchain import FFmpegToolchain
from briefcast.services.job_processor import DeliveryHook, JobProcessor
from briefcast.services.llm_client import LLMClient, OpenAILLMClient
from briefcast.services.podcast_service import PodcastService
from briefcast.services.prompts import PromptProvider, select_prompt_provider
from briefcast.services.report_source import ReportSource
from briefcast.services.script_generator import ScriptGenerator
from briefcast.services.tts_service import OpenAISpeechSynthesizer, TTSService, VoiceSynthesizer


@dataclass
class Services:
    toolchain: FFmpegToolchain
    podcast_service: PodcastService
    job_processor: JobProcessor

    async def close(self):
        """Close the provider clients. Call after the processor has stopped."""
        await self.podcast_service.script_generator.llm.close()
        await self.podcast_service.tts_service.synthesizer.close()


def build_services(
    session_factory: async_sessionmaker,
    storage_dir: Path = PODCAST_DIR,
    llm: Optional[LLMClient] = None,
    synthesizer: Optional[VoiceSynthesizer] = None,
    toolchain: Optional[FFmpegToolchain] = None,
    prompts: Optional[PromptProvider] = None,
    mix_options: Optional[MixOptions] = None,
    max_concurrent_tts: int = PODCAST_MAX_CONCURRENT_TTS,
    delivery: Optional[DeliveryHook] = None,
    **processor_options,
) -> Services:
    """Wire the orchestrator and processor with real or supplied collaborators."""
    toolchain = toolchain or FFmpegToolchain()
    prompts = prompts or select_prompt_provider(PROMPTS_FILE)

    podcast_service = PodcastService(
        session_factory=session_factory,
        report_source=ReportSource(session_factory),
        script_generator=ScriptGenerator(llm or OpenAILLMClient(), prompts),
        tts_service=TTSService(synthesizer or OpenAISpeechSynthesizer(), storage_dir, max_concurrent_tts),
        assembler=AudioAssembler(toolchain, storage_dir),
        mix_options=mix_options,
    )
    job_processor = JobProcessor(podcast_service, delivery=delivery, **processor_options)

    return Services(toolchain=toolchain, podcast_service=podcast_service, job_processor=job_processor)
