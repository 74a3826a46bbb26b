"""
Assembles synthesized clips into the finished podcast file.

Stages, each consuming the previous stage's file:
    1. concatenate clips, with a pause wherever the speaker changes
    2. mix in background music (optional)
    3. loudness-normalize and transcode to the output format
    4. probe the result and remove intermediate files
"""
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from briefcast.config import (
    BACKGROUND_MUSIC_ENABLED,
    BACKGROUND_MUSIC_PATH,
    BACKGROUND_MUSIC_VOLUME,
    LOUDNESS_TARGET_I,
    LOUDNESS_TARGET_LRA,
    LOUDNESS_TARGET_TP,
    NORMALIZE_AUDIO,
    OUTPUT_BITRATE,
    OUTPUT_CHANNELS,
    OUTPUT_SAMPLE_RATE,
)
from briefcast.exceptions import AssemblyError
from briefcast.schemas.podcast import AudioSegmentResult
from briefcast.services.audio_toolchain import FFmpegToolchain

logger = logging.getLogger(__name__)

FINAL_FILENAME = 'podcast.mp3'


@dataclass
class MixOptions:
    """Post-processing settings for assembly."""
    include_background_music: bool = BACKGROUND_MUSIC_ENABLED
    background_music_path: Optional[Path] = BACKGROUND_MUSIC_PATH
    background_music_volume: float = BACKGROUND_MUSIC_VOLUME
    normalize: bool = NORMALIZE_AUDIO
    loudness_i: float = LOUDNESS_TARGET_I
    loudness_tp: float = LOUDNESS_TARGET_TP
    loudness_lra: float = LOUDNESS_TARGET_LRA
    # format of the synthesized clips; the silence clip must match for copy-mode concat
    clip_sample_rate: int = 24000
    clip_channels: int = 1
    bitrate: str = OUTPUT_BITRATE
    sample_rate: int = OUTPUT_SAMPLE_RATE
    channels: int = OUTPUT_CHANNELS

    def loudnorm_filter(self) -> Optional[str]:
        if not self.normalize:
            return None
        return f'loudnorm=I={self.loudness_i:g}:TP={self.loudness_tp:g}:LRA={self.loudness_lra:g}'


@dataclass
class AssembledPodcast:
    path: str
    duration_seconds: int
    file_size_bytes: int


def build_playlist(segments: Sequence[AudioSegmentResult], silence_path: Path) -> List[Path]:
    """
    Ordered clip list with a silence clip between consecutive lines spoken
    by different speakers.
    """
    playlist: List[Path] = []
    previous_speaker = None

    for segment in segments:
        speaker = segment.speaker_id.lower()
        if previous_speaker is not None and speaker != previous_speaker:
            playlist.append(silence_path)
        playlist.append(Path(segment.file_path))
        previous_speaker = speaker

    return playlist


def render_playlist(paths: Sequence[Path]) -> str:
    """Format paths for the ffmpeg concat demuxer."""
    lines = []
    for path in paths:
        escaped = str(Path(path).resolve()).replace('\\', '/').replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return '\n'.join(lines) + '\n'


def _remove(*paths: Path):
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning('Could not remove temporary file %s: %s', path, e)


class AudioAssembler:
    """Runs the four assembly stages for one job's working directory."""

    def __init__(self, toolchain: FFmpegToolchain, storage_dir: Path):
        self.toolchain = toolchain
        self.storage_dir = Path(storage_dir)

    def job_dir(self, job_id: str) -> Path:
        return self.storage_dir / job_id

    async def concatenate_with_pauses(
        self,
        segments: Sequence[AudioSegmentResult],
        output_path: Path,
        pause_ms: int,
        work_dir: Path,
        options: MixOptions,
    ):
        silence_path = work_dir / 'silence_temp.mp3'
        playlist_path = work_dir / 'concat_list_temp.txt'

        try:
            playlist = build_playlist(segments, silence_path)
            if silence_path in playlist:
                await self.toolchain.generate_silence(
                    pause_ms, silence_path, sample_rate=options.clip_sample_rate, channels=options.clip_channels,
                )
            playlist_path.write_text(render_playlist(playlist), encoding='utf-8')
            await self.toolchain.concat(playlist_path, output_path)
        finally:
            _remove(silence_path, playlist_path)

    async def mix_background_music(self, voice_path: Path, output_path: Path, options: MixOptions) -> Path:
        """
        Mix the music bed under the voice track.

        Returns the path of the stage output; when the music file is
        missing the voice track is passed through unchanged.
        """
        music_path = options.background_music_path
        if not music_path or not Path(music_path).exists():
            logger.warning('Background music not found: %s, skipping mix', music_path)
            return voice_path

        voice_duration = await self.toolchain.probe_duration(voice_path)
        try:
            await self.toolchain.mix_background(
                voice_path, Path(music_path), output_path, options.background_music_volume, voice_duration,
            )
        except AssemblyError:
            _remove(output_path)
            raise
        return output_path

    async def assemble(
        self,
        job_id: str,
        segments: Sequence[AudioSegmentResult],
        pause_ms: int,
        options: Optional[MixOptions] = None,
    ) -> AssembledPodcast:
        """
        Build the final podcast file for a job.

        Raises:
            AssemblyError: any stage failed; no output is left behind
        """
        if not segments:
            raise AssemblyError('No audio segments to assemble', stage='concat')

        options = options or MixOptions()
        work_dir = self.job_dir(job_id)
        work_dir.mkdir(parents=True, exist_ok=True)

        concat_path = work_dir / 'concat_temp.mp3'
        music_path = work_dir / 'with_music_temp.mp3'
        output_path = work_dir / FINAL_FILENAME

        logger.info('Assembling podcast %s from %d segments', job_id, len(segments))

        try:
            # Stage 1
            await self.concatenate_with_pauses(segments, concat_path, pause_ms, work_dir, options)

            # Stage 2
            voice_path = concat_path
            if options.include_background_music:
                voice_path = await self.mix_background_music(concat_path, music_path, options)

            # Stage 3
            await self.toolchain.normalize_and_transcode(
                voice_path,
                output_path,
                bitrate=options.bitrate,
                sample_rate=options.sample_rate,
                channels=options.channels,
                loudnorm=options.loudnorm_filter(),
            )

            # Stage 4
            duration = await self.toolchain.probe_duration(output_path)
            file_size = output_path.stat().st_size
        except Exception:
            _remove(output_path)
            raise
        finally:
            _remove(concat_path, music_path)

        logger.info('Podcast assembled: %s, %.1fs, %d bytes', output_path, duration, file_size)

        return AssembledPodcast(
            path=str(output_path),
            duration_seconds=int(round(duration)),
            file_size_bytes=file_size,
        )

    def delete_job_files(self, job_id: str):
        """Delete a job's entire working directory."""
        job_dir = self.job_dir(job_id)
        if job_dir.exists():
            shutil.rmtree(job_dir, ignore_errors=True)
            logger.info('Deleted podcast files: %s', job_dir)
