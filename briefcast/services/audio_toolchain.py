"""
Thin async wrapper around the ffmpeg and ffprobe executables.
"""
import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from briefcast.config import FFMPEG_PATH, FFPROBE_PATH
from briefcast.exceptions import AssemblyError

logger = logging.getLogger(__name__)

# Lines of stderr kept in error messages
STDERR_TAIL_LINES = 8


class FFmpegToolchain:
    """Runs ffmpeg/ffprobe as subprocesses without blocking the event loop."""

    def __init__(self, ffmpeg_path: str = FFMPEG_PATH, ffprobe_path: str = FFPROBE_PATH):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    async def _run(self, args: List[str], stage: str) -> str:
        logger.debug('%s command: %s', stage, ' '.join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AssemblyError(f'{stage}: could not start {args[0]}: {e}', stage=stage) from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            tail = '\n'.join(stderr.decode(errors='replace').strip().splitlines()[-STDERR_TAIL_LINES:])
            raise AssemblyError(f'{stage}: {args[0]} exited with {process.returncode}: {tail}', stage=stage)

        return stdout.decode(errors='replace')

    async def _ffmpeg(self, args: List[str], stage: str) -> str:
        return await self._run([self.ffmpeg_path, '-hide_banner', '-loglevel', 'error', '-y'] + args, stage=stage)

    async def generate_silence(self, duration_ms: int, output_path: Path, sample_rate: int = 44100, channels: int = 2):
        """Write a silent mp3 clip."""
        layout = 'stereo' if channels == 2 else 'mono'
        await self._ffmpeg([
            '-f', 'lavfi',
            '-i', f'anullsrc=r={sample_rate}:cl={layout}',
            '-t', f'{duration_ms / 1000:.3f}',
            '-c:a', 'libmp3lame',
            str(output_path),
        ], stage='silence')

    async def concat(self, playlist_path: Path, output_path: Path):
        """Join the clips listed in a concat-demuxer playlist without re-encoding."""
        await self._ffmpeg([
            '-f', 'concat',
            '-safe', '0',
            '-i', str(playlist_path),
            '-c', 'copy',
            str(output_path),
        ], stage='concat')

    async def mix_background(self, voice_path: Path, music_path: Path, output_path: Path, volume: float, duration: float):
        """Loop and trim music to the voice track's length, attenuate it and mix both."""
        await self._ffmpeg([
            '-i', str(voice_path),
            '-i', str(music_path),
            '-filter_complex',
            f'[1:a]aloop=loop=-1:size=2e+09,atrim=0:{duration:.3f},volume={volume}[bg];'
            f'[0:a][bg]amix=inputs=2:duration=first:dropout_transition=2[outa]',
            '-map', '[outa]',
            '-c:a', 'libmp3lame',
            str(output_path),
        ], stage='mix')

    async def normalize_and_transcode(
        self,
        input_path: Path,
        output_path: Path,
        bitrate: str,
        sample_rate: int,
        channels: int,
        loudnorm: Optional[str] = None,
    ):
        """Optionally apply a loudnorm filter, then encode the final mp3."""
        args = ['-i', str(input_path)]
        if loudnorm:
            args += ['-af', loudnorm]
        args += [
            '-c:a', 'libmp3lame',
            '-b:a', bitrate,
            '-ar', str(sample_rate),
            '-ac', str(channels),
            str(output_path),
        ]
        await self._ffmpeg(args, stage='normalize')

    async def probe_duration(self, path: Path) -> float:
        """Duration of an audio file in seconds."""
        output = await self._run([
            self.ffprobe_path,
            '-v', 'error',
            '-show_entries', 'format=duration',
            '-of', 'json',
            str(path),
        ], stage='probe')

        try:
            return float(json.loads(output)['format']['duration'])
        except (ValueError, KeyError, TypeError) as e:
            raise AssemblyError(f'probe: unreadable duration for {path}: {e}', stage='probe') from e

    def is_available(self) -> bool:
        return shutil.which(self.ffmpeg_path) is not None and shutil.which(self.ffprobe_path) is not None
