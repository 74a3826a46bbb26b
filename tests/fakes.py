"""
Fake collaborators for the podcast pipeline.
"""
import re
from pathlib import Path
from typing import List, Optional

from briefcast.exceptions import AssemblyError
from briefcast.services.audio_toolchain import FFmpegToolchain
from briefcast.services.llm_client import LLMClient, LLMCompletion
from briefcast.services.tts_service import VoiceSynthesizer


class FakeLLM(LLMClient):
    """
    Answers segment prompts with well-formed JSON.

    Writes as many lines as the prompt asks for, words_per_line words each,
    alternating between the first two listed speakers.
    """

    def __init__(self, words_per_line: int = 30, reply: Optional[str] = None, error: Optional[Exception] = None):
        self.words_per_line = words_per_line
        self.reply = reply
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, system_prompt, user_prompt, temperature, max_tokens):
        self.calls.append({
            'system_prompt': system_prompt,
            'user_prompt': user_prompt,
            'temperature': temperature,
            'max_tokens': max_tokens,
        })
        if self.error:
            raise self.error
        if self.reply is not None:
            return LLMCompletion(content=self.reply, model='fake-model', total_tokens=10)

        lines = int(re.search(r'roughly (\d+) dialogue lines', user_prompt).group(1))
        title = re.search(r'- Title: (.+)', user_prompt).group(1).strip()
        segment_type = re.search(r'- Type: (.+)', user_prompt).group(1).strip()
        speakers = re.search(r'- Speakers: ([a-z, ]+) \(', user_prompt).group(1).split(', ')

        dialogues = []
        for i in range(lines):
            speaker = speakers[i % 2]
            text = ' '.join(['word'] * self.words_per_line)
            dialogues.append(f'{{"speakerId": "{speaker}", "text": "{text}"}}')

        content = (
            '```json\n'
            f'{{"type": "{segment_type}", "title": "{title}", "dialogues": [{", ".join(dialogues)}]}}\n'
            '```'
        )
        return LLMCompletion(content=content, model='fake-model', total_tokens=100)


class FakeSynthesizer(VoiceSynthesizer):
    """Writes a small placeholder clip per line."""

    def __init__(self, fail_on_text: Optional[str] = None):
        self.fail_on_text = fail_on_text
        self.calls: List[tuple] = []

    async def synthesize(self, text, voice_id, speed, output_path: Path) -> int:
        self.calls.append((text, voice_id, speed))
        if self.fail_on_text and self.fail_on_text in text:
            raise RuntimeError('provider rejected the request')
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(f'[{voice_id}]'.encode())
        return output_path.stat().st_size


class FakeToolchain(FFmpegToolchain):
    """
    Byte-level stand-in for ffmpeg.

    concat joins file contents, mixing appends the music bytes, transcoding
    copies. This makes stage outputs comparable in tests.
    """

    def __init__(self, duration: float = 312.4, fail_stage: Optional[str] = None):
        super().__init__(ffmpeg_path='ffmpeg', ffprobe_path='ffprobe')
        self.duration = duration
        self.fail_stage = fail_stage
        self.calls: List[tuple] = []
        self.playlists: List[str] = []

    def _maybe_fail(self, stage):
        if self.fail_stage == stage:
            raise AssemblyError(f'{stage}: ffmpeg exited with 1: boom', stage=stage)

    async def generate_silence(self, duration_ms, output_path, sample_rate=44100, channels=2):
        self.calls.append(('silence', duration_ms))
        self._maybe_fail('silence')
        Path(output_path).write_bytes(b'<pause>')

    async def concat(self, playlist_path, output_path):
        self.calls.append(('concat', str(playlist_path)))
        text = Path(playlist_path).read_text()
        self.playlists.append(text)
        self._maybe_fail('concat')
        data = b''
        for line in text.splitlines():
            data += Path(line[len("file '"):-1]).read_bytes()
        Path(output_path).write_bytes(data)

    async def mix_background(self, voice_path, music_path, output_path, volume, duration):
        self.calls.append(('mix', volume, duration))
        self._maybe_fail('mix')
        Path(output_path).write_bytes(Path(voice_path).read_bytes() + b'+music')

    async def normalize_and_transcode(self, input_path, output_path, bitrate, sample_rate, channels, loudnorm=None):
        self.calls.append(('normalize', bitrate, sample_rate, channels, loudnorm))
        self._maybe_fail('normalize')
        Path(output_path).write_bytes(Path(input_path).read_bytes())

    async def probe_duration(self, path):
        self.calls.append(('probe', str(path)))
        self._maybe_fail('probe')
        return self.duration

    def is_available(self):
        return True

    def stages(self):
        return [call[0] for call in self.calls]
