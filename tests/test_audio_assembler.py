"""
Audio assembly tests.

Tests for playlist building, the four assembly stages and temporary file
handling, using a byte-level fake toolchain. A few toolchain tests run
real subprocesses that need no ffmpeg install.
"""
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from briefcast.exceptions import AssemblyError
from briefcast.schemas.podcast import AudioSegmentResult
from briefcast.services.audio_assembler import (
    FINAL_FILENAME,
    AudioAssembler,
    MixOptions,
    build_playlist,
    render_playlist,
)
from briefcast.services.audio_toolchain import FFmpegToolchain

from fakes import FakeToolchain


def make_segments(job_dir: Path, speakers):
    """Write one clip per speaker and return the segment results."""
    segments_dir = job_dir / 'segments'
    segments_dir.mkdir(parents=True, exist_ok=True)

    segments = []
    for index, speaker in enumerate(speakers):
        path = segments_dir / f'segment_{index:04d}_{speaker}.mp3'
        path.write_bytes(f'<{speaker}{index}>'.encode())
        segments.append(AudioSegmentResult(
            index=index,
            speaker_id=speaker,
            text=f'line {index}',
            file_path=str(path),
            duration=1.0,
            file_size=path.stat().st_size,
        ))
    return segments


def options(**overrides):
    values = dict(include_background_music=False, normalize=True)
    values.update(overrides)
    return MixOptions(**values)


class TestPlaylist:

    def test_pause_only_between_different_speakers(self, tmp_path):
        """Test [A, A, B, A] gets exactly two pauses."""
        segments = make_segments(tmp_path, ['a', 'a', 'b', 'a'])
        silence = tmp_path / 'silence.mp3'

        playlist = build_playlist(segments, silence)

        assert playlist.count(silence) == 2
        assert playlist == [
            Path(segments[0].file_path),
            Path(segments[1].file_path),
            silence,
            Path(segments[2].file_path),
            silence,
            Path(segments[3].file_path),
        ]

    def test_single_speaker_has_no_pauses(self, tmp_path):
        segments = make_segments(tmp_path, ['a', 'a', 'a'])
        silence = tmp_path / 'silence.mp3'

        assert silence not in build_playlist(segments, silence)

    def test_speaker_case_does_not_add_pauses(self, tmp_path):
        segments = make_segments(tmp_path, ['Sarah', 'sarah', 'SARAH', 'marcus'])
        silence = tmp_path / 'silence.mp3'

        assert build_playlist(segments, silence).count(silence) == 1

    def test_render_escapes_quotes(self, tmp_path):
        path = tmp_path / "it's.mp3"
        rendered = render_playlist([path])
        assert rendered == f"file '{str(tmp_path.resolve())}/it'\\''s.mp3'\n"


class TestAssemble:
    """Tests for AudioAssembler.assemble."""

    @pytest.mark.asyncio
    async def test_assembles_with_pauses(self, tmp_path):
        toolchain = FakeToolchain(duration=312.4)
        assembler = AudioAssembler(toolchain, tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a', 'a', 'b', 'a'])

        result = await assembler.assemble('job-1', segments, 500, options())

        output = tmp_path / 'job-1' / FINAL_FILENAME
        assert result.path == str(output)
        assert output.read_bytes() == b'<a0><a1><pause><b2><pause><a3>'
        assert result.duration_seconds == 312
        assert isinstance(result.duration_seconds, int)
        assert result.file_size_bytes == output.stat().st_size
        assert toolchain.stages() == ['silence', 'concat', 'normalize', 'probe']

    @pytest.mark.asyncio
    async def test_normalize_settings(self, tmp_path):
        toolchain = FakeToolchain()
        assembler = AudioAssembler(toolchain, tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a'])

        await assembler.assemble('job-1', segments, 500, options(bitrate='128k'))
        await assembler.assemble('job-1', segments, 500, options(normalize=False))

        normalize_calls = [call for call in toolchain.calls if call[0] == 'normalize']
        assert normalize_calls[0] == ('normalize', '128k', 44100, 2, 'loudnorm=I=-16:TP=-1.5:LRA=11')
        assert normalize_calls[1][4] is None

    @pytest.mark.asyncio
    async def test_silence_skipped_for_single_speaker(self, tmp_path):
        toolchain = FakeToolchain()
        assembler = AudioAssembler(toolchain, tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a', 'a'])

        await assembler.assemble('job-1', segments, 500, options())

        assert 'silence' not in toolchain.stages()

    @pytest.mark.asyncio
    async def test_temporary_files_removed(self, tmp_path):
        music = tmp_path / 'music.mp3'
        music.write_bytes(b'bed')
        assembler = AudioAssembler(FakeToolchain(), tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a', 'b'])

        await assembler.assemble(
            'job-1', segments, 500, options(include_background_music=True, background_music_path=music),
        )

        files = sorted(p.name for p in (tmp_path / 'job-1').iterdir())
        assert files == [FINAL_FILENAME, 'segments']

    @pytest.mark.asyncio
    async def test_background_music_is_mixed(self, tmp_path):
        music = tmp_path / 'music.mp3'
        music.write_bytes(b'bed')
        toolchain = FakeToolchain(duration=10.0)
        assembler = AudioAssembler(toolchain, tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a', 'b'])

        result = await assembler.assemble(
            'job-1', segments, 500,
            options(include_background_music=True, background_music_path=music, background_music_volume=0.2),
        )

        assert Path(result.path).read_bytes() == b'<a0><pause><b1>+music'
        assert ('mix', 0.2, 10.0) in toolchain.calls

    @pytest.mark.asyncio
    async def test_missing_music_passes_voice_through(self, tmp_path):
        """Test a missing music file yields the same output as music disabled."""
        segments = make_segments(tmp_path / 'job-1', ['a', 'b', 'a'])

        with_missing = AudioAssembler(FakeToolchain(), tmp_path / 'out1')
        result_missing = await with_missing.assemble(
            'job-1', segments, 500,
            options(include_background_music=True, background_music_path=tmp_path / 'nope.mp3'),
        )

        without = AudioAssembler(FakeToolchain(), tmp_path / 'out2')
        result_plain = await without.assemble('job-1', segments, 500, options())

        assert Path(result_missing.path).read_bytes() == Path(result_plain.path).read_bytes()
        assert 'mix' not in with_missing.toolchain.stages()

    @pytest.mark.asyncio
    @pytest.mark.parametrize('stage', ['silence', 'concat', 'mix', 'normalize', 'probe'])
    async def test_stage_failure_leaves_no_output(self, tmp_path, stage):
        music = tmp_path / 'music.mp3'
        music.write_bytes(b'bed')
        assembler = AudioAssembler(FakeToolchain(fail_stage=stage), tmp_path)
        segments = make_segments(tmp_path / 'job-1', ['a', 'b'])

        with pytest.raises(AssemblyError) as exc_info:
            await assembler.assemble(
                'job-1', segments, 500, options(include_background_music=True, background_music_path=music),
            )

        assert exc_info.value.stage == stage
        files = sorted(p.name for p in (tmp_path / 'job-1').iterdir())
        assert files == ['segments']

    @pytest.mark.asyncio
    async def test_no_segments(self, tmp_path):
        assembler = AudioAssembler(FakeToolchain(), tmp_path)

        with pytest.raises(AssemblyError, match='No audio segments'):
            await assembler.assemble('job-1', [], 500, options())

    def test_delete_job_files(self, tmp_path):
        assembler = AudioAssembler(FakeToolchain(), tmp_path)
        make_segments(tmp_path / 'job-1', ['a'])

        assembler.delete_job_files('job-1')
        assembler.delete_job_files('job-1')

        assert not (tmp_path / 'job-1').exists()


class TestFFmpegToolchain:
    """Tests for the subprocess wrapper."""

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        toolchain = FFmpegToolchain(ffmpeg_path=str(tmp_path / 'no-ffmpeg'))

        with pytest.raises(AssemblyError, match='could not start') as exc_info:
            await toolchain.concat(tmp_path / 'list.txt', tmp_path / 'out.mp3')
        assert exc_info.value.stage == 'concat'

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        toolchain = FFmpegToolchain(ffmpeg_path='false')

        with pytest.raises(AssemblyError, match='exited with 1') as exc_info:
            await toolchain.normalize_and_transcode(tmp_path / 'in.mp3', tmp_path / 'out.mp3', '192k', 44100, 2)
        assert exc_info.value.stage == 'normalize'

    @pytest.mark.asyncio
    async def test_unreadable_probe_output(self, tmp_path):
        toolchain = FFmpegToolchain(ffprobe_path='echo')

        with pytest.raises(AssemblyError, match='unreadable duration'):
            await toolchain.probe_duration(tmp_path / 'a.mp3')

    @pytest.mark.asyncio
    async def test_probe_parses_json(self, tmp_path):
        toolchain = FFmpegToolchain()
        with patch.object(toolchain, '_run', AsyncMock(return_value='{"format": {"duration": "12.345"}}')) as run:
            duration = await toolchain.probe_duration(tmp_path / 'a.mp3')

        assert duration == 12.345
        args = run.await_args.args[0]
        assert args[0] == toolchain.ffprobe_path
        assert args[-1] == str(tmp_path / 'a.mp3')

    @pytest.mark.asyncio
    async def test_silence_command(self, tmp_path):
        toolchain = FFmpegToolchain(ffmpeg_path='ffmpeg')
        with patch.object(toolchain, '_run', AsyncMock(return_value='')) as run:
            await toolchain.generate_silence(500, tmp_path / 's.mp3', sample_rate=24000, channels=1)

        args = run.await_args.args[0]
        assert 'anullsrc=r=24000:cl=mono' in args
        assert args[args.index('-t') + 1] == '0.500'
        assert run.await_args.kwargs['stage'] == 'silence'
