"""
Decoder Process Tests
=====================

Command construction, stderr classification and kill semantics.
"""

import asyncio

import pytest

from face_relay.config import DecoderConfig
from face_relay.stream.decoder import (
    DecoderProcess,
    DecoderSpawnError,
    DiagnosticKind,
    build_ffmpeg_command,
    classify_diagnostic,
    split_diagnostic_lines,
)

from fakes import FakeProcess


class TestBuildCommand:
    """Tests for build_ffmpeg_command."""

    def test_default_command(self):
        cmd = build_ffmpeg_command("http://example.com/live.m3u8", DecoderConfig())

        assert cmd == [
            "ffmpeg",
            "-hide_banner",
            "-nostdin",
            "-i", "http://example.com/live.m3u8",
            "-vf", "fps=10",
            "-f", "image2pipe",
            "-vcodec", "mjpeg",
            "-pix_fmt", "yuvj444p",
            "-q:v", "2",
            "-",
        ]

    def test_extra_input_args_precede_input(self):
        config = DecoderConfig(binary="/opt/ffmpeg", frame_rate=5,
                               extra_input_args=["-rtsp_transport", "tcp"])

        cmd = build_ffmpeg_command("rtsp://cam/1", config)

        assert cmd[0] == "/opt/ffmpeg"
        assert cmd.index("-rtsp_transport") < cmd.index("-i")
        assert "fps=5" in cmd
        assert cmd[-1] == "-"


class TestDiagnostics:
    """Tests for stderr classification."""

    @pytest.mark.parametrize("line", [
        "Stream mapping:",
        "Output #0, image2pipe, to 'pipe:':",
        "Press [q] to stop, [?] for help",
        "Input #0, hls, from 'http://example.com/live.m3u8':",
        "  Duration: N/A, start: 1.400000, bitrate: N/A",
        "  Stream #0:0: Video: h264 (High), yuv420p, 1280x720",
    ])
    def test_startup_lines(self, line):
        assert classify_diagnostic(line) is DiagnosticKind.STARTUP

    def test_progress_line(self):
        line = "frame=   42 fps= 10 q=2.0 size=    1024kB time=00:00:04.20"
        assert classify_diagnostic(line) is DiagnosticKind.PROGRESS

    def test_everything_else_is_error(self):
        line = "http://example.com/live.m3u8: Server returned 404 Not Found"
        assert classify_diagnostic(line) is DiagnosticKind.ERROR

    def test_split_on_carriage_returns(self):
        data = b"frame=1 fps=10\rframe=2 fps=10\r\nConnection refused\n\n"

        assert split_diagnostic_lines(data) == [
            "frame=1 fps=10",
            "frame=2 fps=10",
            "Connection refused",
        ]

    def test_split_tolerates_invalid_utf8(self):
        lines = split_diagnostic_lines(b"bad \xff byte\n")

        assert len(lines) == 1
        assert lines[0].startswith("bad")


class TestDecoderProcess:
    """Tests for DecoderProcess lifecycle."""

    def test_kill_is_idempotent(self):
        async def scenario():
            process = FakeProcess()
            decoder = DecoderProcess(process, "rtsp://cam/1", generation=3)

            decoder.kill()
            decoder.kill()
            code = await decoder.wait()
            decoder.kill()

            return process, decoder, code

        process, decoder, code = asyncio.run(scenario())

        assert process.kill_count == 1
        assert decoder.killed
        assert not decoder.alive
        assert code == -9

    def test_kill_after_exit_does_not_signal(self):
        async def scenario():
            process = FakeProcess()
            decoder = DecoderProcess(process, "file.mp4", generation=1)
            process.finish(0)
            decoder.kill()
            return process, decoder

        process, decoder = asyncio.run(scenario())

        assert process.kill_count == 0
        assert decoder.returncode == 0

    def test_spawn_missing_binary_raises(self):
        config = DecoderConfig(binary="/nonexistent/ffmpeg-binary")

        with pytest.raises(DecoderSpawnError):
            asyncio.run(DecoderProcess.spawn("file.mp4", 1, config))
