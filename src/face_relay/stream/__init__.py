"""
Stream Module
=============

Decoder process handling, frame extraction and admission control.

This module provides the ingestion layer of the relay:
    - DecoderProcess: ffmpeg subprocess lifecycle (spawn, kill, wait)
    - FrameDemuxer: JPEG extraction from the decoder's stdout
    - Frame: Typed frame data model (internal representation)
    - ConcurrencyThrottle: Per-session drop-or-admit gate
    - decode_jpeg: JPEG bytes to BGR matrix

Example:
    from face_relay.stream import DecoderProcess, FrameDemuxer

    decoder = await DecoderProcess.spawn(url, generation=1, config=cfg)
    demuxer = FrameDemuxer()

    while chunk := await decoder.stdout.read(65536):
        for jpeg in demuxer.feed(chunk):
            process(jpeg)
"""

from face_relay.stream.frame import Frame
from face_relay.stream.demuxer import (
    FrameDemuxer,
    JPEG_END_MARKER,
    JPEG_START_MARKER,
    extract,
)
from face_relay.stream.throttle import ConcurrencyThrottle
from face_relay.stream.decoder import (
    DecoderProcess,
    DecoderSpawnError,
    DiagnosticKind,
    build_ffmpeg_command,
    classify_diagnostic,
    split_diagnostic_lines,
)
from face_relay.stream.image_decoder import ImageDecodeError, decode_jpeg


__all__ = [
    "Frame",
    "FrameDemuxer",
    "JPEG_START_MARKER",
    "JPEG_END_MARKER",
    "extract",
    "ConcurrencyThrottle",
    "DecoderProcess",
    "DecoderSpawnError",
    "DiagnosticKind",
    "build_ffmpeg_command",
    "classify_diagnostic",
    "split_diagnostic_lines",
    "ImageDecodeError",
    "decode_jpeg",
]
