"""
RIFF/WAVE Container Module
==========================

Canonical 16-bit PCM WAV serialization.

Layout (little-endian, 44-byte header):
    "RIFF" <36 + data_bytes> "WAVE"
    "fmt " <16> <format=1> <channels> <sample_rate> <byte_rate> <block_align> <16>
    "data" <data_bytes> <interleaved int16 frames>

All channels are interleaved, so the body always matches the header.
"""

import struct
import numpy as np
from typing import Dict
from dataclasses import dataclass
import logging

from .buffer import SampleBuffer
from .config import AudioConfig, DEFAULT_CONFIG
from .errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

HEADER_SIZE = 44
HEADER_FORMAT = "<4sI4s4sIHHIIHH4sI"
PCM_FORMAT = 1
FMT_CHUNK_SIZE = 16
MAX_DATA_BYTES = 0xFFFFFFFF - 36


@dataclass(frozen=True)
class WavHeader:
    """Fields of a canonical PCM WAV header"""
    riff_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_bytes: int

    @property
    def frame_count(self) -> int:
        return self.data_bytes // self.block_align if self.block_align else 0

    def to_dict(self) -> Dict:
        return {
            "riff_size": self.riff_size,
            "audio_format": self.audio_format,
            "channels": self.channels,
            "sample_rate": self.sample_rate,
            "byte_rate": self.byte_rate,
            "block_align": self.block_align,
            "bits_per_sample": self.bits_per_sample,
            "data_bytes": self.data_bytes
        }


def encode_pcm16(buffer: SampleBuffer, scale: int = 32767) -> bytes:
    """
    Interleave and quantize samples to little-endian int16.

    Samples are clamped to [-1, 1], scaled and truncated toward zero.
    """
    clipped = np.clip(buffer.samples.astype(np.float64), -1.0, 1.0)
    frames = np.ascontiguousarray(clipped.T) * scale
    return frames.astype("<i2").tobytes()


def encode_wav(buffer: SampleBuffer, config: AudioConfig = None) -> bytes:
    """
    Serialize a buffer to a canonical 16-bit PCM WAV file.

    Args:
        buffer: Audio to encode
        config: AudioConfig instance

    Returns:
        Complete WAV file bytes
    """
    config = config or DEFAULT_CONFIG.audio

    channels = buffer.num_channels
    if channels < 1:
        raise EncodeError("Cannot encode a buffer with zero channels")
    if channels > 0xFFFF:
        raise EncodeError(f"Too many channels for a WAV header: {channels}")

    bytes_per_sample = config.BIT_DEPTH // 8
    block_align = channels * bytes_per_sample
    byte_rate = buffer.sample_rate * block_align
    data_bytes = buffer.frame_count * block_align

    if data_bytes > MAX_DATA_BYTES:
        raise EncodeError(f"Audio too large for a WAV container: {data_bytes} data bytes")
    if byte_rate > 0xFFFFFFFF:
        raise EncodeError(f"Byte rate overflows WAV header: {byte_rate}")

    header = struct.pack(
        HEADER_FORMAT,
        b"RIFF", 36 + data_bytes, b"WAVE",
        b"fmt ", FMT_CHUNK_SIZE, PCM_FORMAT, channels,
        buffer.sample_rate, byte_rate, block_align, config.BIT_DEPTH,
        b"data", data_bytes
    )
    body = encode_pcm16(buffer, config.PCM_SCALE)

    logger.debug(f"Encoded WAV: {channels}ch @ {buffer.sample_rate}Hz, {data_bytes} data bytes")
    return header + body


def parse_wav_header(data: bytes) -> WavHeader:
    """
    Read back a canonical 44-byte PCM WAV header.

    Args:
        data: WAV file bytes

    Returns:
        WavHeader
    """
    if len(data) < HEADER_SIZE:
        raise DecodeError(f"WAV data too short: {len(data)} bytes")

    (riff, riff_size, wave, fmt, fmt_size, audio_format, channels,
     sample_rate, byte_rate, block_align, bits, data_tag, data_bytes) = struct.unpack(
        HEADER_FORMAT, data[:HEADER_SIZE]
    )

    if riff != b"RIFF" or wave != b"WAVE":
        raise DecodeError("Not a RIFF/WAVE file")
    if fmt != b"fmt " or fmt_size != FMT_CHUNK_SIZE or data_tag != b"data":
        raise DecodeError("Not a canonical 44-byte WAV header")

    return WavHeader(
        riff_size=riff_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_bytes=data_bytes
    )
