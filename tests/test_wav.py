import io
import struct

import numpy as np
import pytest
import soundfile as sf

from audioclean.buffer import SampleBuffer
from audioclean.errors import DecodeError, EncodeError
from audioclean.wav import HEADER_SIZE, encode_wav, parse_wav_header


def test_header_fields_match_buffer(stereo_sine):
    data = encode_wav(stereo_sine)
    header = parse_wav_header(data)
    frames = stereo_sine.frame_count

    assert data[:4] == b"RIFF" and data[8:12] == b"WAVE"
    assert header.audio_format == 1
    assert header.sample_rate == 44100
    assert header.channels == 2
    assert header.bits_per_sample == 16
    assert header.block_align == 4
    assert header.byte_rate == 44100 * 4
    assert header.data_bytes == frames * 2 * 2
    assert header.riff_size == 36 + header.data_bytes
    assert header.frame_count == frames
    assert len(data) == HEADER_SIZE + header.data_bytes


def test_channels_are_interleaved():
    buffer = SampleBuffer(np.array([[0.5, -0.5], [1.0, -1.0]]), 8000)
    body = np.frombuffer(encode_wav(buffer)[HEADER_SIZE:], dtype="<i2")

    assert body.tolist() == [16383, 32767, -16383, -32767]


def test_samples_are_clamped():
    buffer = SampleBuffer(np.array([2.0, -3.0, 0.0]), 8000)
    body = np.frombuffer(encode_wav(buffer)[HEADER_SIZE:], dtype="<i2")

    assert body.tolist() == [32767, -32767, 0]


def test_mono_layout():
    buffer = SampleBuffer(np.zeros(100), 16000)
    header = parse_wav_header(encode_wav(buffer))

    assert header.channels == 1
    assert header.block_align == 2
    assert header.data_bytes == 200


def test_empty_buffer_encodes_header_only():
    data = encode_wav(SampleBuffer(np.zeros((1, 0)), 8000))
    assert len(data) == HEADER_SIZE
    assert struct.unpack("<I", data[40:44])[0] == 0


def test_zero_channels_rejected():
    with pytest.raises(EncodeError):
        encode_wav(SampleBuffer(np.zeros((0, 10)), 8000))


def test_soundfile_reads_encoded_output(stereo_sine):
    frames, sr = sf.read(io.BytesIO(encode_wav(stereo_sine)), dtype="float32")

    assert sr == 44100
    assert frames.shape == (stereo_sine.frame_count, 2)
    assert np.allclose(frames.T, stereo_sine.samples, atol=1e-3)


def test_parse_rejects_non_wav():
    with pytest.raises(DecodeError):
        parse_wav_header(b"ID3" + b"\x00" * 60)
    with pytest.raises(DecodeError):
        parse_wav_header(b"RIFF")
