import numpy as np
import pytest

from audioclean.buffer import SampleBuffer
from audioclean.config import PipelineConfig
from audioclean.wav import encode_wav


def make_sine(freq, duration, sr, amplitude=0.5):
    t = np.arange(int(round(sr * duration))) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


@pytest.fixture
def stereo_sine():
    """2 s, 44.1 kHz, 440 Hz left / 660 Hz right"""
    sr = 44100
    left = make_sine(440, 2.0, sr)
    right = make_sine(660, 2.0, sr)
    return SampleBuffer(np.stack([left, right]), sr)


@pytest.fixture
def stereo_wav_bytes(stereo_sine):
    return encode_wav(stereo_sine)


@pytest.fixture
def soundfile_config():
    return PipelineConfig(codec="soundfile", n_workers=1, verbose=False)
