import numpy as np
import pytest

from audioclean.buffer import SampleBuffer
from audioclean.config import AudioConfig
from audioclean.errors import DecodeError
from audioclean.metrics import (
    QualityScorer, compute_quality_score, compute_signal_stats,
    effective_bitrate, round_half_up
)


@pytest.fixture
def scorer():
    return QualityScorer(AudioConfig())


@pytest.fixture
def nyquist_scorer():
    return QualityScorer(AudioConfig(PENALIZE_OVERSAMPLING=False))


def test_frequency_score_boundary_at_500(scorer):
    assert scorer.frequency_score(500) == 50.0
    assert scorer.frequency_score(499) < 50.0
    assert scorer.frequency_score(8000) == 50.0


def test_frequency_score_monotonic_below_window(scorer):
    rates = list(range(100, 501, 25))
    scores = [scorer.frequency_score(sr) for sr in rates]
    assert scores == sorted(scores)
    assert scorer.frequency_score(250) == pytest.approx(25.0)


def test_frequency_score_falloff_above_window(scorer):
    assert scorer.frequency_score(16000) == pytest.approx(25.0)
    assert scorer.frequency_score(44100) == pytest.approx(50 * 8000 / 44100)


def test_bitrate_score_window(scorer):
    assert scorer.bitrate_score(128) == 30.0
    assert scorer.bitrate_score(320) == 30.0
    assert scorer.bitrate_score(64) == pytest.approx(15.0)
    assert scorer.bitrate_score(640) == pytest.approx(15.0)
    assert scorer.bitrate_score(0) == 0.0


def test_channel_score(scorer):
    assert scorer.channel_score(2) == 20.0
    assert scorer.channel_score(1) == 10.0
    assert scorer.channel_score(0) == 0.0
    assert scorer.channel_score(6) == 0.0


def test_score_with_oversampling_penalty(scorer):
    # 9.07 + 30 + 20
    assert scorer.score(44100, 192, 2) == 59.0
    assert scorer.score(44100, 192, 1) == 49.0


def test_score_without_oversampling_penalty(nyquist_scorer):
    assert nyquist_scorer.score(44100, 192, 2) == 100.0
    assert nyquist_scorer.score(44100, 192, 1) == 90.0


def test_score_inside_every_window_is_capped_at_100(scorer):
    assert scorer.score(8000, 256, 2) == 100.0
    assert compute_quality_score(8000, 256, 2) == 100.0


def test_score_zero_channels_contributes_nothing(scorer):
    assert scorer.score(8000, 256, 0) == 80.0


def test_score_rounds_half_up():
    assert round_half_up(59.5) == 60
    assert round_half_up(58.5) == 59
    assert round_half_up(59.49) == 59


def test_effective_bitrate():
    assert effective_bitrate(24000, 1.0) == 192
    assert effective_bitrate(352844, 2.0) == 1411


def test_effective_bitrate_zero_duration():
    with pytest.raises(DecodeError):
        effective_bitrate(1000, 0.0)


def test_measure_derives_all_fields(stereo_sine):
    metrics = QualityScorer().measure(stereo_sine, file_size_bytes=48000)

    assert metrics.sample_rate == 44100
    assert metrics.channels == 2
    assert metrics.duration == pytest.approx(2.0)
    assert metrics.bitrate == 192
    assert metrics.channel_score == 20.0
    assert metrics.bitrate_score == 30.0
    assert metrics.quality_score == 59.0


def test_signal_stats():
    samples = np.array([[0.0, 0.5, -1.0, 0.25]])
    stats = compute_signal_stats(SampleBuffer(samples, 8000))

    assert stats.peak == pytest.approx(1.0)
    assert stats.clipping_ratio == pytest.approx(0.25)
    assert stats.rms_db < 0
