import numpy as np
import pytest

from audioclean.buffer import SampleBuffer
from audioclean.config import AudioConfig, TransformConfig
from audioclean.preprocessing import (
    AudioTransformer, bandpass_coefficients, filter_speech, trim_pauses, zero_pauses
)
from scipy import signal

from conftest import make_sine

SR = 44100


def pause_buffer():
    """loud 0.1 s | quiet 1 s | loud frame | quiet 0.2 s | loud 0.1 s"""
    loud = np.full(int(0.1 * SR), 0.5, dtype=np.float32)
    long_quiet = np.full(SR, 0.005, dtype=np.float32)
    short_quiet = np.full(int(0.2 * SR), 0.005, dtype=np.float32)
    samples = np.concatenate([loud, long_quiet, [0.5], short_quiet, loud])
    return SampleBuffer(samples, SR)


def test_trim_zeroes_long_pause_and_keeps_short_one():
    buffer = pause_buffer()
    frames_before = buffer.frame_count
    long_start = int(0.1 * SR)
    short_start = long_start + SR + 1

    out = trim_pauses(buffer)

    assert out is buffer
    assert buffer.frame_count == frames_before
    data = buffer.channel(0)
    assert np.all(data[long_start:long_start + SR] == 0.0)
    assert data[long_start + SR] == pytest.approx(0.5)
    assert np.allclose(data[short_start:short_start + int(0.2 * SR)], 0.005)
    assert np.allclose(data[:long_start], 0.5)


def test_trim_requires_run_strictly_longer_than_minimum():
    sr = 1000
    at_limit = np.concatenate([np.full(500, 0.001), [0.9]])
    over_limit = np.concatenate([np.full(501, 0.001), [0.9]])

    a = trim_pauses(SampleBuffer(at_limit, sr))
    b = trim_pauses(SampleBuffer(over_limit, sr))

    assert np.allclose(a.channel(0)[:500], 0.001)
    assert np.all(b.channel(0)[:501] == 0.0)


def test_trailing_pause_left_open_by_default():
    sr = 1000
    samples = np.concatenate([[0.9], np.full(800, 0.002)])

    default = trim_pauses(SampleBuffer(samples, sr))
    flushed = trim_pauses(SampleBuffer(samples, sr), zero_trailing=True)

    assert np.allclose(default.channel(0)[1:], 0.002)
    assert np.all(flushed.channel(0)[1:] == 0.0)
    assert flushed.channel(0)[0] == pytest.approx(0.9)


def test_trim_works_per_channel():
    sr = 1000
    quiet_then_loud = np.concatenate([np.full(700, 0.003), [0.8]])
    always_loud = np.full(701, 0.6)
    buffer = SampleBuffer(np.stack([quiet_then_loud, always_loud]), sr)

    trim_pauses(buffer)

    assert np.all(buffer.channel(0)[:700] == 0.0)
    assert np.allclose(buffer.channel(1), 0.6)


def test_bandpass_coefficients_normalized():
    b, a = bandpass_coefficients(1850.0, 1.0, SR)
    assert a[0] == pytest.approx(1.0)
    assert b[1] == 0.0
    assert b[0] == pytest.approx(-b[2])


def test_filter_passes_center_and_attenuates_low_frequencies():
    center = SampleBuffer(make_sine(1850, 1.0, SR), SR)
    low = SampleBuffer(make_sine(100, 1.0, SR), SR)
    tail = slice(SR // 2, None)

    center_in = np.sqrt(np.mean(center.channel(0)[tail] ** 2))
    low_in = np.sqrt(np.mean(low.channel(0)[tail] ** 2))
    filter_speech(center)
    filter_speech(low)
    center_out = np.sqrt(np.mean(center.channel(0)[tail] ** 2))
    low_out = np.sqrt(np.mean(low.channel(0)[tail] ** 2))

    assert center_out / center_in > 0.9
    assert low_out / low_in < 0.2


def test_filter_keeps_shape_and_is_not_idempotent(stereo_sine):
    once = filter_speech(stereo_sine.copy())
    twice = filter_speech(filter_speech(stereo_sine.copy()))

    assert once.samples.shape == stereo_sine.samples.shape
    assert not np.allclose(once.samples, twice.samples)


def test_filter_center_above_nyquist_silences_output():
    buffer = SampleBuffer(make_sine(440, 0.5, 3000), 3000)
    filter_speech(buffer)
    assert np.all(buffer.samples == 0.0)


def test_transformer_with_no_transforms_is_a_no_op(stereo_sine):
    original = stereo_sine.copy()
    report = AudioTransformer(AudioConfig()).apply(stereo_sine, TransformConfig())

    assert not report.trimmed and not report.filtered
    assert np.array_equal(stereo_sine.samples, original.samples)


def test_transformer_reports_zeroed_samples():
    buffer = pause_buffer()
    report = AudioTransformer(AudioConfig()).apply(buffer, TransformConfig(trim_pauses=True))

    assert report.trimmed
    assert report.samples_zeroed == SR


def test_bandpass_response_peaks_at_unity_on_center():
    b, a = bandpass_coefficients(1850.0, 1.0, SR)
    freqs = np.array([100.0, 500.0, 1850.0, 6000.0, 15000.0])
    _, h = signal.freqz(b, a, worN=freqs, fs=SR)
    gain = np.abs(h)

    assert gain[2] == pytest.approx(1.0, abs=1e-9)
    assert np.all(gain[[0, 1, 3, 4]] < 1.0)
    assert gain[0] < gain[1] and gain[4] < gain[3]
    # Stable: both poles inside the unit circle
    assert np.all(np.abs(np.roots(a)) < 1.0)


def test_zero_pauses_counts_samples_already_at_zero():
    samples = np.concatenate([
        np.full(100, 0.5), np.full(SR, 0.005), np.full(100, 0.5)
    ]).astype(np.float32)
    samples[200:300] = 0.0
    buffer = SampleBuffer(samples, SR)

    assert zero_pauses(buffer) == SR
    assert np.all(buffer.channel(0)[100:100 + SR] == 0.0)


def test_transformer_counts_whole_run_when_pause_has_digital_silence():
    buffer = pause_buffer()
    buffer.channel(0)[int(0.1 * SR):int(0.1 * SR) + 500] = 0.0

    report = AudioTransformer(AudioConfig()).apply(buffer, TransformConfig(trim_pauses=True))

    assert report.samples_zeroed == SR
