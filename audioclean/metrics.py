"""
Quality Scoring Module
======================

Range-based three-factor quality score for decoded audio.

Features:
- Frequency coverage of the speech band (Nyquist heuristic, 0-50)
- Effective bitrate from container size and duration (0-30)
- Channel layout (0-20)
- Signal statistics (peak, RMS, clipping) for reporting

The score is a heuristic, not a perceptual model.
"""

import math
import numpy as np
from typing import Dict
from dataclasses import dataclass
import logging

from .buffer import SampleBuffer
from .config import AudioConfig, DEFAULT_CONFIG
from .errors import DecodeError

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (builtin round() is banker's)"""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class QualityMetrics:
    """Derived quality metrics for one processed clip"""
    bitrate: int               # Effective kbps
    sample_rate: int           # Hz
    channels: int
    duration: float            # Seconds
    quality_score: float       # 0-100

    # Score breakdown
    frequency_score: float = 0.0
    bitrate_score: float = 0.0
    channel_score: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "bitrate_kbps": self.bitrate,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "duration_sec": self.duration,
            "quality_score": self.quality_score,
            "frequency_score": self.frequency_score,
            "bitrate_score": self.bitrate_score,
            "channel_score": self.channel_score
        }


@dataclass(frozen=True)
class SignalStats:
    """Level statistics over all channels"""
    peak: float
    rms_db: float
    clipping_ratio: float

    def to_dict(self) -> Dict:
        return {
            "peak": self.peak,
            "rms_db": self.rms_db,
            "clipping_ratio": self.clipping_ratio
        }


def effective_bitrate(file_size_bytes: int, duration_seconds: float) -> int:
    """
    Approximate bitrate from container size and decoded duration.

    This is not the codec's encoded rate: headers and metadata are counted.

    Args:
        file_size_bytes: Size of the input file
        duration_seconds: Decoded duration

    Returns:
        Bitrate in kbps
    """
    if duration_seconds <= 0:
        raise DecodeError(f"Cannot derive bitrate from duration {duration_seconds:.3f}s")
    return round_half_up(file_size_bytes * 8 / duration_seconds / 1000)


class QualityScorer:
    """
    Compute the composite quality score.

    Each sub-score is capped independently; the sum is clamped to 100.
    """

    def __init__(self, config: AudioConfig = None):
        """
        Initialize scorer.

        Args:
            config: AudioConfig instance
        """
        self.config = config or DEFAULT_CONFIG.audio

    # =========================================================================
    # SUB-SCORES
    # =========================================================================

    def frequency_score(self, sample_rate: float) -> float:
        """
        Speech-band coverage score (0-50).

        Full marks when the sample rate lies in [2 x 250, 2 x 4000] Hz, with
        a linear falloff on either side. The two falloff formulas differ.
        """
        max_score = self.config.FREQUENCY_SCORE_MAX
        low, high = self.config.frequency_window

        if sample_rate < low:
            return max_score * sample_rate / low
        if sample_rate > high and self.config.PENALIZE_OVERSAMPLING:
            return max_score * high / sample_rate
        return max_score

    def bitrate_score(self, bitrate_kbps: float) -> float:
        """Effective bitrate score (0-30)"""
        max_score = self.config.BITRATE_SCORE_MAX
        low = self.config.BITRATE_MIN_KBPS
        high = self.config.BITRATE_MAX_KBPS

        if bitrate_kbps < low:
            return max_score * bitrate_kbps / low
        if bitrate_kbps > high:
            return max_score * high / bitrate_kbps
        return max_score

    def channel_score(self, channels: int) -> float:
        """Stereo 20, mono 10, anything else 0"""
        if channels == 2:
            return self.config.STEREO_SCORE
        if channels == 1:
            return self.config.MONO_SCORE
        return 0.0

    # =========================================================================
    # COMPOSITE
    # =========================================================================

    def score(self, sample_rate: int, bitrate_kbps: int, channels: int) -> float:
        """
        Composite quality score.

        Args:
            sample_rate: Sample rate in Hz (> 0)
            bitrate_kbps: Effective bitrate in kbps (>= 0)
            channels: Channel count (>= 0)

        Returns:
            Score in [0, 100], rounded to an integer value
        """
        total = (self.frequency_score(sample_rate)
                 + self.bitrate_score(bitrate_kbps)
                 + self.channel_score(channels))
        return float(round_half_up(min(self.config.MAX_QUALITY_SCORE, total)))

    def measure(self, buffer: SampleBuffer, file_size_bytes: int) -> QualityMetrics:
        """
        Derive all metrics for a buffer.

        Args:
            buffer: Decoded (possibly transformed) audio
            file_size_bytes: Size of the original input, for the effective bitrate

        Returns:
            QualityMetrics
        """
        duration = buffer.duration
        bitrate = effective_bitrate(file_size_bytes, duration)

        frequency = self.frequency_score(buffer.sample_rate)
        bitrate_part = self.bitrate_score(bitrate)
        channel_part = self.channel_score(buffer.num_channels)
        score = self.score(buffer.sample_rate, bitrate, buffer.num_channels)

        logger.debug(f"Score components: frequency={frequency:.2f}, "
                     f"bitrate={bitrate_part:.2f}, channels={channel_part:.1f} -> {score:.0f}")

        return QualityMetrics(
            bitrate=bitrate,
            sample_rate=buffer.sample_rate,
            channels=buffer.num_channels,
            duration=duration,
            quality_score=score,
            frequency_score=frequency,
            bitrate_score=bitrate_part,
            channel_score=channel_part
        )


def compute_quality_score(sample_rate: int, bitrate_kbps: int, channels: int,
                          config: AudioConfig = None) -> float:
    """Convenience wrapper around QualityScorer.score"""
    return QualityScorer(config).score(sample_rate, bitrate_kbps, channels)


def compute_rms_db(samples: np.ndarray) -> float:
    """
    Compute RMS level in dB.

    Args:
        samples: Audio signal array

    Returns:
        RMS level in dB (relative to 1.0)
    """
    if samples.size == 0:
        return -np.inf
    rms = np.sqrt(np.mean(np.square(samples, dtype=np.float64)))
    if rms > 0:
        return float(20 * np.log10(rms))
    return -np.inf


def compute_signal_stats(buffer: SampleBuffer) -> SignalStats:
    """Peak, RMS and clipping ratio over every channel"""
    samples = buffer.samples
    if samples.size == 0:
        return SignalStats(peak=0.0, rms_db=-np.inf, clipping_ratio=0.0)

    magnitude = np.abs(samples)
    clipped = np.count_nonzero(magnitude >= 0.999)
    return SignalStats(
        peak=float(np.max(magnitude)),
        rms_db=compute_rms_db(samples),
        clipping_ratio=clipped / samples.size
    )


if __name__ == "__main__":
    # Score a few common formats
    logging.basicConfig(level=logging.DEBUG)

    scorer = QualityScorer()
    for sr, kbps, ch in [(8000, 64, 1), (16000, 128, 1), (44100, 192, 2), (48000, 320, 2)]:
        print(f"{sr:>6} Hz {kbps:>4} kbps {ch}ch -> {scorer.score(sr, kbps, ch):.0f}")
