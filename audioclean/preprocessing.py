"""
Audio Transform Module
======================

Deterministic in-place transforms applied between decode and encode.

Features:
- Pause zeroing (long low-amplitude runs set to digital silence)
- Speech-band biquad band-pass (1850 Hz, Q=1)

All operations keep the frame count and channel count of the buffer.
"""

import numpy as np
from scipy import signal
from typing import Dict, Optional, Tuple
from dataclasses import dataclass
import logging

from .buffer import SampleBuffer
from .config import AudioConfig, TransformConfig, DEFAULT_CONFIG
from .metrics import compute_rms_db

logger = logging.getLogger(__name__)


# ============================================================================
# SILENCE TRIMMING
# ============================================================================

def _silent_runs(silent: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Start (inclusive) and end (exclusive) indices of True runs"""
    padded = np.concatenate(([False], silent, [False])).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)
    return starts, ends


def zero_pauses(buffer: SampleBuffer,
                amplitude_threshold: float = 0.01,
                min_pause_seconds: float = 0.5,
                zero_trailing: bool = False) -> int:
    """
    Zero long pauses in place and count the samples written.

    A frame is silent when abs(sample) < amplitude_threshold. A silent run
    that is followed by a non-silent frame and is longer than
    min_pause_seconds * sample_rate frames is set to exactly 0.0. The run
    still open at the end of the buffer is only zeroed with zero_trailing.
    Frame count is unchanged.

    Args:
        buffer: Buffer to modify
        amplitude_threshold: Linear amplitude below which a frame is silent
        min_pause_seconds: Minimum run duration to zero
        zero_trailing: Also zero a long run that reaches the end of the buffer

    Returns:
        Number of samples (over all channels) inside zeroed runs, including
        any that were already 0.0
    """
    min_frames = min_pause_seconds * buffer.sample_rate
    frame_count = buffer.frame_count
    zeroed = 0

    for ch in range(buffer.num_channels):
        data = buffer.channel(ch)
        starts, ends = _silent_runs(np.abs(data) < amplitude_threshold)

        for start, end in zip(starts, ends):
            if end - start <= min_frames:
                continue
            if end == frame_count and not zero_trailing:
                continue
            data[start:end] = 0.0
            zeroed += end - start

    if zeroed:
        logger.debug(f"Zeroed {zeroed} samples ({zeroed / buffer.sample_rate:.2f} channel-seconds)")

    return int(zeroed)


def trim_pauses(buffer: SampleBuffer,
                amplitude_threshold: float = 0.01,
                min_pause_seconds: float = 0.5,
                zero_trailing: bool = False) -> SampleBuffer:
    """Zero long pauses in place (see zero_pauses) and return the buffer"""
    zero_pauses(buffer, amplitude_threshold, min_pause_seconds, zero_trailing)
    return buffer


# ============================================================================
# SPEECH-BAND FILTER
# ============================================================================

def bandpass_coefficients(center_hz: float, q: float,
                          sample_rate: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Biquad band-pass coefficients, constant 0 dB peak gain.

    Args:
        center_hz: Center frequency
        q: Quality factor
        sample_rate: Sample rate

    Returns:
        (b, a) normalized so that a[0] == 1
    """
    nyquist = sample_rate / 2

    # Degenerate designs: pass-through for Q <= 0, silence at or above Nyquist
    if q <= 0:
        return np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])
    if center_hz >= nyquist or center_hz <= 0:
        return np.array([0.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])

    # RBJ Audio EQ Cookbook band-pass (constant 0 dB peak gain)
    w0 = 2 * np.pi * center_hz / sample_rate
    alpha = np.sin(w0) / (2 * q)

    b = np.array([alpha, 0.0, -alpha])
    a = np.array([1 + alpha, -2 * np.cos(w0), 1 - alpha])

    return b / a[0], a / a[0]


def filter_speech(buffer: SampleBuffer,
                  center_hz: float = 1850.0,
                  q: float = 1.0) -> SampleBuffer:
    """
    Band-pass every channel around the speech band, in place.

    Each channel is filtered independently from a zero initial state.

    Args:
        buffer: Buffer to modify
        center_hz: Center frequency
        q: Quality factor

    Returns:
        The same buffer
    """
    if buffer.frame_count == 0:
        return buffer

    b, a = bandpass_coefficients(center_hz, q, buffer.sample_rate)
    filtered = signal.lfilter(b, a, buffer.samples.astype(np.float64), axis=-1)
    buffer.samples[...] = filtered.astype(np.float32)

    logger.debug(f"Band-pass {center_hz:.0f} Hz (Q={q}) applied to {buffer.num_channels} channel(s)")
    return buffer


# ============================================================================
# TRANSFORM CHAIN
# ============================================================================

@dataclass
class TransformReport:
    """What the transform chain did to a buffer"""
    trimmed: bool = False
    filtered: bool = False
    samples_zeroed: int = 0
    rms_before_db: float = -np.inf
    rms_after_db: float = -np.inf

    def to_dict(self) -> Dict:
        return {
            "trimmed": self.trimmed,
            "filtered": self.filtered,
            "samples_zeroed": self.samples_zeroed,
            "rms_before_db": self.rms_before_db,
            "rms_after_db": self.rms_after_db
        }


class AudioTransformer:
    """
    Apply the configured transforms to a buffer.

    Order is fixed: pause zeroing, then the band-pass.
    """

    def __init__(self, config: AudioConfig = None):
        """
        Args:
            config: AudioConfig instance (uses DEFAULT if None)
        """
        self.config = config or DEFAULT_CONFIG.audio

    def trim_pauses(self, buffer: SampleBuffer) -> int:
        return zero_pauses(
            buffer,
            amplitude_threshold=self.config.SILENCE_THRESHOLD,
            min_pause_seconds=self.config.MIN_PAUSE_SEC,
            zero_trailing=self.config.ZERO_TRAILING_PAUSE
        )

    def filter_speech(self, buffer: SampleBuffer) -> SampleBuffer:
        return filter_speech(
            buffer,
            center_hz=self.config.FILTER_CENTER_HZ,
            q=self.config.FILTER_Q
        )

    def apply(self, buffer: SampleBuffer,
              transforms: Optional[TransformConfig] = None) -> TransformReport:
        """
        Run the enabled transforms in place.

        Args:
            buffer: Decoded audio
            transforms: Switches (nothing runs if None)

        Returns:
            TransformReport
        """
        transforms = transforms or TransformConfig()
        report = TransformReport(rms_before_db=compute_rms_db(buffer.samples))

        if transforms.trim_pauses:
            report.samples_zeroed = self.trim_pauses(buffer)
            report.trimmed = True

        if transforms.filter_speech:
            self.filter_speech(buffer)
            report.filtered = True

        report.rms_after_db = compute_rms_db(buffer.samples)

        if report.trimmed or report.filtered:
            logger.info(f"Transforms applied (trim={report.trimmed}, filter={report.filtered}): "
                        f"RMS {report.rms_before_db:.1f} -> {report.rms_after_db:.1f} dB")

        return report
