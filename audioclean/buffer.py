"""
Sample Buffer
=============

Decoded linear audio: a (channels, frames) float32 array plus its rate.
"""

from typing import Dict

import numpy as np


class SampleBuffer:
    """
    Multi-channel float sample buffer.

    All channels share the same length and sample rate. Transforms mutate
    ``samples`` in place; use ``copy()`` when an untouched original is needed.
    """

    def __init__(self, samples, sample_rate: int):
        """
        Args:
            samples: Array shaped (channels, frames); 1-D input is one channel
            sample_rate: Sample rate in Hz
        """
        samples = np.array(samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ValueError(f"Sample array must be 1-D or 2-D, got {samples.ndim}-D")
        if int(sample_rate) <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")

        self.samples = samples
        self.sample_rate = int(sample_rate)

    @classmethod
    def from_interleaved(cls, frames: np.ndarray, sample_rate: int) -> "SampleBuffer":
        """Build from a (frames, channels) array as returned by soundfile"""
        frames = np.asarray(frames)
        if frames.ndim == 1:
            return cls(frames, sample_rate)
        return cls(frames.T, sample_rate)

    @property
    def num_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frame_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds"""
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        """View of one channel (writes go through to the buffer)"""
        return self.samples[index]

    def copy(self) -> "SampleBuffer":
        return SampleBuffer(self.samples.copy(), self.sample_rate)

    def to_dict(self) -> Dict:
        return {
            "sample_rate": self.sample_rate,
            "channels": self.num_channels,
            "frames": self.frame_count,
            "duration": self.duration
        }

    def __repr__(self) -> str:
        return (f"SampleBuffer(channels={self.num_channels}, frames={self.frame_count}, "
                f"sample_rate={self.sample_rate})")
