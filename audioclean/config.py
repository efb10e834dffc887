"""
Pipeline Configuration Module
=============================

FROZEN scoring, DSP and container parameters plus runtime settings.
DO NOT MODIFY without version bump and documentation.

All settings are deterministic for reproducibility.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from pathlib import Path
import hashlib
import json
from datetime import datetime

from .errors import ConfigError

# ============================================================================
# FROZEN PROCESSING PARAMETERS - DO NOT MODIFY
# ============================================================================

@dataclass(frozen=True)
class AudioConfig:
    """
    Frozen scoring and processing configuration.

    All parameters are locked for reproducibility.
    Modify only with version increment and audit trail.
    """
    # Human speech band used by the frequency-coverage score (Hz)
    SPEECH_BAND_LOW_HZ: float = 250.0
    SPEECH_BAND_HIGH_HZ: float = 4000.0
    FREQUENCY_SCORE_MAX: float = 50.0
    PENALIZE_OVERSAMPLING: bool = True   # Linear falloff above 2 x high band edge

    # Effective bitrate window (kbps)
    BITRATE_MIN_KBPS: float = 128.0
    BITRATE_MAX_KBPS: float = 320.0
    BITRATE_SCORE_MAX: float = 30.0

    # Channel layout score
    STEREO_SCORE: float = 20.0
    MONO_SCORE: float = 10.0

    MAX_QUALITY_SCORE: float = 100.0

    # Silence trimming (pause zeroing)
    SILENCE_THRESHOLD: float = 0.01      # Linear amplitude
    MIN_PAUSE_SEC: float = 0.5           # Runs longer than this are zeroed
    ZERO_TRAILING_PAUSE: bool = False    # Also zero a run still open at end

    # Speech-band filter (biquad band-pass)
    FILTER_CENTER_HZ: float = 1850.0     # Midpoint of 300-3400 Hz
    FILTER_Q: float = 1.0

    # Output container
    BIT_DEPTH: int = 16
    PCM_SCALE: int = 32767

    # Version tracking
    CONFIG_VERSION: str = "1.0.0"

    def __post_init__(self):
        if self.SPEECH_BAND_LOW_HZ <= 0 or self.SPEECH_BAND_HIGH_HZ <= self.SPEECH_BAND_LOW_HZ:
            raise ConfigError(
                f"Invalid speech band: {self.SPEECH_BAND_LOW_HZ}-{self.SPEECH_BAND_HIGH_HZ} Hz"
            )
        if self.BITRATE_MIN_KBPS <= 0 or self.BITRATE_MAX_KBPS < self.BITRATE_MIN_KBPS:
            raise ConfigError(
                f"Invalid bitrate window: {self.BITRATE_MIN_KBPS}-{self.BITRATE_MAX_KBPS} kbps"
            )
        if self.SILENCE_THRESHOLD < 0 or self.MIN_PAUSE_SEC < 0:
            raise ConfigError("Silence threshold and minimum pause must be non-negative")
        if self.BIT_DEPTH != 16:
            raise ConfigError(f"Only 16-bit PCM output is supported, got {self.BIT_DEPTH}")

    @property
    def frequency_window(self):
        """Sample-rate window (Hz) that fully covers the speech band"""
        return 2 * self.SPEECH_BAND_LOW_HZ, 2 * self.SPEECH_BAND_HIGH_HZ


@dataclass(frozen=True)
class OutputConfig:
    """
    Output naming conventions.

    Processed files are written as:
    output_dir/
    ├── processed_<stem>.wav
    ├── audio_quality_metrics_<timestamp>.csv
    ├── summary_statistics_<timestamp>.json
    └── reports/
    """
    OUTPUT_PREFIX: str = "processed_"
    OUTPUT_SUFFIX: str = ".wav"

    # Input extensions picked up by directory scans
    AUDIO_EXTENSIONS: tuple = (
        ".wav", ".flac", ".ogg", ".mp3", ".m4a", ".aac", ".aiff", ".aif", ".opus"
    )

    # Output directories
    OUTPUT_DIR: str = "pipeline_output"
    REPORTS_DIR: str = "reports"
    LOGS_DIR: str = "logs"


@dataclass(frozen=True)
class TransformConfig:
    """Per-invocation transform switches"""
    filter_speech: bool = False
    trim_pauses: bool = False

    def to_dict(self) -> Dict:
        return {
            "filter_speech": self.filter_speech,
            "trim_pauses": self.trim_pauses
        }


CODEC_BACKENDS = ("auto", "soundfile", "librosa")


@dataclass
class PipelineConfig:
    """
    Main pipeline configuration.

    Combines audio and output configs with runtime settings.
    """
    audio: AudioConfig = field(default_factory=AudioConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Runtime settings (can be modified)
    codec: str = "auto"                   # Decoder backend
    n_workers: int = 4                    # Parallel workers for batch runs
    verbose: bool = True                  # Detailed logging

    def __post_init__(self):
        """Generate config hash for version tracking"""
        if self.codec not in CODEC_BACKENDS:
            raise ConfigError(f"Unknown codec backend '{self.codec}', expected one of {CODEC_BACKENDS}")
        self._config_hash = self._compute_hash()
        self._created_at = datetime.now().isoformat()

    def _compute_hash(self) -> str:
        """Compute deterministic hash of frozen parameters"""
        config_dict = {
            "audio": {
                k: v for k, v in self.audio.__dict__.items()
                if not k.startswith("_")
            },
            "output": {
                k: v for k, v in self.output.__dict__.items()
                if not k.startswith("_")
            }
        }
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def config_hash(self) -> str:
        return self._config_hash

    def to_dict(self) -> Dict:
        """Export configuration as dictionary"""
        return {
            "audio": {k: v for k, v in self.audio.__dict__.items()},
            "output": {k: v for k, v in self.output.__dict__.items()},
            "runtime": {
                "codec": self.codec,
                "n_workers": self.n_workers,
                "verbose": self.verbose
            },
            "meta": {
                "config_hash": self._config_hash,
                "created_at": self._created_at,
                "version": self.audio.CONFIG_VERSION
            }
        }

    def save(self, path: str):
        """Save configuration to JSON file"""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load configuration from JSON file"""
        with open(path, "r") as f:
            data = json.load(f)

        try:
            audio_fields = data.get("audio", {})
            output_fields = dict(data.get("output", {}))
            if "AUDIO_EXTENSIONS" in output_fields:
                output_fields["AUDIO_EXTENSIONS"] = tuple(output_fields["AUDIO_EXTENSIONS"])
            runtime = data["runtime"]

            return cls(
                audio=AudioConfig(**audio_fields),
                output=OutputConfig(**output_fields),
                codec=runtime["codec"],
                n_workers=runtime["n_workers"],
                verbose=runtime["verbose"]
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Malformed configuration file {path}: {e}") from e


def output_filename(original_name: Optional[str], output: OutputConfig = None) -> str:
    """
    Build the download name for a processed clip.

    Args:
        original_name: Name (or path) of the uploaded file
        output: OutputConfig instance

    Returns:
        processed_<stem>.wav
    """
    output = output or OutputConfig()
    stem = Path(os.path.basename(original_name or "")).stem or "audio"
    return f"{output.OUTPUT_PREFIX}{stem}{output.OUTPUT_SUFFIX}"


# ============================================================================
# DEFAULT CONFIGURATION INSTANCE
# ============================================================================

DEFAULT_CONFIG = PipelineConfig()


if __name__ == "__main__":
    # Print configuration for verification
    config = PipelineConfig()
    low, high = config.audio.frequency_window
    print(f"Pipeline Configuration v{config.audio.CONFIG_VERSION}")
    print(f"Config Hash: {config.config_hash}")
    print(f"\nScoring Settings:")
    print(f"  Sample Rate Window: {low:.0f}-{high:.0f} Hz")
    print(f"  Bitrate Window: {config.audio.BITRATE_MIN_KBPS:.0f}-{config.audio.BITRATE_MAX_KBPS:.0f} kbps")
    print(f"\nTransform Settings:")
    print(f"  Silence Threshold: {config.audio.SILENCE_THRESHOLD}")
    print(f"  Filter: {config.audio.FILTER_CENTER_HZ} Hz, Q={config.audio.FILTER_Q}")
