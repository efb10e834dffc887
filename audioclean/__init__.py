"""
Audio Quality Checker - Analysis and Cleanup Pipeline
=====================================================

Deterministic pipeline that scores an uploaded audio clip, optionally
cleans it, and re-encodes it as 16-bit PCM WAV.

Modules:
- config: Frozen scoring/DSP parameters and pipeline settings
- buffer: Multi-channel float sample buffer
- codec: Swappable decoders (soundfile, librosa) and WAV encoding
- metrics: Range-based quality score and signal statistics
- preprocessing: Pause zeroing and speech-band filtering
- wav: Canonical RIFF/WAVE container encoder and header parser
- orchestrator: Single-clip state machine and batch processor
- reporting: Metric rendering, CSV summaries and plots
"""

from .buffer import SampleBuffer
from .config import AudioConfig, PipelineConfig, TransformConfig, DEFAULT_CONFIG
from .errors import PipelineError, DecodeError, EmptyInputError, EncodeError, ConfigError
from .metrics import QualityMetrics, QualityScorer, compute_quality_score, effective_bitrate
from .orchestrator import AudioQualityPipeline, PipelineResult, PipelineState
from .preprocessing import filter_speech, trim_pauses, zero_pauses
from .wav import encode_wav, parse_wav_header

__version__ = "1.0.0"
