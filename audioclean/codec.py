"""
Codec Adapter Module
====================

Decode compressed audio bytes into a SampleBuffer and encode buffers back
into WAV bytes.

Backends:
- soundfile: libsndfile, reads straight from memory (WAV, FLAC, OGG, MP3)
- librosa: audioread/ffmpeg fallback for everything else (M4A, AAC, ...)
- auto: soundfile first, then librosa

The backend is chosen once, when the pipeline is built.
"""

import io
import os
import tempfile
import warnings
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import librosa
import soundfile as sf

from .buffer import SampleBuffer
from .config import AudioConfig, DEFAULT_CONFIG
from .errors import DecodeError, ConfigError
from .wav import encode_wav

logger = logging.getLogger(__name__)


class DecodingContext:
    """
    Per-invocation decoder resources.

    Temporary files created through the context are removed when it closes,
    on success, failure or cancellation alike.
    """

    def __init__(self):
        self._temp_paths: List[str] = []
        self.closed = False

    def temp_file(self, data: bytes, suffix: str = "") -> str:
        """Write data to a temporary file owned by this context"""
        if self.closed:
            raise RuntimeError("Decoding context already closed")
        fd, path = tempfile.mkstemp(suffix=suffix, prefix="audioclean_")
        self._temp_paths.append(path)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        return path

    def close(self):
        for path in self._temp_paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
        self._temp_paths = []
        self.closed = True

    def __enter__(self) -> "DecodingContext":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class CodecAdapter:
    """
    Base codec: decode is backend specific, encode always writes canonical WAV.
    """

    name = "base"

    def __init__(self, config: AudioConfig = None):
        self.config = config or DEFAULT_CONFIG.audio

    def open_context(self) -> DecodingContext:
        return DecodingContext()

    def decode(self, data: bytes, context: DecodingContext,
               filename: Optional[str] = None) -> SampleBuffer:
        raise NotImplementedError

    def encode(self, buffer: SampleBuffer) -> bytes:
        return encode_wav(buffer, self.config)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SoundfileCodec(CodecAdapter):
    """Decode with libsndfile from an in-memory buffer"""

    name = "soundfile"

    def decode(self, data: bytes, context: DecodingContext,
               filename: Optional[str] = None) -> SampleBuffer:
        try:
            frames, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise DecodeError(f"soundfile could not decode input: {e}") from e

        buffer = SampleBuffer.from_interleaved(frames, sr)
        logger.debug(f"soundfile decoded {buffer}")
        return buffer


class LibrosaCodec(CodecAdapter):
    """
    Decode with librosa at the native sample rate, keeping all channels.

    librosa needs a path for audioread formats, so the bytes go through a
    temporary file owned by the decoding context.
    """

    name = "librosa"

    def decode(self, data: bytes, context: DecodingContext,
               filename: Optional[str] = None) -> SampleBuffer:
        suffix = Path(filename).suffix if filename else ""
        path = context.temp_file(data, suffix=suffix)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                y, sr = librosa.load(path, sr=None, mono=False)
        except Exception as e:
            raise DecodeError(f"librosa could not decode input: {e}") from e

        if y is None or np.size(y) == 0:
            raise DecodeError("librosa returned no audio data")

        buffer = SampleBuffer(y, sr)
        logger.debug(f"librosa decoded {buffer}")
        return buffer


class FallbackCodec(CodecAdapter):
    """Try several decoders in order; the first success wins"""

    name = "auto"

    def __init__(self, backends: Sequence[CodecAdapter], config: AudioConfig = None):
        super().__init__(config)
        if not backends:
            raise ConfigError("FallbackCodec needs at least one backend")
        self.backends = list(backends)

    def decode(self, data: bytes, context: DecodingContext,
               filename: Optional[str] = None) -> SampleBuffer:
        errors = []
        for backend in self.backends:
            try:
                return backend.decode(data, context, filename)
            except DecodeError as e:
                logger.debug(f"{backend.name} failed, trying next decoder: {e}")
                errors.append(f"{backend.name}: {e.message}")

        raise DecodeError("Unsupported or malformed audio (" + "; ".join(errors) + ")")

    def __repr__(self) -> str:
        names = ", ".join(b.name for b in self.backends)
        return f"FallbackCodec([{names}])"


def build_codec(name: str = "auto", config: AudioConfig = None) -> CodecAdapter:
    """
    Build a codec adapter by backend name.

    Args:
        name: 'auto', 'soundfile' or 'librosa'
        config: AudioConfig instance

    Returns:
        CodecAdapter
    """
    if name == "soundfile":
        return SoundfileCodec(config)
    if name == "librosa":
        return LibrosaCodec(config)
    if name == "auto":
        return FallbackCodec([SoundfileCodec(config), LibrosaCodec(config)], config)
    raise ConfigError(f"Unknown codec backend: {name}")
