import os

import numpy as np
import pytest

from audioclean.codec import (
    CodecAdapter, DecodingContext, FallbackCodec, LibrosaCodec, SoundfileCodec, build_codec
)
from audioclean.errors import ConfigError, DecodeError


class FailingCodec(CodecAdapter):
    name = "failing"

    def decode(self, data, context, filename=None):
        raise DecodeError("cannot read")


def test_soundfile_decodes_wav(stereo_wav_bytes, stereo_sine):
    with DecodingContext() as context:
        buffer = SoundfileCodec().decode(stereo_wav_bytes, context)

    assert buffer.sample_rate == 44100
    assert buffer.num_channels == 2
    assert buffer.frame_count == stereo_sine.frame_count
    assert np.allclose(buffer.samples, stereo_sine.samples, atol=1e-3)


def test_soundfile_rejects_garbage():
    with DecodingContext() as context:
        with pytest.raises(DecodeError):
            SoundfileCodec().decode(b"definitely not audio" * 10, context)


def test_librosa_decodes_wav_with_all_channels(stereo_wav_bytes):
    with DecodingContext() as context:
        buffer = LibrosaCodec().decode(stereo_wav_bytes, context, "clip.wav")

    assert buffer.sample_rate == 44100
    assert buffer.num_channels == 2


def test_fallback_uses_next_backend(stereo_wav_bytes):
    codec = FallbackCodec([FailingCodec(), SoundfileCodec()])
    with codec.open_context() as context:
        buffer = codec.decode(stereo_wav_bytes, context)

    assert buffer.num_channels == 2


def test_fallback_reports_every_failure():
    codec = FallbackCodec([FailingCodec(), FailingCodec()])
    with codec.open_context() as context:
        with pytest.raises(DecodeError) as excinfo:
            codec.decode(b"xx", context)

    assert excinfo.value.message.count("failing: cannot read") == 2


def test_context_removes_temp_files_on_error():
    with pytest.raises(RuntimeError):
        with DecodingContext() as context:
            path = context.temp_file(b"abc", suffix=".mp3")
            assert os.path.exists(path)
            raise RuntimeError("boom")

    assert not os.path.exists(path)
    assert context.closed


def test_build_codec():
    assert isinstance(build_codec("soundfile"), SoundfileCodec)
    assert isinstance(build_codec("librosa"), LibrosaCodec)

    auto = build_codec("auto")
    assert isinstance(auto, FallbackCodec)
    assert [b.name for b in auto.backends] == ["soundfile", "librosa"]

    with pytest.raises(ConfigError):
        build_codec("wavesurfer")
