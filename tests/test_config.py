import pytest

from audioclean.config import AudioConfig, PipelineConfig, TransformConfig, output_filename
from audioclean.errors import ConfigError


def test_config_hash_is_deterministic():
    assert PipelineConfig().config_hash == PipelineConfig().config_hash
    assert (PipelineConfig().config_hash
            != PipelineConfig(audio=AudioConfig(FILTER_Q=2.0)).config_hash)


def test_save_and_load_roundtrip(tmp_path):
    config = PipelineConfig(audio=AudioConfig(MIN_PAUSE_SEC=0.25), codec="soundfile", n_workers=2)
    path = tmp_path / "config.json"
    config.save(str(path))

    loaded = PipelineConfig.load(str(path))

    assert loaded.audio.MIN_PAUSE_SEC == 0.25
    assert loaded.codec == "soundfile"
    assert loaded.n_workers == 2
    assert loaded.config_hash == config.config_hash


def test_load_rejects_malformed_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"audio": {}}')

    with pytest.raises(ConfigError):
        PipelineConfig.load(str(path))


def test_invalid_values_rejected():
    with pytest.raises(ConfigError):
        PipelineConfig(codec="webaudio")
    with pytest.raises(ConfigError):
        AudioConfig(BITRATE_MIN_KBPS=400.0)
    with pytest.raises(ConfigError):
        AudioConfig(BIT_DEPTH=24)


def test_transform_config_defaults():
    transforms = TransformConfig()
    assert transforms.to_dict() == {"filter_speech": False, "trim_pauses": False}


def test_output_filename():
    assert output_filename("uploads/song.mp3") == "processed_song.wav"
    assert output_filename("take.final.m4a") == "processed_take.final.wav"
    assert output_filename(None) == "processed_audio.wav"
