"""Tests for configuration loading and validation."""
import pytest
import yaml
from pathlib import Path
import sys

from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import FileCrushConfig, CrushSpecConfig, load_config, save_example_config


def test_defaults():
    config = FileCrushConfig()

    assert config.crush.num_workers == 4
    assert config.crush.bucket_size == 64 * 1024 * 1024
    assert config.crush.threshold == 0.75
    assert config.crush.max_task_attempts == 1
    assert len(config.crush.specs) == 1
    assert config.storage.paths.crush_subdir == "crush"
    assert config.storage.input_storage.backend == "local"


def test_load_config(temp_dir, sample_config_dict):
    path = temp_dir / "config.yaml"
    path.write_text(yaml.dump(sample_config_dict))

    config = load_config(str(path))

    assert config.log_level == "DEBUG"
    assert config.crush.num_workers == 2
    assert config.crush.specs[0].regex == "/logs/(.+)"
    assert config.crush.specs[0].input_format == "text"
    assert config.storage.paths.output_dir == "crushed"


def test_load_config_from_environment(temp_dir, sample_config_dict, monkeypatch):
    path = temp_dir / "from_env.yaml"
    path.write_text(yaml.dump(sample_config_dict))
    monkeypatch.setenv("FILECRUSH_CONFIG", str(path))

    assert load_config().crush.num_workers == 2


def test_load_config_missing_file(temp_dir):
    with pytest.raises(FileNotFoundError):
        load_config(str(temp_dir / "nope.yaml"))


def test_load_config_nothing_found(temp_dir, monkeypatch):
    monkeypatch.delenv("FILECRUSH_CONFIG", raising=False)
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", str(temp_dir))

    with pytest.raises(FileNotFoundError, match="No config file found"):
        load_config()


def test_empty_file_gives_defaults(temp_dir):
    path = temp_dir / "empty.yaml"
    path.write_text("")

    assert load_config(str(path)).crush.num_workers == 4


def test_example_config_loads(temp_dir):
    path = temp_dir / "example.yaml"
    save_example_config(str(path))

    config = load_config(str(path))

    assert [s.output_format for s in config.crush.specs] == ["parquet", "text"]


@pytest.mark.parametrize("field,value,message", [
    ("regex", "", "No input regex"),
    ("regex", "([unclosed", "Not a valid regex"),
    ("replacement", "", "No output replacement"),
    ("input_format", "sequence", "Not a file format: sequence"),
    ("output_format", "", "No format"),
])
def test_invalid_spec(field, value, message):
    spec = {"regex": ".+", "replacement": "out"}
    spec[field] = value

    with pytest.raises(ValidationError, match=message):
        CrushSpecConfig(**spec)


@pytest.mark.parametrize("crush", [
    {"specs": []},
    {"num_workers": 0},
    {"max_buckets_per_dir": 0},
    {"max_task_attempts": 0},
    {"bucket_size_mb": 0},
    {"threshold": 0},
    {"threshold": 1.5},
])
def test_invalid_crush_settings(crush):
    with pytest.raises(ValidationError):
        FileCrushConfig(crush=crush)


def test_unknown_backend():
    with pytest.raises(ValidationError):
        FileCrushConfig(storage={"input_storage": {"backend": "hdfs"}})
