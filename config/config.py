"""Configuration management for FileCrush."""
import os
import re
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, Literal, List
from pydantic import BaseModel, Field, field_validator, model_validator

from crush.codecs import available_codecs


class S3Config(BaseModel):
    """S3-specific configuration."""
    bucket: str = ""
    region: Optional[str] = None  # Auto-detected if None
    aws_access_key_id: Optional[str] = None  # Uses environment/IAM role if None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    endpoint_url: Optional[str] = None  # For S3-compatible services (MinIO, etc.)


class StorageLayerConfig(BaseModel):
    """Storage configuration for one side of the job (input or output)."""
    backend: Literal["local", "s3"] = "local"
    base_dir: str = "./data"
    s3: Optional[S3Config] = Field(default_factory=S3Config)


class PathConfig(BaseModel):
    """Path layout, relative to the storage roots."""
    input_dir: str = ""  # Tree scanned for small files (input storage)
    output_dir: str = "crush-output"  # Job output tree (output storage)
    crush_subdir: str = "crush"  # Crushed files, under output_dir
    partition_map: str = "_partition_map.ndjson"  # Under output_dir
    provenance_subdir: str = "provenance"  # Source -> crushed file records, under output_dir


class StorageConfig(BaseModel):
    """
    Storage configuration for the job.

    Small files are read from input_storage; crushed files, the partition
    map and provenance records go to output_storage. Both default to the
    same local directory, which is the usual setup.
    """
    input_storage: StorageLayerConfig = Field(default_factory=StorageLayerConfig)
    output_storage: StorageLayerConfig = Field(default_factory=StorageLayerConfig)
    paths: PathConfig = Field(default_factory=PathConfig)


class CrushSpecConfig(BaseModel):
    """
    One crush spec: directory regex, output name template and codecs.

    The template may use ${crush.task.num}, ${crush.timestamp},
    ${crush.file.num} and $N backreferences to the regex groups.
    """
    regex: str
    replacement: str
    input_format: str = "text"
    output_format: str = "text"
    input_options: Dict[str, Any] = Field(default_factory=dict)
    output_options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("regex")
    @classmethod
    def _regex_compiles(cls, value: str) -> str:
        if not value:
            raise ValueError("No input regex")
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Not a valid regex: {value} ({e})")
        return value

    @field_validator("replacement")
    @classmethod
    def _replacement_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("No output replacement")
        return value

    @field_validator("input_format", "output_format")
    @classmethod
    def _codec_registered(cls, value: str) -> str:
        if not value:
            raise ValueError("No format")
        if value not in available_codecs():
            raise ValueError(
                f"Not a file format: {value} (available: {', '.join(available_codecs())})"
            )
        return value


class CrushConfig(BaseModel):
    """Crush job configuration."""
    specs: List[CrushSpecConfig] = Field(
        default_factory=lambda: [
            CrushSpecConfig(
                regex=".+",
                replacement="crushed_file-${crush.timestamp}-${crush.task.num}-${crush.file.num}",
            )
        ]
    )
    bucket_size_mb: float = 64  # Target size of a crushed file (one block)
    max_buckets_per_dir: int = 100
    num_workers: int = 4  # Number of merge partitions
    threshold: float = 0.75  # Files of threshold * bucket size or more are left alone
    ignore_regex: Optional[str] = None
    report_every: int = 100
    delete_source_files: bool = False
    max_task_attempts: int = 1
    timestamp: Optional[int] = None  # Fixed run timestamp (ms), defaults to now
    compression: str = "zstd"  # For outputs without their own option, "none" disables

    @field_validator("specs")
    @classmethod
    def _at_least_one_spec(cls, value: List[CrushSpecConfig]) -> List[CrushSpecConfig]:
        if not value:
            raise ValueError("At least one crush spec is required")
        return value

    @field_validator("num_workers", "max_buckets_per_dir", "max_task_attempts", "report_every")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"Must be at least 1: {value}")
        return value

    @field_validator("bucket_size_mb")
    @classmethod
    def _positive_size(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"Bucket size must be positive: {value}")
        return value

    @model_validator(mode="after")
    def _threshold_range(self) -> "CrushConfig":
        if not 0 < self.threshold <= 1:
            raise ValueError(f"Threshold must be in (0, 1]: {self.threshold}")
        if self.ignore_regex:
            re.compile(self.ignore_regex)
        return self

    @property
    def bucket_size(self) -> int:
        """Bucket size in bytes."""
        return int(self.bucket_size_mb * 1024 * 1024)


class FileCrushConfig(BaseModel):
    """Root configuration for FileCrush."""
    storage: StorageConfig = Field(default_factory=StorageConfig)
    crush: CrushConfig = Field(default_factory=CrushConfig)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def load_config(config_path: Optional[str] = None) -> FileCrushConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for:
            1. FILECRUSH_CONFIG environment variable
            2. ./config/config.yaml
            3. ~/.filecrush/config.yaml

    Returns:
        FileCrushConfig instance
    """
    if config_path is None:
        config_path = os.environ.get("FILECRUSH_CONFIG")

        if config_path is None:
            candidates = [
                Path("./config/config.yaml"),
                Path.home() / ".filecrush" / "config.yaml",
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = str(candidate)
                    break

    if config_path is None:
        raise FileNotFoundError(
            "No config file found. Set FILECRUSH_CONFIG or create config/config.yaml"
        )

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        yaml_data = yaml.safe_load(f) or {}

    return FileCrushConfig(**yaml_data)


def save_example_config(output_path: str = "./config/config.example.yaml"):
    """
    Save an example configuration file.

    Args:
        output_path: Where to save the example config
    """
    example = {
        "storage": {
            "input_storage": {"backend": "local", "base_dir": "./data"},
            "output_storage": {"backend": "local", "base_dir": "./data"},
            "paths": {
                "input_dir": "logs",
                "output_dir": "crush-output",
            },
        },
        "crush": {
            "specs": [
                {
                    "regex": ".+/events/(.+)",
                    "replacement": "events-$1-${crush.timestamp}-${crush.task.num}-${crush.file.num}.parquet",
                    "input_format": "parquet",
                    "output_format": "parquet",
                    "output_options": {"compression": "zstd"},
                },
                {
                    "regex": ".+",
                    "replacement": "crushed_file-${crush.timestamp}-${crush.task.num}-${crush.file.num}",
                    "input_format": "text",
                    "output_format": "text",
                },
            ],
            "bucket_size_mb": 64,
            "max_buckets_per_dir": 100,
            "num_workers": 4,
            "threshold": 0.75,
            "delete_source_files": False,
        },
        "log_level": "INFO",
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.dump(example, f, default_flow_style=False, sort_keys=False)

    print(f"Example config saved to {output_path}")
