"""Test configuration fixtures."""
import pytest
from pathlib import Path
import tempfile
import shutil
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from storage.base import LocalStorage


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def storage(temp_dir):
    """Local storage rooted at the temporary directory."""
    return LocalStorage(str(temp_dir))


@pytest.fixture
def write_lines(storage):
    """Write text lines to a file under the storage root, return its path."""
    def _write(path, lines):
        data = "".join(f"{line}\n" for line in lines)
        storage.write_bytes(data.encode("utf-8"), path)
        return path
    return _write


@pytest.fixture
def sample_config_dict():
    """Sample configuration for testing."""
    return {
        "storage": {
            "input_storage": {"backend": "local", "base_dir": "./test_data"},
            "output_storage": {"backend": "local", "base_dir": "./test_data"},
            "paths": {"input_dir": "logs", "output_dir": "crushed"},
        },
        "crush": {
            "specs": [
                {
                    "regex": "/logs/(.+)",
                    "replacement": "$1-${crush.timestamp}-${crush.task.num}-${crush.file.num}",
                },
            ],
            "bucket_size_mb": 1,
            "num_workers": 2,
        },
        "log_level": "DEBUG",
    }
