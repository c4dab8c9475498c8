"""Config package."""
from .config import FileCrushConfig, CrushConfig, CrushSpecConfig, load_config, save_example_config

__all__ = ["FileCrushConfig", "CrushConfig", "CrushSpecConfig", "load_config", "save_example_config"]
