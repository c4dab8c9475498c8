"""
Codec registry.

Maps codec identifiers used in crush specs ("text", "ndjson", "parquet") to
``Codec`` classes. Lookups happen once when specs are loaded, never per
record.

Usage:
    from crush.codecs import get_codec

    codec = get_codec("text")
    reader = codec.open_reader(storage, "logs/2024/01/part-0001")
"""
import logging
from typing import Dict, List, Type

from crush.errors import ConfigurationError
from .base import Codec, Record, RecordReader, RecordWriter

logger = logging.getLogger(__name__)

_CODECS: Dict[str, Type[Codec]] = {}


def register_codec(name: str):
    """Class decorator registering a codec under ``name``."""
    def decorator(cls: Type[Codec]) -> Type[Codec]:
        if name in _CODECS and _CODECS[name] is not cls:
            raise ValueError(f"Codec already registered: {name}")
        cls.name = name
        _CODECS[name] = cls
        return cls
    return decorator


def get_codec(name: str, **kwargs) -> Codec:
    """
    Instantiate the codec registered under ``name``.

    Raises:
        ConfigurationError: No codec has that name
    """
    try:
        cls = _CODECS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown codec: {name} (available: {', '.join(available_codecs())})"
        ) from None
    return cls(**kwargs)


def available_codecs() -> List[str]:
    return sorted(_CODECS)


# Built-in codecs register themselves on import
from . import text, ndjson, parquet  # noqa: E402,F401

__all__ = [
    "Codec",
    "Record",
    "RecordReader",
    "RecordWriter",
    "register_codec",
    "get_codec",
    "available_codecs",
]
