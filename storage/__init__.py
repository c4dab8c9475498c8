"""Storage backends for FileCrush."""
from .base import StorageBackend, LocalStorage, S3Storage

__all__ = [
    "StorageBackend",
    "LocalStorage",
    "S3Storage",
]
