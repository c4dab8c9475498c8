"""
Base storage abstraction for FileCrush.

Provides unified interface for local and cloud storage backends.
All paths are relative to the storage root (local base_dir or S3 bucket).
A leading slash is ignored, so "/logs/2024" and "logs/2024" name the same
directory.
"""
import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, List, Dict, Any, IO

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    All implementations must support:
    - Path operations relative to a root (base_dir or bucket)
    - Streaming reads and writes through file-like handles
    - List, exists, delete operations
    """

    def __init__(self, base_path: str):
        """
        Initialize storage backend.

        Args:
            base_path: Root path for all operations (local dir or S3 bucket)
        """
        self.base_path = base_path

    @abstractmethod
    def open(self, path: str, mode: str = "rb") -> IO:
        """
        Open a file for streaming.

        Args:
            path: Relative path from base_path
            mode: "rb" or "wb". Writing creates missing parent directories
                  and truncates an existing file.

        Returns:
            Binary file-like object

        Raises:
            FileNotFoundError: Reading a path that does not exist
        """
        pass

    @abstractmethod
    def write_bytes(self, data: bytes, path: str) -> str:
        """
        Write bytes to storage.

        Args:
            data: Bytes to write
            path: Relative path from base_path

        Returns:
            Full path where data was written
        """
        pass

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """
        Read bytes from storage.

        Args:
            path: Relative path from base_path

        Returns:
            File contents as bytes
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if path exists."""
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """
        Delete a file.

        Args:
            path: Relative path from base_path

        Returns:
            True if deleted successfully
        """
        pass

    @abstractmethod
    def list_files(
        self,
        path: str = "",
        pattern: Optional[str] = None,
        recursive: bool = False
    ) -> List[Dict[str, Any]]:
        """
        List files in a directory.

        Args:
            path: Relative directory path from base_path
            pattern: Optional glob pattern matched against the file name
            recursive: Whether to list recursively

        Returns:
            List of file info dicts with keys: path, size, modified.
            Paths are relative to the storage root, "/"-separated.
        """
        pass

    @abstractmethod
    def get_full_path(self, path: str) -> str:
        """Get full path (local path or s3:// URI) for a relative path."""
        pass

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return backend type identifier ('local' or 's3')."""
        pass

    def join_path(self, *parts: str) -> str:
        """
        Join path components using forward slashes.

        Works consistently across local and S3 backends.
        """
        clean_parts = [p.strip("/") for p in parts if p and p.strip("/")]
        return "/".join(clean_parts)


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: str):
        """
        Initialize local storage.

        Args:
            base_path: Base directory for all operations
        """
        super().__init__(base_path)
        self.base_dir = Path(base_path).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        return "local"

    def _resolve_path(self, path: str) -> Path:
        """Convert relative path to absolute local path."""
        return self.base_dir / str(path).lstrip("/")

    def open(self, path: str, mode: str = "rb") -> IO:
        full_path = self._resolve_path(path)
        if "w" in mode:
            full_path.parent.mkdir(parents=True, exist_ok=True)
        return open(full_path, mode)

    def write_bytes(self, data: bytes, path: str) -> str:
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)
        return str(full_path)

    def read_bytes(self, path: str) -> bytes:
        return self._resolve_path(path).read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def delete(self, path: str) -> bool:
        full_path = self._resolve_path(path)
        try:
            if full_path.exists():
                full_path.unlink()
                return True
            return False
        except OSError as e:
            logger.warning(f"[LocalStorage] Could not delete {full_path}: {e}")
            return False

    def list_files(
        self,
        path: str = "",
        pattern: Optional[str] = None,
        recursive: bool = False
    ) -> List[Dict[str, Any]]:
        full_path = self._resolve_path(path)

        if not full_path.exists():
            return []

        files = full_path.rglob(pattern or "*") if recursive else full_path.glob(pattern or "*")

        result = []
        for f in files:
            if f.is_file():
                stat = f.stat()
                result.append({
                    "path": f.relative_to(self.base_dir).as_posix(),
                    "size": stat.st_size,
                    "modified": stat.st_mtime,
                })

        result.sort(key=lambda info: info["path"])
        return result

    def get_full_path(self, path: str) -> str:
        return str(self._resolve_path(path))


class S3Storage(StorageBackend):
    """AWS S3 storage backend."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_retries: int = 3,
    ):
        """
        Initialize S3 storage.

        Args:
            bucket: S3 bucket name (this is the base_path)
            region: AWS region (auto-detected if None)
            aws_access_key_id: AWS access key (uses environment/IAM if None)
            aws_secret_access_key: AWS secret key
            aws_session_token: Session token for temporary credentials
            endpoint_url: Custom endpoint for S3-compatible services
            max_retries: Attempts for whole-object puts and gets
        """
        super().__init__(bucket)
        self.bucket = bucket
        self.region = region
        self.max_retries = max_retries

        import boto3

        session_kwargs = {}
        if aws_access_key_id:
            session_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if aws_session_token:
            session_kwargs["aws_session_token"] = aws_session_token
        if region:
            session_kwargs["region_name"] = region

        self.s3_client = boto3.client("s3", **session_kwargs, endpoint_url=endpoint_url)

        # s3fs gives streaming file handles for the record codecs
        import s3fs

        s3fs_kwargs = {"anon": False}
        if aws_access_key_id and aws_secret_access_key:
            s3fs_kwargs["key"] = aws_access_key_id
            s3fs_kwargs["secret"] = aws_secret_access_key
        if aws_session_token:
            s3fs_kwargs["token"] = aws_session_token
        if endpoint_url:
            s3fs_kwargs["client_kwargs"] = {"endpoint_url": endpoint_url}

        self.s3fs = s3fs.S3FileSystem(**s3fs_kwargs)

    @property
    def backend_type(self) -> str:
        return "s3"

    def _get_s3_key(self, path: str) -> str:
        """Convert relative path to S3 key."""
        return str(path).lstrip("/")

    def open(self, path: str, mode: str = "rb") -> IO:
        return self.s3fs.open(self.get_full_path(path), mode)

    def _with_retries(self, action: str, key: str, fn):
        for attempt in range(self.max_retries):
            try:
                return fn()
            except Exception as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"[S3Storage] Failed to {action} {key} after {self.max_retries} attempts: {e}")
                    raise
                logger.warning(f"[S3Storage] {action} attempt {attempt + 1} failed for {key}, retrying...")
                time.sleep(2 ** attempt)

    def write_bytes(self, data: bytes, path: str) -> str:
        key = self._get_s3_key(path)
        self._with_retries(
            "upload", key,
            lambda: self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data),
        )
        return f"s3://{self.bucket}/{key}"

    def read_bytes(self, path: str) -> bytes:
        key = self._get_s3_key(path)
        response = self._with_retries(
            "read", key,
            lambda: self.s3_client.get_object(Bucket=self.bucket, Key=key),
        )
        return response["Body"].read()

    def exists(self, path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=self._get_s3_key(path))
            return True
        except self.s3_client.exceptions.ClientError:
            return False

    def delete(self, path: str) -> bool:
        key = self._get_s3_key(path)
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except self.s3_client.exceptions.ClientError as e:
            logger.warning(f"[S3Storage] Could not delete {key}: {e}")
            return False

    def list_files(
        self,
        path: str = "",
        pattern: Optional[str] = None,
        recursive: bool = False
    ) -> List[Dict[str, Any]]:
        prefix = self._get_s3_key(path)
        if prefix and not prefix.endswith("/"):
            prefix += "/"

        paginate_kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if not recursive:
            paginate_kwargs["Delimiter"] = "/"

        result = []
        paginator = self.s3_client.get_paginator("list_objects_v2")

        for page in paginator.paginate(**paginate_kwargs):
            for obj in page.get("Contents", []):
                key = obj["Key"]

                # Directory placeholder objects
                if key.endswith("/"):
                    continue

                if pattern and not fnmatch.fnmatch(key.split("/")[-1], pattern):
                    continue

                result.append({
                    "path": key,
                    "size": obj["Size"],
                    "modified": obj["LastModified"].timestamp(),
                })

        return result

    def get_full_path(self, path: str) -> str:
        return f"s3://{self.bucket}/{self._get_s3_key(path)}"
