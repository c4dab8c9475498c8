"""
Minimal contract for pluggable record formats.

A record is a ``(key, value)`` tuple. Readers report the key and value
types of the records they produce so the merge engine can reject buckets
whose members hold different kinds of records.
"""
from abc import ABC, abstractmethod
from typing import Any, IO, Iterator, Optional, Tuple, TYPE_CHECKING

import pyarrow as pa

from crush.errors import ConfigurationError

if TYPE_CHECKING:
    from storage.base import StorageBackend

Record = Tuple[Any, Any]

# Streaming compressions pyarrow can write; "none" writes plain lines
LINE_COMPRESSIONS = ("none", "gzip", "bz2", "lz4", "zstd", "brotli")


class RecordReader(ABC):
    """Streams records out of one source file."""

    key_type: str
    value_type: str
    # Format-native schema of the records, None for schemaless formats
    schema: Any = None

    def __init__(self, path: str):
        self.path = path
        self.records_read = 0

    @abstractmethod
    def next_record(self) -> Optional[Record]:
        """Return the next record, or None at end of file."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __iter__(self) -> Iterator[Record]:
        while True:
            record = self.next_record()
            if record is None:
                return
            yield record


class RecordWriter(ABC):
    """Writes records into one output file."""

    def __init__(self, path: str, key_type: str, value_type: str):
        self.path = path
        self.key_type = key_type
        self.value_type = value_type
        self.records_written = 0

    @abstractmethod
    def write(self, record: Record) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class Codec(ABC):
    """
    A file-oriented record format.

    Subclasses are registered under a short identifier with
    ``crush.codecs.register_codec`` and looked up by the identifiers used in
    the crush specs.
    """

    name: str = ""

    @abstractmethod
    def open_reader(self, storage: "StorageBackend", path: str) -> RecordReader:
        pass

    @abstractmethod
    def open_writer(
        self,
        storage: "StorageBackend",
        path: str,
        key_type: str,
        value_type: str,
        schema: Any = None,
    ) -> RecordWriter:
        """
        Open the output file.

        ``key_type``/``value_type`` and ``schema`` are those of the first
        source, so the output keeps the types of its inputs.
        """
        pass


def check_line_compression(compression: str) -> str:
    if compression not in LINE_COMPRESSIONS:
        raise ConfigurationError(
            f"Unsupported compression for line output: {compression} "
            f"(available: {', '.join(LINE_COMPRESSIONS)})"
        )
    return compression


class LineReader(RecordReader):
    """
    Shared plumbing for line-oriented formats.

    Lines are decoded as UTF-8 with surrogateescape, so bytes that are not
    valid UTF-8 pass through a reader/writer pair unchanged.
    """

    def __init__(self, path: str, handle: IO):
        super().__init__(path)
        self._handle = handle
        self.line_number = 0

    def _next_line(self) -> Optional[str]:
        raw = self._handle.readline()
        if not raw:
            return None
        self.line_number += 1
        line = raw.decode("utf-8", "surrogateescape")
        if line.endswith("\n"):
            line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
        return line

    def close(self) -> None:
        self._handle.close()


class LineWriter(RecordWriter):
    """Shared plumbing for line-oriented formats."""

    def __init__(
        self,
        path: str,
        handle: IO,
        key_type: str,
        value_type: str,
        compression: str = "none",
    ):
        super().__init__(path, key_type, value_type)
        self._handle = handle
        if compression == "none":
            self._stream = handle
        else:
            try:
                self._stream = pa.CompressedOutputStream(handle, compression)
            except Exception:
                handle.close()
                raise

    def _write_line(self, line: str) -> None:
        self._stream.write(line.encode("utf-8", "surrogateescape") + b"\n")
        self.records_written += 1

    def close(self) -> None:
        try:
            if self._stream is not self._handle:
                self._stream.close()
        finally:
            self._handle.close()
