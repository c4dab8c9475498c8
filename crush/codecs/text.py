"""
Tab-separated text records.

Keys and values are preserved as they appear in the file: a line is split
on its first TAB into key and value. A line without a TAB becomes
``(line, None)`` and is written back without a TAB, so crushing text files
reproduces every line byte for byte.
"""
import json
from typing import Any, Optional

from crush.codecs import register_codec
from crush.codecs.base import Codec, LineReader, LineWriter, Record, check_line_compression

TEXT = "text"


@register_codec("text")
class TextCodec(Codec):

    def __init__(self, compression: str = "none"):
        """
        Args:
            compression: Stream compression of written files ("none", "gzip", "zstd", ...)
        """
        self.compression = check_line_compression(compression)

    def open_reader(self, storage, path: str) -> "TextRecordReader":
        return TextRecordReader(path, storage.open(path, "rb"))

    def open_writer(self, storage, path: str, key_type: str, value_type: str, schema=None) -> "TextRecordWriter":
        return TextRecordWriter(
            path, storage.open(path, "wb"), key_type, value_type, compression=self.compression
        )


class TextRecordReader(LineReader):
    key_type = TEXT
    value_type = TEXT

    def next_record(self) -> Optional[Record]:
        line = self._next_line()
        if line is None:
            return None

        self.records_read += 1
        key, tab, value = line.partition("\t")
        return key, (value if tab else None)


class TextRecordWriter(LineWriter):

    def write(self, record: Record) -> None:
        key, value = record
        if key is None:
            self._write_line(_as_text(value))
        elif value is None:
            self._write_line(_as_text(key))
        else:
            self._write_line(f"{_as_text(key)}\t{_as_text(value)}")


def _as_text(obj: Any) -> str:
    if isinstance(obj, str):
        return obj
    return json.dumps(obj, separators=(',', ':'), default=str)
