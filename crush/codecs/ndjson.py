"""NDJSON (newline-delimited JSON) records."""
import json
from typing import Optional

from crush.codecs import register_codec
from crush.codecs.base import Codec, LineReader, LineWriter, Record, check_line_compression
from crush.utils.serialization import from_ndjson, to_ndjson


@register_codec("ndjson")
class NDJSONCodec(Codec):
    """
    One JSON document per line.

    Records are ``(None, document)``. Blank lines are skipped; the first
    malformed line fails the read, so a crushed file holds every record of
    its sources or none of them.
    """

    def __init__(self, compression: str = "none"):
        self.compression = check_line_compression(compression)

    def open_reader(self, storage, path: str) -> "NDJSONRecordReader":
        return NDJSONRecordReader(path, storage.open(path, "rb"))

    def open_writer(self, storage, path: str, key_type: str, value_type: str, schema=None) -> "NDJSONRecordWriter":
        return NDJSONRecordWriter(
            path, storage.open(path, "wb"), key_type, value_type, compression=self.compression
        )


class NDJSONRecordReader(LineReader):
    key_type = "none"
    value_type = "json"

    def next_record(self) -> Optional[Record]:
        while True:
            line = self._next_line()
            if line is None:
                return None

            # Skip empty lines
            if not line.strip():
                continue

            try:
                document = from_ndjson(line)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"Invalid JSON on line {self.line_number} of {self.path}: {e}"
                ) from e

            self.records_read += 1
            return None, document


class NDJSONRecordWriter(LineWriter):

    def write(self, record: Record) -> None:
        key, value = record
        document = value if key is None else {"key": key, "value": value}
        self._write_line(to_ndjson(document).rstrip("\n"))
