"""
Parquet records via PyArrow.

Rows are streamed batch by batch in both directions so a bucket never has
to fit in memory. Each row is a record ``(None, row_dict)``. The value type
carries the Arrow schema, so files with different schemas are rejected as
heterogeneous by the merge engine.
"""
import logging
from typing import Iterator, List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from crush.codecs import register_codec
from crush.codecs.base import Codec, Record, RecordReader, RecordWriter

logger = logging.getLogger(__name__)


def schema_type_name(schema: pa.Schema) -> str:
    """Type name used to compare parquet sources. Metadata is ignored."""
    return "parquet:" + schema.to_string(
        show_field_metadata=False,
        show_schema_metadata=False,
    )


@register_codec("parquet")
class ParquetCodec(Codec):

    def __init__(self, compression: str = "zstd", batch_size: int = 65_536):
        """
        Initialize Parquet codec.

        Args:
            compression: Compression codec for written files (zstd, snappy, gzip, none, etc.)
            batch_size: Rows per read batch and per written row group
        """
        self.compression = compression
        self.batch_size = batch_size

    def open_reader(self, storage, path: str) -> "ParquetRecordReader":
        return ParquetRecordReader(path, storage.open(path, "rb"), self.batch_size)

    def open_writer(
        self,
        storage,
        path: str,
        key_type: str,
        value_type: str,
        schema: Optional[pa.Schema] = None,
    ) -> "ParquetRecordWriter":
        return ParquetRecordWriter(
            path,
            storage.open(path, "wb"),
            key_type,
            value_type,
            schema=schema,
            compression=self.compression,
            batch_size=self.batch_size,
        )


class ParquetRecordReader(RecordReader):
    key_type = "none"

    def __init__(self, path: str, handle, batch_size: int):
        super().__init__(path)
        self._handle = handle
        try:
            self._file = pq.ParquetFile(handle)
        except Exception:
            handle.close()
            raise
        self.schema = self._file.schema_arrow
        self.value_type = schema_type_name(self.schema)
        self._rows = self._iter_rows(batch_size)

    def _iter_rows(self, batch_size: int) -> Iterator[dict]:
        for batch in self._file.iter_batches(batch_size=batch_size):
            yield from batch.to_pylist()

    def next_record(self) -> Optional[Record]:
        row = next(self._rows, None)
        if row is None:
            return None
        self.records_read += 1
        return None, row

    def close(self) -> None:
        try:
            self._file.close()
        finally:
            self._handle.close()


class ParquetRecordWriter(RecordWriter):
    """
    Buffers rows and writes them as row groups.

    With a source schema every batch is built against it, so column types
    are exactly those of the first input. Without one (records coming from
    another format) the schema is inferred from the first batch. Records
    whose value is not a row dict are stored as key/value columns.
    """

    def __init__(
        self,
        path: str,
        handle,
        key_type: str,
        value_type: str,
        schema: Optional[pa.Schema] = None,
        compression: str = "zstd",
        batch_size: int = 65_536,
    ):
        super().__init__(path, key_type, value_type)
        self._handle = handle
        self.compression = compression
        self.batch_size = batch_size
        self._rows: List[dict] = []
        self._schema = schema
        self._writer: Optional[pq.ParquetWriter] = None

    def write(self, record: Record) -> None:
        key, value = record
        if key is None and isinstance(value, dict):
            row = value
        else:
            row = {"key": key, "value": value}

        self._rows.append(row)
        self.records_written += 1

        if len(self._rows) >= self.batch_size:
            self._flush()

    def _flush(self) -> None:
        if not self._rows:
            return

        table = pa.Table.from_pylist(self._rows, schema=self._schema)
        if self._writer is None:
            self._schema = table.schema
            self._writer = pq.ParquetWriter(self._handle, self._schema, compression=self.compression)

        self._writer.write_table(table)
        self._rows = []

    def close(self) -> None:
        try:
            self._flush()
            if self._writer is not None:
                self._writer.close()
            elif self._schema is not None:
                # Empty sources still give a valid file with their schema
                pq.write_table(self._schema.empty_table(), self._handle, compression=self.compression)
            else:
                pq.write_table(pa.table({}), self._handle, compression=self.compression)
        finally:
            self._handle.close()
