"""Tests for record codecs."""
import gzip
import pytest
from contextlib import closing
from pathlib import Path
import sys

import pyarrow as pa
import pyarrow.parquet as pq

sys.path.insert(0, str(Path(__file__).parent.parent))

from crush.codecs import available_codecs, get_codec
from crush.errors import ConfigurationError


def read_all(codec, storage, path):
    with closing(codec.open_reader(storage, path)) as reader:
        return list(reader)


def test_builtin_codecs_registered():
    assert available_codecs() == ["ndjson", "parquet", "text"]


def test_unknown_codec():
    with pytest.raises(ConfigurationError, match="Unknown codec: avro"):
        get_codec("avro")


def test_text_reader_splits_on_first_tab(storage):
    storage.write_bytes(b"key1\tvalue1\nkey2\tvalue\twith\ttabs\nno tab here\n\n", "in/a.txt")

    records = read_all(get_codec("text"), storage, "in/a.txt")

    assert records == [
        ("key1", "value1"),
        ("key2", "value\twith\ttabs"),
        ("no tab here", None),
        ("", None),
    ]


def test_text_reader_handles_crlf_and_missing_final_newline(storage):
    storage.write_bytes(b"a\tb\r\nlast", "in/a.txt")

    records = read_all(get_codec("text"), storage, "in/a.txt")

    assert records == [("a", "b"), ("last", None)]


def test_text_reader_types(storage):
    storage.write_bytes(b"x\n", "in/a.txt")

    with closing(get_codec("text").open_reader(storage, "in/a.txt")) as reader:
        assert (reader.key_type, reader.value_type) == ("text", "text")
        assert reader.schema is None
        reader.next_record()
        assert reader.next_record() is None
        assert reader.records_read == 1


def test_text_round_trip_is_byte_exact(storage):
    original = b"k\tv\nplain line\nk2\t\n\tonly value\n"
    storage.write_bytes(original, "in/a.txt")
    codec = get_codec("text")

    with closing(codec.open_writer(storage, "out/a.txt", "text", "text")) as writer:
        for record in read_all(codec, storage, "in/a.txt"):
            writer.write(record)

    assert storage.read_bytes("out/a.txt") == original


def test_text_round_trip_keeps_bytes_that_are_not_utf8(storage):
    original = b"caf\xe9\tx\nna\xefve\n"
    storage.write_bytes(original, "in/latin1.txt")
    codec = get_codec("text")

    records = read_all(codec, storage, "in/latin1.txt")
    with closing(codec.open_writer(storage, "out/latin1.txt", "text", "text")) as writer:
        for record in records:
            writer.write(record)

    assert len(records) == 2
    assert records[0][1] == "x"
    assert storage.read_bytes("out/latin1.txt") == original


def test_text_writer_serializes_non_text_values(storage):
    codec = get_codec("text")

    with closing(codec.open_writer(storage, "out/a.txt", "none", "json")) as writer:
        writer.write((None, {"a": 1}))
        writer.write(("k", [1, 2]))
        assert writer.records_written == 2

    assert storage.read_bytes("out/a.txt") == b'{"a":1}\nk\t[1,2]\n'


@pytest.mark.parametrize("name", ["text", "ndjson"])
def test_line_writer_compression(storage, name):
    codec = get_codec(name, compression="gzip")

    with closing(codec.open_writer(storage, "out/a.gz", "none", "json")) as writer:
        writer.write((None, {"a": 1}))
        writer.write((None, {"a": 2}))

    assert gzip.decompress(storage.read_bytes("out/a.gz")) == b'{"a":1}\n{"a":2}\n'


def test_line_writer_without_compression_is_plain(storage):
    codec = get_codec("text", compression="none")

    with closing(codec.open_writer(storage, "out/a.txt", "text", "text")) as writer:
        writer.write(("k", "v"))

    assert storage.read_bytes("out/a.txt") == b"k\tv\n"


@pytest.mark.parametrize("name", ["text", "ndjson"])
def test_line_codecs_reject_unsupported_compression(name):
    with pytest.raises(ConfigurationError, match="Unsupported compression for line output: snappy"):
        get_codec(name, compression="snappy")


def test_ndjson_reader(storage):
    storage.write_bytes(b'{"a":1}\n\n{"a":2}\n', "in/a.ndjson")

    records = read_all(get_codec("ndjson"), storage, "in/a.ndjson")

    assert records == [(None, {"a": 1}), (None, {"a": 2})]


def test_ndjson_reader_rejects_bad_line(storage):
    storage.write_bytes(b'{"a":1}\n{oops\n', "in/a.ndjson")

    with pytest.raises(ValueError, match="Invalid JSON on line 2 of in/a.ndjson"):
        read_all(get_codec("ndjson"), storage, "in/a.ndjson")


def test_ndjson_writer_wraps_keyed_records(storage):
    codec = get_codec("ndjson")

    with closing(codec.open_writer(storage, "out/a.ndjson", "text", "text")) as writer:
        writer.write((None, {"a": 1}))
        writer.write(("k", "v"))

    lines = storage.read_bytes("out/a.ndjson").decode("utf-8").splitlines()
    assert lines == ['{"a":1}', '{"key":"k","value":"v"}']


def test_parquet_round_trip(storage):
    table = pa.table({"id": [1, 2, 3], "name": ["a", "b", "c"]})
    with storage.open("in/a.parquet", "wb") as f:
        pq.write_table(table, f)

    codec = get_codec("parquet", batch_size=2)
    with closing(codec.open_reader(storage, "in/a.parquet")) as reader:
        assert reader.value_type.startswith("parquet:")
        assert reader.schema.names == ["id", "name"]
        records = list(reader)

    assert records == [
        (None, {"id": 1, "name": "a"}),
        (None, {"id": 2, "name": "b"}),
        (None, {"id": 3, "name": "c"}),
    ]

    with closing(codec.open_writer(storage, "out/a.parquet", "none", reader.value_type)) as writer:
        for record in records:
            writer.write(record)

    with storage.open("out/a.parquet", "rb") as f:
        result = pq.read_table(f)
    assert result.to_pylist() == table.to_pylist()


def test_parquet_writer_uses_given_schema(storage):
    schema = pa.schema([("a", pa.int32()), ("b", pa.float32())])
    codec = get_codec("parquet", batch_size=2)

    with closing(codec.open_writer(storage, "out/a.parquet", "none", "parquet", schema=schema)) as writer:
        writer.write((None, {"a": None, "b": None}))
        writer.write((None, {"a": None, "b": None}))
        writer.write((None, {"a": 7, "b": 1.5}))

    with storage.open("out/a.parquet", "rb") as f:
        result = pq.read_table(f)

    assert result.schema.field("a").type == pa.int32()
    assert result.schema.field("b").type == pa.float32()
    assert result.column("a").to_pylist() == [None, None, 7]


def test_parquet_writer_without_records_keeps_schema(storage):
    schema = pa.schema([("id", pa.int64())])
    codec = get_codec("parquet")

    with closing(codec.open_writer(storage, "out/empty.parquet", "none", "parquet", schema=schema)) as writer:
        assert writer.records_written == 0

    with storage.open("out/empty.parquet", "rb") as f:
        result = pq.read_table(f)

    assert result.num_rows == 0
    assert result.schema.field("id").type == pa.int64()


def test_parquet_schema_is_part_of_value_type(storage):
    with storage.open("in/a.parquet", "wb") as f:
        pq.write_table(pa.table({"id": [1]}), f)
    with storage.open("in/b.parquet", "wb") as f:
        pq.write_table(pa.table({"id": ["1"]}), f)

    codec = get_codec("parquet")
    with closing(codec.open_reader(storage, "in/a.parquet")) as a, \
            closing(codec.open_reader(storage, "in/b.parquet")) as b:
        assert a.value_type != b.value_type


def test_parquet_writer_stores_keyed_records(storage):
    codec = get_codec("parquet", compression="snappy")

    with closing(codec.open_writer(storage, "out/kv.parquet", "text", "text")) as writer:
        writer.write(("k1", "v1"))
        writer.write(("k2", None))

    with storage.open("out/kv.parquet", "rb") as f:
        rows = pq.read_table(f).to_pylist()
    assert rows == [{"key": "k1", "value": "v1"}, {"key": "k2", "value": None}]


def test_missing_source(storage):
    with pytest.raises(FileNotFoundError):
        get_codec("text").open_reader(storage, "in/missing.txt")
