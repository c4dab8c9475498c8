"""Tests for the per-partition worker."""
import re
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from crush.merger import MergeTask
from crush.naming import CrushSpec
from crush.worker import CrushWorker


@pytest.fixture
def worker(storage):
    specs = [CrushSpec(re.compile(".+"), "crushed-${crush.task.num}-${crush.file.num}")]
    return CrushWorker(
        partition=2,
        specs=specs,
        input_storage=storage,
        output_storage=storage,
        output_dir="out",
        timestamp=1,
    )


def test_run_merges_tasks_in_order(storage, write_lines, worker):
    write_lines("a/1", ["a1"])
    write_lines("a/2", ["a2", "a3"])
    write_lines("b/1", ["b1"])
    write_lines("b/2", ["b2"])

    tasks = [
        MergeTask("/a-0", "/a", ["/a/1", "/a/2"], 9),
        MergeTask("/b-0", "/b", ["/b/1", "/b/2"], 6),
    ]
    result = worker.run(tasks)

    assert result.partition == 2
    assert [r.output_path for r in result.results] == [
        "out/crush/a/crushed-2-0",
        "out/crush/b/crushed-2-1",
    ]
    assert result.stats.buckets_crushed == 2
    assert result.stats.files_crushed == 4
    assert result.stats.records_crushed == 5
    assert result.stats.bytes_in == 15
    assert result.provenance == [
        ("/a/1", "out/crush/a/crushed-2-0"),
        ("/a/2", "out/crush/a/crushed-2-0"),
        ("/b/1", "out/crush/b/crushed-2-1"),
        ("/b/2", "out/crush/b/crushed-2-1"),
    ]


def test_run_stops_at_first_failure(storage, write_lines, worker):
    write_lines("a/1", ["a1"])
    write_lines("a/2", ["a2"])
    write_lines("c/1", ["c1"])
    write_lines("c/2", ["c2"])

    tasks = [
        MergeTask("/a-0", "/a", ["/a/1", "/a/2"]),
        MergeTask("/b-0", "/b", ["/b/missing1", "/b/missing2"]),
        MergeTask("/c-0", "/c", ["/c/1", "/c/2"]),
    ]

    with pytest.raises(FileNotFoundError):
        worker.run(tasks)

    assert storage.exists("out/crush/a/crushed-2-0")
    assert not storage.exists("out/crush/c/crushed-2-2")


def test_run_without_tasks(worker):
    result = worker.run([])

    assert result.results == []
    assert result.stats.buckets_crushed == 0
