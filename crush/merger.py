"""
Merge engine.

Streams the members of one bucket, in order, into a single output file.
Merging is concatenation with reformatting: records keep the order they
have in their source file and source files keep the order they have in the
bucket. Nothing is sorted.

A bucket is merged completely or not at all. Any failure (missing source,
codec error, heterogeneous record types) closes the output best-effort,
removes the partial file and re-raises the original exception.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from crush.bucketer import Bucket
from crush.codecs import Codec, RecordReader, RecordWriter, get_codec
from crush.errors import HeterogeneousRecordsError
from crush.naming import CrushSpec, OutputNamer, directory_for_bucket, find_spec
from crush.stats import CrushStats

if TYPE_CHECKING:
    from storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class MergeTask:
    """One bucket to merge: its name, directory and ordered source paths."""
    bucket_name: str
    directory: str
    source_paths: List[str]
    bytes: int = 0

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> "MergeTask":
        return cls(
            bucket_name=bucket.name,
            directory=directory_for_bucket(bucket.name),
            source_paths=list(bucket.contents),
            bytes=bucket.bytes,
        )


@dataclass
class MergeResult:
    """Output of one merged bucket."""
    bucket_name: str
    output_path: str
    provenance: List[Tuple[str, str]] = field(default_factory=list)
    stats: CrushStats = field(default_factory=CrushStats)


class BucketMerger:
    """
    Merges buckets for one worker.

    Holds the worker's output namer (and with it the file number counter)
    and a progress counter used only for status reporting. Nothing else
    survives between merge() calls, so a failed bucket can be merged again
    from scratch.

    Example:
        merger = BucketMerger(
            specs=specs,
            input_storage=storage,
            output_storage=storage,
            output_dir="crushed",
            task_num=0,
            timestamp=1700000000000,
        )
        result = merger.merge(MergeTask.from_bucket(bucket))
    """

    def __init__(
        self,
        specs: Sequence[CrushSpec],
        input_storage: "StorageBackend",
        output_storage: "StorageBackend",
        output_dir: str,
        task_num: int,
        timestamp: int,
        crush_subdir: str = "crush",
        report_every: int = 100,
        status_callback: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize merger.

        Args:
            specs: Ordered crush specs
            input_storage: Storage the source files are read from
            output_storage: Storage the crushed files are written to
            output_dir: Job output directory (relative to output_storage root)
            task_num: Worker/partition number, fills ${crush.task.num}
            timestamp: Run timestamp, fills ${crush.timestamp}
            crush_subdir: Subdirectory of output_dir holding crushed files
            report_every: Files processed before the first status report.
                          The threshold doubles after every report.
            status_callback: Receives status strings (default: log at INFO)
        """
        self.specs = list(specs)
        self.input_storage = input_storage
        self.output_storage = output_storage
        self.output_root = output_storage.join_path(output_dir, crush_subdir)
        self.namer = OutputNamer(self.specs, task_num=task_num, timestamp=timestamp)
        self.status_callback = status_callback or self._log_status

        self._files_processed = 0
        self._next_report = report_every

        # Codecs are resolved once, not per file
        self._codecs: Dict[Tuple[str, Tuple], Codec] = {}

    def merge(self, task: MergeTask) -> MergeResult:
        """
        Merge every source file of a bucket into one output file.

        Returns:
            MergeResult with the output path, (source, output) provenance
            pairs and the files/records counters

        Raises:
            ConfigurationError: No spec matches the bucket's directory
            HeterogeneousRecordsError: Record types differ between sources
            OSError: Missing or unreadable source, unwritable output
        """
        idx = find_spec(self.specs, task.directory)
        spec = self.specs[idx]

        output_file = self.namer.calculate_output_file(idx, task.directory)
        output_path = self.output_storage.join_path(self.output_root, output_file)

        logger.info(f"[BucketMerger] Crushing bucket '{task.bucket_name}' to file '{output_path}'")

        input_codec = self._codec(spec.input_format, spec.input_options)
        output_codec = self._codec(spec.output_format, spec.output_options)

        result = MergeResult(bucket_name=task.bucket_name, output_path=output_path)
        sink: Optional[RecordWriter] = None
        key_type = value_type = None

        try:
            for source_path in task.source_paths:
                logger.debug(f"[BucketMerger] Opening '{source_path}'")
                reader = input_codec.open_reader(self.input_storage, source_path)

                try:
                    if sink is None:
                        key_type, value_type = reader.key_type, reader.value_type
                        sink = output_codec.open_writer(
                            self.output_storage,
                            output_path,
                            key_type,
                            value_type,
                            schema=reader.schema,
                        )
                    else:
                        _check_types(reader, key_type, value_type)

                    for record in reader:
                        sink.write(record)
                        result.stats.records_crushed += 1
                except BaseException:
                    _close_quietly(reader, source_path)
                    raise
                else:
                    reader.close()

                result.provenance.append((source_path, output_path))
                result.stats.files_crushed += 1
                self._report(task.bucket_name, source_path)

        except BaseException:
            if sink is not None:
                _close_quietly(sink, output_path)
                self._remove_partial_output(output_path)
            raise
        else:
            if sink is not None:
                # Closing flushes buffered records and can still fail
                try:
                    sink.close()
                except BaseException:
                    self._remove_partial_output(output_path)
                    raise

        result.stats.buckets_crushed = 1
        result.stats.bytes_in = task.bytes

        logger.info(
            f"[BucketMerger] Crushed {result.stats.files_crushed} files "
            f"({result.stats.records_crushed:,} records) into {output_path}"
        )
        return result

    def _codec(self, name: str, options: dict) -> Codec:
        cache_key = (name, tuple(sorted(options.items())))
        if cache_key not in self._codecs:
            self._codecs[cache_key] = get_codec(name, **options)
        return self._codecs[cache_key]

    def _report(self, bucket_name: str, source_path: str) -> None:
        self._files_processed += 1
        if self._files_processed == self._next_report:
            self._next_report += self._next_report
            self.status_callback(
                f"Processed {self._files_processed:,} files {bucket_name} : {source_path}"
            )

    def _remove_partial_output(self, output_path: str) -> None:
        try:
            if self.output_storage.exists(output_path):
                self.output_storage.delete(output_path)
        except Exception as e:
            logger.error(f"[BucketMerger] Could not remove partial output {output_path}: {e}")

    @staticmethod
    def _log_status(status: str) -> None:
        logger.info(f"[BucketMerger] {status}")


def _check_types(reader: RecordReader, key_type: str, value_type: str) -> None:
    if reader.key_type != key_type:
        raise HeterogeneousRecordsError(
            f"Heterogeneous keys detected in {reader.path}: {key_type} != {reader.key_type}"
        )

    if reader.value_type != value_type:
        raise HeterogeneousRecordsError(
            f"Heterogeneous values detected in {reader.path}: {value_type} != {reader.value_type}"
        )


def _close_quietly(resource, path: str) -> None:
    """Close while another exception propagates; close errors are logged, not raised."""
    try:
        resource.close()
    except Exception:
        logger.error(f"[BucketMerger] Swallowing exception on close of {path}", exc_info=True)
