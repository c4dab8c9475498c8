"""
Partition assignment and routing.

After every directory has been bucketed, the buckets of the whole run are
packed once more, this time as opaque weighted items, into exactly ``R``
groups (one per merge worker). The resulting bucket -> partition pairs are
persisted as the partition map, written once and read by every worker
before merging.

Partition map format (NDJSON, one object per line):
    {"bucket":"/logs/2024/01/01-0","partition":0}
    {"bucket":"/logs/2024/01/02-0","partition":1}
"""
import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple, TYPE_CHECKING

from crush.bucketer import Bucket, Bucketer
from crush.errors import ConfigurationError
from crush.utils.serialization import from_ndjson, to_ndjson

if TYPE_CHECKING:
    from storage.base import StorageBackend

logger = logging.getLogger(__name__)

PARTITION_GROUP = "partitions"


def assign_partitions(buckets: Iterable[Bucket], num_partitions: int) -> Dict[str, int]:
    """
    Spread buckets evenly across a fixed number of partitions.

    Args:
        buckets: Every bucket produced in this run
        num_partitions: Number of merge workers (R)

    Returns:
        Mapping of bucket name to partition index in [0, R)
    """
    bucketer = Bucketer(num_partitions, 0, exclude_single_item_buckets=False)
    bucketer.reset(PARTITION_GROUP)

    for bucket in buckets:
        bucketer.add(bucket)

    assignments: Dict[str, int] = {}
    for group in bucketer.create_buckets():
        for bucket_name in group.contents:
            assignments[bucket_name] = group.ordinal

    logger.info(
        f"[Partitioning] Assigned {len(assignments)} buckets to "
        f"{len(set(assignments.values()))} of {num_partitions} partitions"
    )

    return assignments


def write_partition_map(
    storage: "StorageBackend",
    path: str,
    assignments: Dict[str, int],
) -> str:
    """
    Persist the partition map, ordered by partition then bucket name.

    Returns:
        Full path where the map was written
    """
    ordered = sorted(assignments.items(), key=lambda pair: (pair[1], pair[0]))
    data = "".join(
        to_ndjson({"bucket": bucket, "partition": partition})
        for bucket, partition in ordered
    )
    full_path = storage.write_bytes(data.encode("utf-8"), path)
    logger.info(f"[Partitioning] Wrote partition map with {len(ordered)} entries to {full_path}")
    return full_path


class PartitionRouter:
    """
    Routes buckets to the worker partition they were assigned to.

    The map is validated while it is loaded: a bucket may appear once, every
    partition index must lie in [0, R) and no more than R distinct
    partitions may be used. Any violation is a configuration error, the map
    is never partially loaded.

    Example:
        router = PartitionRouter.load(storage, "out/_partition_map.ndjson", 4)
        router.route("/logs/2024/01/01-0")  # 2
    """

    def __init__(self, assignments: Dict[str, int], num_partitions: int, source: str = "<memory>"):
        self._assignments = dict(assignments)
        self.num_partitions = num_partitions
        self.source = source

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[str, int]],
        num_partitions: int,
        source: str = "<memory>",
    ) -> "PartitionRouter":
        """Build a router from (bucket, partition) pairs, validating each one."""
        if num_partitions < 1:
            raise ConfigurationError(f"Number of partitions must be positive: {num_partitions}")

        assignments: Dict[str, int] = {}

        for bucket, partition in pairs:
            if partition < 0 or partition >= num_partitions:
                raise ConfigurationError(
                    f"Partition {partition} not allowed with {num_partitions} partitions"
                )

            if bucket in assignments:
                raise ConfigurationError(f"Bucket {bucket} appears more than once in {source}")

            assignments[bucket] = partition

        if len(set(assignments.values())) > num_partitions:
            raise ConfigurationError(
                f"{source} contains more than {num_partitions} distinct partitions"
            )

        return cls(assignments, num_partitions, source)

    @classmethod
    def load(cls, storage: "StorageBackend", path: str, num_partitions: int) -> "PartitionRouter":
        """Read and validate a persisted partition map."""
        try:
            content = storage.read_bytes(path).decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Could not read partition map from {path}") from e

        router = cls.from_pairs(_parse_map_lines(content, path), num_partitions, source=path)

        logger.info(
            f"[PartitionRouter] Loaded {len(router)} buckets across "
            f"{len(router.partitions())} partitions from {path}"
        )
        return router

    def route(self, bucket_name: str) -> int:
        """Return the partition index assigned to the bucket."""
        try:
            return self._assignments[bucket_name]
        except KeyError:
            raise ConfigurationError(
                f"Bucket {bucket_name} is not in partition map {self.source}"
            ) from None

    def partitions(self) -> List[int]:
        """Distinct partition indices in use, sorted."""
        return sorted(set(self._assignments.values()))

    def __len__(self) -> int:
        return len(self._assignments)

    def __contains__(self, bucket_name: str) -> bool:
        return bucket_name in self._assignments


def _parse_map_lines(content: str, path: str) -> Iterable[Tuple[str, int]]:
    for line_num, line in enumerate(content.splitlines(), 1):
        if not line.strip():
            continue

        try:
            entry = from_ndjson(line)
            bucket = entry["bucket"]
            partition = entry["partition"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ConfigurationError(
                f"Malformed partition map entry on line {line_num} of {path}: {line!r}"
            ) from e

        if not isinstance(bucket, str) or isinstance(partition, bool) or not isinstance(partition, int):
            raise ConfigurationError(
                f"Malformed partition map entry on line {line_num} of {path}: {line!r}"
            )

        yield bucket, partition


def group_by_partition(router: PartitionRouter, buckets: Iterable[Bucket]) -> Dict[int, List[Bucket]]:
    """Route every bucket and group them by partition, sorted by name within each."""
    grouped: Dict[int, List[Bucket]] = defaultdict(list)
    for bucket in buckets:
        grouped[router.route(bucket.name)].append(bucket)

    return {
        partition: sorted(members, key=lambda b: b.name)
        for partition, members in sorted(grouped.items())
    }
