"""
Weight-balancing bin packer.

Arranges weighted items (files, or whole buckets in the partition pass) into
buckets of roughly equal byte totals. Callers interact with a ``Bucketer``
in this order:

1. ``reset(name)``
2. ``add(item)`` zero or more times
3. ``create_buckets()``
4. Go to 1 or throw the instance away.

The algorithm is:

1. Number of buckets = ceil(total bytes / bucket size), capped at
   ``max_buckets``. With a bucket size of zero exactly ``max_buckets`` are
   created.
2. Sort the items by descending size.
3. Add each item to the bucket that currently has the fewest bytes (LPT).
4. Optionally remove buckets holding fewer than two items.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from crush.errors import BucketerStateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeightedItem:
    """A named item with a byte size, usually a source file."""
    id: str
    size: int


@dataclass
class Bucket:
    """
    Named group of items scheduled to be merged together.

    A bucket exposes ``id`` and ``size`` like a ``WeightedItem`` so a whole
    bucket can be packed again as one opaque item.
    """
    name: str
    ordinal: int = 0
    contents: List[str] = field(default_factory=list)
    bytes: int = 0

    @property
    def id(self) -> str:
        return self.name

    @property
    def size(self) -> int:
        return self.bytes

    def add(self, item) -> None:
        self.contents.append(item.id)
        self.bytes += item.size

    def __eq__(self, other) -> bool:
        if not isinstance(other, Bucket):
            return NotImplemented
        return (
            self.name == other.name
            and self.bytes == other.bytes
            and self.contents == other.contents
        )

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"Bucket[{self.name}, {self.bytes}, {self.contents}]"


class Bucketer:
    """
    Greedy bin packer with a bounded approximation ratio.

    Example:
        bucketer = Bucketer(max_buckets=5, bucket_size=64 * 1024 * 1024)

        bucketer.reset("/logs/2024/01/01")
        for path, size in files:
            bucketer.add(WeightedItem(path, size))

        buckets = bucketer.create_buckets()

    One instance holds one session at a time. Distinct directories use
    distinct instances or reuse one instance sequentially.
    """

    def __init__(
        self,
        max_buckets: int,
        bucket_size: int = 0,
        exclude_single_item_buckets: bool = True,
    ):
        """
        Initialize bucketer.

        Args:
            max_buckets: Maximum number of buckets to create (at least 1)
            bucket_size: Target bytes per bucket. Zero means always create
                        exactly max_buckets (fixed-count mode).
            exclude_single_item_buckets: Drop buckets with fewer than two
                        items from create_buckets()
        """
        if max_buckets < 1:
            raise ValueError(f"Must have at least one bucket: {max_buckets}")

        if bucket_size < 0:
            raise ValueError(f"Bucket size must be zero or positive: {bucket_size}")

        self.max_buckets = max_buckets
        self.bucket_size = bucket_size
        self.exclude_single_item_buckets = exclude_single_item_buckets

        self._directory: Optional[str] = None
        self._items: list = []
        self._size = 0

    @property
    def directory(self) -> Optional[str]:
        """Name of the active session, None when no session is active."""
        return self._directory

    def count(self) -> int:
        """Return the number of items being considered."""
        return len(self._items)

    def size(self) -> int:
        """Return the total size of all the items being considered."""
        return self._size

    def reset(self, name: str) -> None:
        """
        Start a session. The given name is used to name the buckets.

        Args:
            name: Directory or group name. Must not be None or empty.
        """
        if name is None:
            raise TypeError("Directory must not be None")

        if name == "":
            raise ValueError("Directory is empty")

        self._directory = name
        self._items = []
        self._size = 0

    def add(self, item) -> None:
        """Add an item for consideration. Items with zero size are ignored."""
        if self._directory is None:
            raise BucketerStateError("No directory set")

        if item is None:
            raise TypeError("Item must not be None")

        if item.size != 0:
            self._items.append(item)
            self._size += item.size

    def create_buckets(self) -> List[Bucket]:
        """
        Pack the pending items and end the session.

        Returns:
            Buckets ordered by ordinal. When single item buckets are excluded
            every bucket holds at least two items. reset() must be called
            before the instance is used again.
        """
        if self._directory is None:
            raise BucketerStateError("No directory set")

        # sorted() is stable, equal sizes keep insertion order
        items = sorted(self._items, key=lambda item: item.size, reverse=True)

        num_buckets = self._num_buckets()
        buckets = [Bucket(f"{self._directory}-{i}", ordinal=i) for i in range(num_buckets)]

        if num_buckets == 1:
            for item in items:
                buckets[0].add(item)
        elif num_buckets > 1:
            # Kept ascending by bytes, head is the smallest bucket
            by_size = list(buckets)
            for item in items:
                bucket = by_size.pop(0)
                bucket.add(item)

                position = len(by_size)
                for i, other in enumerate(by_size):
                    if other.bytes > bucket.bytes:
                        position = i
                        break
                by_size.insert(position, bucket)

        if self.exclude_single_item_buckets:
            dropped = [b for b in buckets if len(b.contents) < 2]
            buckets = [b for b in buckets if len(b.contents) >= 2]
            if dropped:
                logger.debug(
                    f"[Bucketer] {self._directory}: dropped {len(dropped)} bucket(s) "
                    f"with fewer than two items ({sum(b.bytes for b in dropped)} bytes)"
                )

        self._directory = None
        self._items = []
        self._size = 0

        return buckets

    def _num_buckets(self) -> int:
        if self._size <= 0:
            return 0
        if self.bucket_size == 0:
            return self.max_buckets
        # Integer ceiling, sizes can exceed float precision
        return min(self.max_buckets, -(-self._size // self.bucket_size))
