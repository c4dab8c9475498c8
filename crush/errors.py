"""Exception types raised by the crush engine."""


class CrushError(Exception):
    """Base class for crush errors."""


class ConfigurationError(CrushError, ValueError):
    """Malformed specs, partition maps, placeholders or codec names."""


class HeterogeneousRecordsError(CrushError, ValueError):
    """A bucket member's record types differ from the first member's."""


class BucketerStateError(CrushError, RuntimeError):
    """Bucketer called outside the reset -> add -> create_buckets order."""


class CrushJobError(CrushError, RuntimeError):
    """One or more partition tasks failed after exhausting their attempts."""

    def __init__(self, message: str, failed_partitions=None):
        super().__init__(message)
        self.failed_partitions = failed_partitions or {}
