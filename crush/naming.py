"""
Crush specs and output file naming.

A crush spec pairs a directory regex with an output name template and the
codecs used to read and write that directory's files. Specs are evaluated
in order and the first regex that matches the whole directory path wins.

Output names are computed in two steps:

1. ``${placeholder}`` tokens in the template are replaced with run-scoped
   values (``crush.task.num``, ``crush.timestamp``, ``crush.file.num``).
2. ``$N`` backreferences are resolved against the directory regex's groups.

The result is appended to the directory, so every crushed file lives in a
mirror of its source directory.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from crush.errors import ConfigurationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\$\{([a-zA-Z][a-zA-Z.]*)\}")
BACKREFERENCE_PATTERN = re.compile(r"\$(\d+)")

TASK_NUM = "crush.task.num"
TIMESTAMP = "crush.timestamp"
FILE_NUM = "crush.file.num"


@dataclass(frozen=True)
class CrushSpec:
    """Ordered rule governing how a directory's buckets are merged and named."""
    pattern: "re.Pattern"
    replacement: str
    input_format: str = "text"
    output_format: str = "text"
    input_options: Dict[str, Any] = field(default_factory=dict, compare=False)
    output_options: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_config(cls, spec_config) -> "CrushSpec":
        return cls(
            pattern=re.compile(spec_config.regex),
            replacement=spec_config.replacement,
            input_format=spec_config.input_format,
            output_format=spec_config.output_format,
            input_options=dict(spec_config.input_options),
            output_options=dict(spec_config.output_options),
        )

    def matches(self, directory: str) -> bool:
        return self.pattern.fullmatch(directory) is not None


def find_spec(specs: Sequence[CrushSpec], directory: str) -> int:
    """
    Return the index of the first spec whose regex matches the whole directory.

    Raises:
        ConfigurationError: No spec matches
    """
    for idx, spec in enumerate(specs):
        if spec.matches(directory):
            return idx

    raise ConfigurationError(f"No matching input regex: {directory}")


def directory_for_bucket(bucket_name: str) -> str:
    """Strip the trailing "-<ordinal>" from a bucket name."""
    directory, sep, ordinal = bucket_name.rpartition("-")
    if not sep or not directory or not ordinal.isdigit():
        raise ConfigurationError(f"Not a bucket name: {bucket_name}")
    return directory


class OutputNamer:
    """
    Computes crush output file names for one worker.

    The file number placeholder comes from a counter that increases by one
    for every name computed, so successive buckets processed by the same
    worker never collide.

    Example:
        namer = OutputNamer(specs, task_num=1234, timestamp=98765)
        idx = find_spec(specs, "/x/dir/foo/bar")
        namer.calculate_output_file(idx, "/x/dir/foo/bar")
        # '/x/dir/foo/bar/secondregex-bar-98765-1234-0'
    """

    def __init__(self, specs: Sequence[CrushSpec], task_num: int, timestamp: int):
        self.specs: List[CrushSpec] = list(specs)
        self.task_num = task_num
        self.timestamp = timestamp
        self.file_num = 0

        self._placeholders: Dict[str, str] = {
            TASK_NUM: str(task_num),
            TIMESTAMP: str(timestamp),
        }

    def calculate_output_file(self, idx: int, directory: str) -> str:
        """
        Convert a directory to the path of its crush output file.

        Args:
            idx: Index of the spec selected by find_spec()
            directory: Directory the bucket's files live in

        Returns:
            "<directory>/<resolved template>"
        """
        spec = self.specs[idx]

        self._placeholders[FILE_NUM] = str(self.file_num)
        self.file_num += 1

        filled = PLACEHOLDER_PATTERN.sub(self._placeholder_value, spec.replacement)

        match = spec.pattern.fullmatch(directory)
        if match is None:
            raise ConfigurationError(
                f"Directory {directory} does not match input regex {spec.pattern.pattern}"
            )

        def backreference(m: "re.Match") -> str:
            group = int(m.group(1))
            try:
                return match.group(group) or ""
            except IndexError:
                raise ConfigurationError(
                    f"No group {group} in input regex {spec.pattern.pattern}: {spec.replacement}"
                ) from None

        resolved = BACKREFERENCE_PATTERN.sub(backreference, filled)

        return f"{directory}/{resolved}"

    def _placeholder_value(self, m: "re.Match") -> str:
        key = m.group(1)
        try:
            return self._placeholders[key]
        except KeyError:
            raise ConfigurationError(f"No value for key: {key}") from None
