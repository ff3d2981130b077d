"""
Run configuration for CloudScrub.

Every recognized option lives on ScrubConfig with its default. The command
line, the MCP tools and tests all build a ScrubConfig and hand it to the
orchestrator; nothing reads options from a loose dictionary.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Union

# Prefix placed before the log group name in the persisted ``type`` field
EVENT_TYPE_PREFIX = "cw_"

DRY_RUN_TAG = " [DRY-RUN]"


@dataclass
class ScrubConfig:
    """Options controlling a single scrub run."""

    # Stream selection
    start_time: Optional[int] = None  # ms since epoch, inclusive
    end_time: Optional[int] = None  # ms since epoch, inclusive
    list_only: bool = False
    stream_list_file: Optional[str] = None
    skip_file: Optional[str] = None
    checkpoint_file: Optional[str] = None

    # Output
    local_dir: str = "."
    s3_url: Optional[str] = None
    split_bytes: Optional[int] = None
    date_folders: bool = False
    json_events: bool = False

    # Redaction
    scrub_pattern: Optional[Union[str, Pattern[str]]] = None
    scrub_jsonpaths: list[str] = field(default_factory=list)
    scrub_pii: bool = False

    # Post processing
    delete: bool = False
    delete_matching: bool = False
    keep_local: bool = False
    dry_run: bool = False

    def __post_init__(self):
        if self.split_bytes is not None and self.split_bytes <= 0:
            raise ValueError(f"split_bytes must be positive, got {self.split_bytes}")
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time > self.end_time
        ):
            raise ValueError("start_time is after end_time")

    @property
    def retain_on_failure(self) -> bool:
        """Local files of a failed stream are kept when any of these is set."""
        return self.keep_local or self.delete or self.delete_matching

    @property
    def dry_tag(self) -> str:
        return DRY_RUN_TAG if self.dry_run else ""


def compile_pattern(pattern: str, regex: bool = False) -> Union[str, Pattern[str]]:
    """Return a literal pattern unchanged, or compile it when regex is set."""
    return re.compile(pattern) if regex else pattern


def parse_s3_url(s3_url: str) -> tuple[str, Optional[str]]:
    """
    Split an S3 URL into bucket and directory.

    Example:
        parse_s3_url("s3://my-bucket/logs/scrubbed/")
        # ("my-bucket", "logs/scrubbed")
    """
    s3_url = re.sub(r"^s3://", "", s3_url)
    bucket, _, directory = s3_url.partition("/")
    directory = directory.strip("/")
    return bucket, directory or None


def humansize(size: int) -> str:
    """Render a byte count with binary units, e.g. ``1.5 KiB``."""
    units = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB"]

    if size == 0:
        return "0.0 B"

    exp = int(math.log(size) / math.log(1024))
    if size / 1024 ** exp >= 1024 - 0.05:
        exp += 1
    exp = min(exp, len(units) - 1)

    return f"{size / 1024 ** exp:.1f} {units[exp]}"
