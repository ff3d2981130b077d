"""
Error types raised by CloudScrub.

Per-stream faults (missing permissions, throttling that outlived the botocore
retry policy, an output file that already exists) are not represented here:
they surface as whatever the collaborator raised and are caught by the run
orchestrator.
"""


class CloudScrubError(Exception):
    """Base class for CloudScrub errors."""


class UsageError(CloudScrubError):
    """Malformed command line invocation."""


class TimeParseError(CloudScrubError, ValueError):
    """A time string is neither epoch seconds nor a calendar timestamp."""
