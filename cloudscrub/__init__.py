"""
CloudScrub - download, scrub, stash and delete CloudWatch log streams.

Log streams are pulled from CloudWatch Logs, sensitive content is removed from
every event before it touches disk, the scrubbed events are written to size
bounded files, optionally copied to S3, and the source stream optionally
deleted. A checkpoint file lets an interrupted run resume where it stopped.

Example:
    from cloudscrub import RunOrchestrator, ScrubConfig
    from cloudscrub.clients import CloudWatchLogSource, S3ObjectStore

    config = ScrubConfig(local_dir="out", s3_url="s3://bucket/logs",
                         scrub_jsonpaths=["$..password"], split_bytes=10_000_000)
    totals = RunOrchestrator("/aws/lambda/app", config,
                             CloudWatchLogSource(), S3ObjectStore()).run()
"""

from .config import ScrubConfig
from .orchestrator import RunOrchestrator, RunTotals, StreamOutcome
from .processor import ProcessResult, StreamProcessor
from .redaction import PatternRule, PiiRule, Redactor, StructuredPathRule
from .serializer import deserialize_event, serialize_event
from .writer import SplitWriter

__version__ = "0.1.0"

__all__ = [
    "ScrubConfig",
    "RunOrchestrator",
    "RunTotals",
    "StreamOutcome",
    "ProcessResult",
    "StreamProcessor",
    "PatternRule",
    "PiiRule",
    "Redactor",
    "StructuredPathRule",
    "deserialize_event",
    "serialize_event",
    "SplitWriter",
]
