"""
RunOrchestrator - resumable scrub runs over a whole log group.

A run resolves the streams to work on, then takes each one start to finish
before moving to the next:

1. Download, redact and write the stream (StreamProcessor)
2. Upload the written files to S3, when an S3 URL is configured
3. Delete the source stream, when ``delete`` is set, or ``delete_matching``
   is set and at least one event was scrubbed
4. Delete the local files, unless ``keep_local`` is set or nothing was
   uploaded (the local files are then the only copy)
5. Append the stream name to the checkpoint file

The checkpoint entry is written last. A run interrupted before that point
reprocesses the stream next time; uploads use deterministic keys, so the
repeat overwrites the same objects.

A failure in any step is contained to its stream: the stream is logged,
left out of the totals and the checkpoint, and its local files are removed
unless ``keep_local``, ``delete`` or ``delete_matching`` asks to retain them.

With ``dry_run`` the streams are still downloaded and written, but uploads
and source deletion are only logged, whatever the collaborators' own mode,
local files are kept and the checkpoint is left alone.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .checkpoint import append_checkpoint, load_checkpoint, read_stream_list
from .config import ScrubConfig, humansize, parse_s3_url
from .processor import ProcessResult, StreamProcessor
from .redaction import Redactor

logger = logging.getLogger(__name__)


class StreamCatalog(Protocol):
    def list_streams(self, group_name: str) -> list[dict[str, Any]]: ...

    def iter_events(self, group_name: str, stream_name: str): ...

    def delete_stream(self, group_name: str, stream_name: str) -> Any: ...


class ObjectStore(Protocol):
    def put(self, bucket: str, key: str, filename: Path) -> Any: ...


@dataclass
class StreamOutcome:
    """Result of one stream: success with its ProcessResult, or failure with an error."""
    stream: str
    result: ProcessResult
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, FileExistsError):
            return "file_exists"
        if isinstance(self.error, (ClientError, BotoCoreError)):
            return "aws"
        return "unexpected"


@dataclass
class RunTotals:
    """Aggregate counts over every stream that completed."""
    file_count: int = 0
    event_count: int = 0
    scrubbed_count: int = 0
    in_bytes: int = 0
    out_bytes: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def add(self, stream: str, result: ProcessResult) -> None:
        self.file_count += len(result.filenames)
        self.event_count += result.event_count
        self.scrubbed_count += result.scrubbed_count
        self.in_bytes += result.in_bytes
        self.out_bytes += result.out_bytes
        self.succeeded.append(stream)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_count": self.file_count,
            "event_count": self.event_count,
            "scrubbed_count": self.scrubbed_count,
            "in_bytes": self.in_bytes,
            "out_bytes": self.out_bytes,
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
        }


def filter_streams_by_time(
    streams: list[dict[str, Any]],
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
) -> list[dict[str, Any]]:
    """
    Keep streams with events inside the window.

    A stream qualifies when its last event is at or after ``start_time`` and
    its first event is at or before ``end_time``. Streams with no events have
    no timestamps and never match a bounded window.
    """
    if start_time is not None:
        streams = [
            s for s in streams
            if s.get("last_event_timestamp") is not None
            and s["last_event_timestamp"] >= start_time
        ]
    if end_time is not None:
        streams = [
            s for s in streams
            if s.get("first_event_timestamp") is not None
            and s["first_event_timestamp"] <= end_time
        ]
    return streams


class RunOrchestrator:
    """
    Drive a scrub run over one log group.

    Args:
        group_name: CloudWatch log group.
        config: Run options.
        source: Stream catalog and event source (CloudWatchLogSource).
        store: Object store (S3ObjectStore); required when config.s3_url is set.
        redactor: Defaults to Redactor.from_config(config).
    """

    def __init__(
        self,
        group_name: str,
        config: ScrubConfig,
        source: StreamCatalog,
        store: Optional[ObjectStore] = None,
        redactor: Optional[Redactor] = None,
    ):
        if config.s3_url and store is None:
            raise ValueError("An object store is required when s3_url is set")

        self.group_name = group_name
        self.config = config
        self.source = source
        self.store = store
        self.processor = StreamProcessor(source, redactor or Redactor.from_config(config), config)

    def list_streams(self) -> list[str]:
        """Candidate stream names for this run, sorted by name."""
        if self.config.stream_list_file:
            names = read_stream_list(self.config.stream_list_file)
        else:
            streams = self.source.list_streams(self.group_name)
            streams = filter_streams_by_time(
                streams, self.config.start_time, self.config.end_time
            )
            names = [s["name"] for s in streams]

        if not names:
            if self.config.stream_list_file:
                logger.warning(f"No stream names in {self.config.stream_list_file!r}")
            else:
                logger.warning(f"No streams found in {self.group_name!r} for time range")

        return sorted(set(names))

    def excluded_streams(self) -> set[str]:
        """Union of the skip list and the checkpoint."""
        excluded: set[str] = set()
        if self.config.skip_file:
            excluded.update(read_stream_list(self.config.skip_file))
        if self.config.checkpoint_file:
            excluded.update(load_checkpoint(self.config.checkpoint_file))
        return excluded

    def run(self) -> RunTotals:
        totals = RunTotals()
        candidates = self.list_streams()
        excluded = self.excluded_streams()

        pending = []
        for name in candidates:
            if name in excluded:
                totals.skipped.append(name)
            else:
                pending.append(name)

        logger.info(
            f"Processing {len(pending)} of {len(candidates)} streams in "
            f"{self.group_name!r} ({len(totals.skipped)} skipped){self.config.dry_tag}"
        )

        for index, stream in enumerate(pending, start=1):
            logger.info(f"[{index}/{len(pending)}] {stream}")
            outcome = self.process_stream(stream)
            if outcome.ok:
                totals.add(stream, outcome.result)
            else:
                totals.failed.append(stream)
                self._discard_failed(outcome)

        self.log_totals(totals)
        return totals

    def process_stream(self, stream: str) -> StreamOutcome:
        """Run the full pipeline for one stream, containing any failure."""
        result = ProcessResult()
        try:
            self.processor.process(self.group_name, stream, result)
            self._post_process(stream, result)
        except Exception as e:
            logger.error(f"Failed processing stream \"{self.group_name}/{stream}\": {e!r}")
            return StreamOutcome(stream, result, e)
        return StreamOutcome(stream, result)

    def _post_process(self, stream: str, result: ProcessResult) -> None:
        uploaded = False
        if self.config.s3_url:
            self.upload_files(result.filenames)
            uploaded = True

        if self.config.delete or (self.config.delete_matching and result.scrubbed_count > 0):
            self.delete_source(stream)

        # A dry run never really uploaded, so the local files are the only copy
        if uploaded and not self.config.keep_local and not self.config.dry_run:
            delete_local_files(result.filenames)

        if self.config.checkpoint_file:
            if self.config.dry_run:
                logger.info(f"Not checkpointing {stream!r}{self.config.dry_tag}")
            else:
                append_checkpoint(self.config.checkpoint_file, stream)

    def s3_key(self, filename: Path) -> tuple[str, str]:
        """Bucket and key for a local file: the S3 directory plus its path under local_dir."""
        bucket, directory = parse_s3_url(self.config.s3_url)
        relative = Path(filename).relative_to(self.config.local_dir).as_posix()
        key = f"{directory}/{relative}" if directory else relative
        return bucket, key

    def upload_files(self, filenames: list[Path]) -> None:
        for filename in filenames:
            bucket, key = self.s3_key(filename)
            if self.config.dry_run:
                logger.info(f"Uploading {str(filename)!r} to \"s3://{bucket}/{key}\"{self.config.dry_tag}")
                continue
            self.store.put(bucket, key, filename)

    def delete_source(self, stream: str) -> None:
        if self.config.dry_run:
            logger.info(f"Deleting stream \"{self.group_name}/{stream}\"{self.config.dry_tag}")
            return
        self.source.delete_stream(self.group_name, stream)

    def _discard_failed(self, outcome: StreamOutcome) -> None:
        if not outcome.result.filenames:
            return
        if self.config.retain_on_failure:
            logger.warning(
                f"Keeping {len(outcome.result.filenames)} local files of failed stream "
                f"{outcome.stream!r}"
            )
            return
        delete_local_files(outcome.result.filenames)

    def log_totals(self, totals: RunTotals) -> None:
        logger.info(
            f"Run complete: {totals.event_count} events ({totals.scrubbed_count} scrubbed) "
            f"in {totals.file_count} files from {len(totals.succeeded)} streams; "
            f"{humansize(totals.in_bytes)} in, {humansize(totals.out_bytes)} out"
        )
        if totals.failed:
            logger.error(f"{len(totals.failed)} streams failed: {', '.join(totals.failed)}")


def delete_local_file(filename: Path) -> None:
    logger.info(f"rm {str(filename)!r}")
    try:
        Path(filename).unlink()
    except FileNotFoundError:
        logger.debug(f"{str(filename)!r} already removed")


def delete_local_files(filenames: list[Path]) -> None:
    for filename in filenames:
        delete_local_file(filename)
