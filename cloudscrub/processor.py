"""
StreamProcessor - download, redact and persist a single log stream.

Sensitive content must never reach the filesystem, so each event is redacted
before it is serialized and written. The stages themselves live in separate
units (Redactor, serializer, SplitWriter); this module only drives them in
order and keeps the per-stream counts.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from .config import ScrubConfig
from .redaction import Redactor, apply_structured
from .serializer import serialize_event
from .writer import SplitWriter

logger = logging.getLogger(__name__)


class LogEventSource(Protocol):
    """Ordered, single-pass event retrieval for one stream."""

    def iter_events(self, group_name: str, stream_name: str):
        """Yield ``{"timestamp": ms, "message": str}`` in ascending time order."""
        ...


@dataclass
class ProcessResult:
    """Per-stream processing statistics."""
    filenames: list[Path] = field(default_factory=list)
    event_count: int = 0
    scrubbed_count: int = 0
    in_bytes: int = 0  # message bytes received from CloudWatch
    out_bytes: int = 0  # message bytes after redaction


class StreamProcessor:
    """
    Pull events for a stream, redact them and write them to split files.

    Args:
        source: Event source (a CloudWatchLogSource in production).
        redactor: Redactor applied to every message.
        config: Output options (local_dir, split_bytes, date_folders, json_events).
    """

    def __init__(self, source: LogEventSource, redactor: Redactor, config: ScrubConfig):
        self.source = source
        self.redactor = redactor
        self.config = config

    def _persisted_message(self, message: str):
        if not self.config.json_events:
            return message
        # Zero rules with raw output only decodes; non-JSON stays a string
        value, _ = apply_structured(message, [], raw_output=True)
        return value if isinstance(value, (dict, list)) else message

    def process(
        self,
        group_name: str,
        stream_name: str,
        result: Optional[ProcessResult] = None,
    ) -> ProcessResult:
        """
        Process one stream.

        Args:
            group_name: Log group of the stream.
            stream_name: Stream to download.
            result: Result to fill in place. Pass one in to keep track of files
                    already written if processing fails part way through.

        Returns:
            The filled ProcessResult. A stream without events produces no
            files and zero counts.
        """
        if result is None:
            result = ProcessResult()

        logger.info(
            f"Downloading log stream \"{group_name}/{stream_name}\" to {self.config.local_dir!r}"
        )

        writer = SplitWriter(
            self.config.local_dir,
            stream_name,
            split_bytes=self.config.split_bytes,
            date_folders=self.config.date_folders,
        )
        # Share the list so files opened before a failure are visible to the caller
        writer.filenames = result.filenames

        with writer:
            for event in self.source.iter_events(group_name, stream_name):
                message = event["message"]
                result.in_bytes += len(message.encode("utf-8"))

                message, changed = self.redactor.redact(message)
                result.out_bytes += len(message.encode("utf-8"))

                record = serialize_event(
                    event["timestamp"],
                    group_name,
                    stream_name,
                    self._persisted_message(message),
                )
                writer.write(record.encode("utf-8"), event["timestamp"])

                result.event_count += 1
                if changed:
                    result.scrubbed_count += 1

        logger.info(
            f"Wrote {result.event_count} events ({result.scrubbed_count} scrubbed) "
            f"to {len(result.filenames)} files"
        )
        return result
