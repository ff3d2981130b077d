"""
SplitWriter - rotating file sink bounded by a byte budget.

A writer is scoped to one stream. Records are appended to the current file
until the next record would push it past ``split_bytes``; then the file is
closed and a new one is opened. A record is never split across files, so a
record larger than the budget gets a file of its own.

Files are opened in exclusive-create mode: a file left behind by an earlier
run is never overwritten or appended to, the stream fails instead.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .timeutil import utc_date_folder

logger = logging.getLogger(__name__)


@dataclass
class SplitFile:
    """The file currently open for writing."""
    path: Path
    sequence_index: int
    bytes_written: int = 0


def safe_stream_filename(stream_name: str) -> str:
    """Stream names such as ``2024/01/01/[$LATEST]abc`` contain path separators."""
    return stream_name.replace("/", "_").replace(os.sep, "_")


class SplitWriter:
    """
    Write records for one stream, rotating files by size.

    Example:
        with SplitWriter("out", "my-stream", split_bytes=1024) as writer:
            writer.write(b"...\\n", timestamp_ms)
        writer.filenames
        # [PosixPath("out/my-stream_part.0000.log"), ...]
    """

    def __init__(
        self,
        local_dir: Union[str, Path],
        stream_name: str,
        split_bytes: Optional[int] = None,
        date_folders: bool = False,
    ):
        self.local_dir = Path(local_dir)
        self.stream_name = stream_name
        self.split_bytes = split_bytes
        self.date_folders = date_folders

        self.filenames: list[Path] = []
        self.current: Optional[SplitFile] = None
        self._handle: Optional[BinaryIO] = None
        self._next_index = 0

    def _needs_new_file(self, size: int) -> bool:
        if self.current is None:
            return True
        if self.split_bytes is None:
            return False
        return self.current.bytes_written + size > self.split_bytes

    def _target_path(self, timestamp_ms: Optional[int]) -> Path:
        base = safe_stream_filename(self.stream_name)
        if self.split_bytes is not None:
            base += f"_part.{self._next_index:04d}.log"
        else:
            base += ".log"

        directory = self.local_dir
        if self.date_folders:
            if timestamp_ms is None:
                raise ValueError("Date folders require a record timestamp")
            directory = directory / utc_date_folder(timestamp_ms)
        return directory / base

    def _open_next(self, timestamp_ms: Optional[int]) -> None:
        self.close()

        path = self._target_path(timestamp_ms)
        path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Creating new output file {str(path)!r}")
        # "xb" raises FileExistsError rather than touching an existing file
        self._handle = open(path, "xb")
        self.filenames.append(path)
        self.current = SplitFile(path=path, sequence_index=self._next_index)
        self._next_index += 1

    def write(self, record: bytes, timestamp_ms: Optional[int] = None) -> None:
        """Write one whole record, opening a new file first if needed."""
        if self._needs_new_file(len(record)):
            self._open_next(timestamp_ms)

        self._handle.write(record)
        self.current.bytes_written += len(record)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self.current = None

    def __enter__(self) -> "SplitWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
