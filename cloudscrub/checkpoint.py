"""
Checkpoint and stream list files.

Both are plain text, one stream name per line. The checkpoint file is only
ever appended to: a stream name is written once the stream's whole pipeline
has finished, and a run loads the file once at start to skip those streams.
Duplicate lines are harmless.

Only one run may use a given checkpoint file at a time.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_names(path: PathLike) -> list[str]:
    with open(path, encoding="utf-8") as f:
        names = (line.rstrip("\r\n") for line in f)
        return [name for name in names if name.strip()]


def read_stream_list(path: PathLike) -> list[str]:
    """Read newline separated stream names, ignoring blank lines."""
    return _read_names(path)


def write_stream_list(path: PathLike, names: Iterable[str]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for name in names:
            f.write(name + "\n")


def load_checkpoint(path: PathLike) -> set[str]:
    """
    Load completed stream names, creating an empty checkpoint file if needed.

    The file is opened in append mode to create it, so existing content is
    never truncated.
    """
    with open(path, "a", encoding="utf-8"):
        pass
    names = set(_read_names(path))
    logger.info(f"Loaded {len(names)} completed streams from checkpoint {str(path)!r}")
    return names


def append_checkpoint(path: PathLike, stream_name: str) -> None:
    """Mark a stream as fully processed."""
    with open(path, "a", encoding="utf-8") as f:
        f.write(stream_name + "\n")
        f.flush()
