"""
Command line interface for CloudScrub.

    cloudscrub [options] LOG_GROUP

Exit codes:
    0 - run finished (individual stream failures are logged, not fatal)
    1 - usage error or unparseable time
"""

import argparse
import logging
import re
import sys
from typing import Optional

from dotenv import load_dotenv

from .checkpoint import write_stream_list
from .clients import CloudWatchLogSource, S3ObjectStore, enable_aws_logging
from .config import ScrubConfig, compile_pattern
from .errors import TimeParseError, UsageError
from .orchestrator import RunOrchestrator
from .timeutil import timestring_to_stamp_ms

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudscrub",
        description="Download CloudWatch log streams, scrub sensitive content, "
                    "stash the results locally and in S3, and optionally delete the source.",
    )
    parser.add_argument("log_group", nargs="*", help="CloudWatch log group name")

    selection = parser.add_argument_group("stream selection")
    selection.add_argument("-s", "--start", help="Only streams with events at or after this time "
                                                 "(epoch seconds or ISO 8601)")
    selection.add_argument("-e", "--end", help="Only streams with events at or before this time")
    selection.add_argument("-l", "--list", action="store_true", dest="list_only",
                           help="List matching streams and exit")
    selection.add_argument("--stream-list-out", metavar="FILE",
                           help="With --list, write stream names to FILE instead of stdout")
    selection.add_argument("--stream-list", metavar="FILE",
                           help="Process the streams named in FILE instead of querying CloudWatch")
    selection.add_argument("--skip-file", metavar="FILE", help="Stream names to skip")
    selection.add_argument("--checkpoint-file", metavar="FILE",
                           help="Append completed stream names here and skip them on later runs")

    output = parser.add_argument_group("output")
    output.add_argument("-d", "--local-dir", default=".", help="Directory for scrubbed files")
    output.add_argument("--s3-url", help="Upload scrubbed files to s3://bucket/prefix")
    output.add_argument("--split-bytes", type=int, help="Rotate output files at this many bytes")
    output.add_argument("--date-folders", action="store_true",
                        help="Write files into YYYY-MM-DD folders by first event date")
    output.add_argument("--json-events", action="store_true",
                        help="Store JSON messages as structured values")
    output.add_argument("-k", "--keep", action="store_true", dest="keep_local",
                        help="Keep local files after upload")

    scrub = parser.add_argument_group("scrubbing")
    scrub.add_argument("--scrub-text", help="Remove every occurrence of this literal text")
    scrub.add_argument("--scrub-regex", help="Remove every match of this regular expression")
    scrub.add_argument("--scrub-jsonpath", action="append", default=[], metavar="PATH",
                       help="Remove JSON nodes matching this JSONPath (repeatable)")
    scrub.add_argument("--scrub-pii", action="store_true",
                       help="Remove PII detected by scrubadub")

    deletion = parser.add_argument_group("source deletion")
    deletion.add_argument("--delete", action="store_true",
                          help="Delete each source stream after processing")
    deletion.add_argument("--delete-matching", action="store_true",
                          help="Delete source streams that had scrubbed events")

    misc = parser.add_argument_group("misc")
    misc.add_argument("-n", "--dry-run", action="store_true",
                      help="Read from AWS but do not upload or delete anything")
    misc.add_argument("--aws-log-file", help="Write AWS SDK debug logs to this file")
    misc.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    misc.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")
    return parser


def config_from_args(args: argparse.Namespace) -> ScrubConfig:
    """
    Translate parsed arguments to a ScrubConfig.

    Raises:
        UsageError: For conflicting options.
        TimeParseError: For unparseable --start/--end values.
    """
    if args.scrub_text and args.scrub_regex:
        raise UsageError("--scrub-text and --scrub-regex are mutually exclusive")
    if args.stream_list_out and not args.list_only:
        raise UsageError("--stream-list-out requires --list")

    if args.scrub_regex:
        try:
            scrub_pattern = compile_pattern(args.scrub_regex, regex=True)
        except re.error as e:
            raise UsageError(f"Invalid --scrub-regex {args.scrub_regex!r}: {e}") from e
    else:
        scrub_pattern = args.scrub_text or None

    try:
        return ScrubConfig(
            start_time=timestring_to_stamp_ms(args.start) if args.start else None,
            end_time=timestring_to_stamp_ms(args.end) if args.end else None,
            list_only=args.list_only,
            stream_list_file=args.stream_list,
            skip_file=args.skip_file,
            checkpoint_file=args.checkpoint_file,
            local_dir=args.local_dir,
            s3_url=args.s3_url,
            split_bytes=args.split_bytes,
            date_folders=args.date_folders,
            json_events=args.json_events,
            scrub_pattern=scrub_pattern,
            scrub_jsonpaths=list(args.scrub_jsonpath),
            scrub_pii=args.scrub_pii,
            delete=args.delete,
            delete_matching=args.delete_matching,
            keep_local=args.keep_local,
            dry_run=args.dry_run,
        )
    except ValueError as e:
        if isinstance(e, TimeParseError):
            raise
        raise UsageError(str(e)) from e


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[list[str]] = None, source=None, store=None) -> int:
    """
    Entry point for the ``cloudscrub`` command.

    ``source`` and ``store`` default to live CloudWatch/S3 collaborators.
    """
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if len(args.log_group) != 1:
            raise UsageError(f"Expected exactly one LOG_GROUP, got {len(args.log_group)}")
        config = config_from_args(args)
    except (UsageError, TimeParseError) as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 1

    setup_logging(args.verbose, args.quiet)
    if args.aws_log_file:
        enable_aws_logging(args.aws_log_file)

    group_name = args.log_group[0]
    source = source or CloudWatchLogSource(dry_run=config.dry_run)
    if config.s3_url:
        store = store or S3ObjectStore(dry_run=config.dry_run)

    orchestrator = RunOrchestrator(group_name, config, source, store)

    if config.list_only:
        names = orchestrator.list_streams()
        if args.stream_list_out:
            write_stream_list(args.stream_list_out, names)
            logger.info(f"Wrote {len(names)} stream names to {args.stream_list_out!r}")
        else:
            for name in names:
                print(name)
        return 0

    orchestrator.run()
    return 0
