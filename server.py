"""
CloudScrub - MCP Server for scrubbing AWS CloudWatch log streams

A local MCP (Model Context Protocol) server that lets AI agents inspect and
scrub CloudWatch log groups. Scrubbed events are written locally and, when
requested, copied to S3.

Tools:
    - list_log_streams: List streams in a log group, optionally by time window
    - scrub_log_group: Download, scrub and stash every stream in a log group

Safety Constraints:
    - scrub_log_group defaults to dry_run=True (no uploads, no deletions)
    - Source streams are only deleted when explicitly requested
    - Stream lists are truncated to the first 100 names
"""

from typing import Any, Optional

from botocore.exceptions import ClientError, NoCredentialsError
from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from cloudscrub import RunOrchestrator, ScrubConfig
from cloudscrub.clients import CloudWatchLogSource, S3ObjectStore
from cloudscrub.config import compile_pattern, humansize
from cloudscrub.errors import TimeParseError
from cloudscrub.timeutil import timestring_to_stamp_ms

# Load environment variables from .env file
load_dotenv()

# Initialize MCP server
mcp = FastMCP(
    "cloudscrub",
    instructions="MCP Server for scrubbing sensitive content out of AWS CloudWatch log streams"
)

MAX_LISTED_STREAMS = 100

CREDENTIALS_MESSAGE = (
    "AWS credentials not found. Please set AWS_ACCESS_KEY_ID, "
    "AWS_SECRET_ACCESS_KEY, and AWS_REGION environment variables."
)


def _error_response(log_group_name: str, e: Exception) -> dict[str, Any]:
    if isinstance(e, NoCredentialsError):
        message = CREDENTIALS_MESSAGE
    elif isinstance(e, ClientError):
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        error_message = e.response.get("Error", {}).get("Message", str(e))
        message = f"AWS Error ({error_code}): {error_message}"
    elif isinstance(e, TimeParseError):
        message = str(e)
    else:
        message = f"Unexpected error: {str(e)}"
    return {"status": "error", "log_group": log_group_name, "message": message}


def _parse_window(start_time: str, end_time: str) -> tuple[Optional[int], Optional[int]]:
    return (
        timestring_to_stamp_ms(start_time) if start_time else None,
        timestring_to_stamp_ms(end_time) if end_time else None,
    )


@mcp.tool()
def list_log_streams(log_group_name: str, start_time: str = "", end_time: str = "") -> dict[str, Any]:
    """
    List the streams of a CloudWatch Log Group, sorted by name.

    Args:
        log_group_name: The CloudWatch Log Group. Example: "/aws/lambda/my-function"
        start_time: Only streams with events at or after this time.
                    Epoch seconds ("1700000000") or ISO 8601 ("2024-01-01T00:00:00Z").
        end_time: Only streams with events at or before this time.

    Returns:
        A dictionary containing:
        - status: "success" or "error"
        - log_group: The queried log group name
        - streams: Stream names (max 100)
        - count: Total number of matching streams
    """
    try:
        start_ms, end_ms = _parse_window(start_time, end_time)
        config = ScrubConfig(start_time=start_ms, end_time=end_ms, list_only=True)
        orchestrator = RunOrchestrator(log_group_name, config, CloudWatchLogSource())

        names = orchestrator.list_streams()

        return {
            "status": "success",
            "log_group": log_group_name,
            "streams": names[:MAX_LISTED_STREAMS],
            "count": len(names),
        }

    except Exception as e:
        return _error_response(log_group_name, e)


@mcp.tool()
def scrub_log_group(
    log_group_name: str,
    local_dir: str = ".",
    s3_url: str = "",
    scrub_jsonpaths: Optional[list[str]] = None,
    scrub_regex: str = "",
    scrub_pii: bool = False,
    start_time: str = "",
    end_time: str = "",
    split_bytes: int = 0,
    checkpoint_file: str = "",
    delete_matching: bool = False,
    dry_run: bool = True,
) -> dict[str, Any]:
    """
    Download every stream of a log group, scrub it, and stash the results.

    Args:
        log_group_name: The CloudWatch Log Group to scrub.
        local_dir: Directory the scrubbed files are written to.
        s3_url: Optional "s3://bucket/prefix" to upload scrubbed files to.
        scrub_jsonpaths: JSONPath expressions removed from JSON messages.
                         Example: ["$..password", "$.user.email"]
        scrub_regex: Regular expression removed from every message.
        scrub_pii: Remove PII detected by scrubadub (emails, credentials, ...).
        start_time: Only streams with events at or after this time.
        end_time: Only streams with events at or before this time.
        split_bytes: Rotate output files at this size (0 for one file per stream).
        checkpoint_file: File recording completed streams, for resumable runs.
        delete_matching: Delete source streams in which anything was scrubbed.
        dry_run: Read only; no uploads or deletions. Defaults to True.

    Returns:
        A dictionary containing:
        - status: "success" or "error"
        - log_group: The scrubbed log group name
        - totals: file/event/scrubbed counts, byte counts and stream names
        - summary: Human-readable byte summary
    """
    try:
        start_ms, end_ms = _parse_window(start_time, end_time)
        config = ScrubConfig(
            start_time=start_ms,
            end_time=end_ms,
            local_dir=local_dir,
            s3_url=s3_url or None,
            split_bytes=split_bytes or None,
            checkpoint_file=checkpoint_file or None,
            scrub_pattern=compile_pattern(scrub_regex, regex=True) if scrub_regex else None,
            scrub_jsonpaths=list(scrub_jsonpaths or []),
            scrub_pii=scrub_pii,
            delete_matching=delete_matching,
            dry_run=dry_run,
        )
        store = S3ObjectStore(dry_run=dry_run) if config.s3_url else None
        orchestrator = RunOrchestrator(
            log_group_name, config, CloudWatchLogSource(dry_run=dry_run), store
        )

        totals = orchestrator.run()

        return {
            "status": "success",
            "log_group": log_group_name,
            "dry_run": dry_run,
            "totals": totals.to_dict(),
            "summary": f"{humansize(totals.in_bytes)} in, {humansize(totals.out_bytes)} out",
        }

    except Exception as e:
        return _error_response(log_group_name, e)


if __name__ == "__main__":
    # Run the MCP server using stdio transport
    mcp.run()
