"""
AWS collaborators - CloudWatch Logs and S3 access for CloudScrub.

Clients are built explicitly and handed to the orchestrator; there is no
process wide client state. Retries are left to botocore's retry policy.

Dry run:
    Read calls (listing streams, fetching events) always go to AWS. Calls that
    change anything (deleting a stream, uploading an object) are logged with a
    ``[DRY-RUN]`` tag and answered with an empty stub response instead.
"""

import logging
import os
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import boto3

from .config import DRY_RUN_TAG

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"


def get_cloudwatch_client():
    """Create and return a CloudWatch Logs client using environment credentials."""
    return boto3.client(
        "logs",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name=os.getenv("AWS_REGION", DEFAULT_REGION)
    )


def get_s3_client():
    """Create and return an S3 client using environment credentials."""
    return boto3.client(
        "s3",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name=os.getenv("AWS_REGION", DEFAULT_REGION)
    )


def enable_aws_logging(aws_log_file: Union[str, Path]) -> logging.Handler:
    """Capture boto3/botocore debug logs (request ids, retries) in a file."""
    handler = logging.FileHandler(aws_log_file)
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s [%(levelname)s] %(message)s"))
    for name in ("boto3", "botocore"):
        aws_logger = logging.getLogger(name)
        aws_logger.setLevel(logging.DEBUG)
        aws_logger.addHandler(handler)
        aws_logger.propagate = False
    return handler


class CloudWatchLogSource:
    """
    Stream catalog, event source and stream deletion for one AWS account.

    Args:
        client: A boto3 ``logs`` client. Defaults to get_cloudwatch_client().
        dry_run: Suppress delete_stream.
    """

    def __init__(self, client=None, dry_run: bool = False):
        self.client = client or get_cloudwatch_client()
        self.dry_run = dry_run

    def list_streams(self, group_name: str) -> list[dict[str, Any]]:
        """
        Describe every stream in a log group.

        Returns:
            A list of descriptors with ``name`` and, when the stream has
            events, ``first_event_timestamp``/``last_event_timestamp``.
        """
        paginator = self.client.get_paginator("describe_log_streams")
        streams = []
        for page in paginator.paginate(logGroupName=group_name, orderBy="LastEventTime"):
            for stream in page.get("logStreams", []):
                streams.append({
                    "name": stream["logStreamName"],
                    "first_event_timestamp": stream.get("firstEventTimestamp"),
                    "last_event_timestamp": stream.get("lastEventTimestamp"),
                })
        return streams

    def iter_events(self, group_name: str, stream_name: str) -> Iterator[dict[str, Any]]:
        """
        Yield events from the start of a stream, oldest first.

        get_log_events has no boto3 paginator; the forward token is followed
        until CloudWatch hands back the token it was given.
        """
        params = {
            "logGroupName": group_name,
            "logStreamName": stream_name,
            "startFromHead": True,
        }
        token: Optional[str] = None

        while True:
            if token:
                params["nextToken"] = token
            response = self.client.get_log_events(**params)
            events = response.get("events", [])
            for event in events:
                yield {"timestamp": event["timestamp"], "message": event["message"]}

            next_token = response.get("nextForwardToken")
            if not events or next_token is None or next_token == token:
                break
            token = next_token

    def delete_stream(self, group_name: str, stream_name: str) -> dict[str, Any]:
        logger.info(f"Deleting stream \"{group_name}/{stream_name}\"{DRY_RUN_TAG if self.dry_run else ''}")
        if self.dry_run:
            return {}
        return self.client.delete_log_stream(logGroupName=group_name, logStreamName=stream_name)


class S3ObjectStore:
    """Single object uploads to S3."""

    def __init__(self, client=None, dry_run: bool = False):
        self.client = client or get_s3_client()
        self.dry_run = dry_run

    def put(self, bucket: str, key: str, filename: Union[str, Path]) -> dict[str, Any]:
        logger.info(
            f"Uploading {str(filename)!r} to \"s3://{bucket}/{key}\"{DRY_RUN_TAG if self.dry_run else ''}"
        )
        if self.dry_run:
            return {}
        with open(filename, "rb") as body:
            return self.client.put_object(Bucket=bucket, Key=key, Body=body)
