"""
Pytest configuration and shared fixtures for CloudScrub tests.

Uses moto to mock AWS services (CloudWatch Logs, S3) for safe, isolated
testing without real AWS credentials. Orchestrator scenarios use the
in-memory FakeLogSource/FakeObjectStore below instead.
"""

import os
import sys
import time

import pytest

# Add parent directory to path for server imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(autouse=True)
def set_aws_credentials():
    """
    Set mock AWS credentials for moto.
    This runs automatically before each test.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_REGION"] = "us-east-1"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    yield


@pytest.fixture
def cloudwatch_logs_client():
    """Provide a mocked CloudWatch Logs client."""
    import boto3
    from moto import mock_aws

    with mock_aws():
        client = boto3.client("logs", region_name="us-east-1")
        yield client


@pytest.fixture
def sample_log_group(cloudwatch_logs_client):
    """Create a log group with two streams of events, one containing secrets."""
    log_group_name = "/aws/lambda/test-function"
    timestamp = int(time.time() * 1000)

    cloudwatch_logs_client.create_log_group(logGroupName=log_group_name)

    streams = {
        "stream-a": [
            {"timestamp": timestamp - 5000, "message": '{"user": "bob", "password": "hunter2"}'},
            {"timestamp": timestamp - 4000, "message": "INFO: Starting function"},
        ],
        "stream-b": [
            {"timestamp": timestamp - 3000, "message": "INFO: nothing to see"},
        ],
    }
    for name, events in streams.items():
        cloudwatch_logs_client.create_log_stream(logGroupName=log_group_name, logStreamName=name)
        cloudwatch_logs_client.put_log_events(
            logGroupName=log_group_name, logStreamName=name, logEvents=events
        )

    return log_group_name


class FakeLogSource:
    """In-memory stream catalog and event source."""

    def __init__(self, streams=None, fail_after=None):
        # name -> list of {"timestamp", "message"}
        self.streams = dict(streams or {})
        # name -> number of events to yield before raising
        self.fail_after = dict(fail_after or {})
        self.deleted = []

    def list_streams(self, group_name):
        return [
            {
                "name": name,
                "first_event_timestamp": events[0]["timestamp"] if events else None,
                "last_event_timestamp": events[-1]["timestamp"] if events else None,
            }
            for name, events in self.streams.items()
        ]

    def iter_events(self, group_name, stream_name):
        for index, event in enumerate(self.streams[stream_name]):
            if self.fail_after.get(stream_name) == index:
                raise ConnectionError("source unavailable")
            yield dict(event)

    def delete_stream(self, group_name, stream_name):
        self.deleted.append(stream_name)
        return {}


class FakeObjectStore:
    """Records uploads as (bucket, key, content)."""

    def __init__(self, fail=False):
        self.fail = fail
        self.objects = []

    def put(self, bucket, key, filename):
        if self.fail:
            raise ConnectionError("upload failed")
        with open(filename, "rb") as f:
            self.objects.append((bucket, key, f.read()))
        return {}


@pytest.fixture
def fake_source():
    return FakeLogSource


@pytest.fixture
def fake_store():
    return FakeObjectStore
