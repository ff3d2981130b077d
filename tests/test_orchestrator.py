"""
Tests for RunOrchestrator.

Tests cover:
- Stream selection by time window, stream list, skip list and checkpoint
- Upload keys, source deletion rules and local file retention
- Failure isolation and cleanup of partial output
- Checkpoint resumability
- Dry runs
"""

import logging

import pytest

from cloudscrub import RunOrchestrator, ScrubConfig
from cloudscrub.checkpoint import append_checkpoint, load_checkpoint, read_stream_list
from cloudscrub.orchestrator import StreamOutcome, filter_streams_by_time
from cloudscrub.processor import ProcessResult

GROUP = "/aws/lambda/app"


def events(*messages, start=1000):
    return [{"timestamp": start + i, "message": m} for i, m in enumerate(messages)]


def local_files(root):
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


class TestStreamSelection:
    """Test suite for candidate stream resolution."""

    def test_filter_by_time_window(self):
        streams = [
            {"name": "early", "first_event_timestamp": 0, "last_event_timestamp": 10},
            {"name": "middle", "first_event_timestamp": 50, "last_event_timestamp": 60},
            {"name": "late", "first_event_timestamp": 100, "last_event_timestamp": 110},
            {"name": "empty", "first_event_timestamp": None, "last_event_timestamp": None},
        ]

        assert [s["name"] for s in filter_streams_by_time(streams, 10, 100)] == ["early", "middle", "late"]
        assert [s["name"] for s in filter_streams_by_time(streams, 11, None)] == ["middle", "late"]
        assert [s["name"] for s in filter_streams_by_time(streams, None, 49)] == ["early"]
        assert len(filter_streams_by_time(streams)) == 4

    def test_streams_sorted_by_name(self, tmp_path, fake_source):
        source = fake_source({"b": events("x"), "c": events("x"), "a": events("x")})
        orchestrator = RunOrchestrator(GROUP, ScrubConfig(local_dir=str(tmp_path)), source)

        assert orchestrator.list_streams() == ["a", "b", "c"]

    def test_stream_list_file(self, tmp_path, fake_source):
        stream_list = tmp_path / "streams.txt"
        stream_list.write_text("b\n\na\n")
        config = ScrubConfig(local_dir=str(tmp_path), stream_list_file=str(stream_list))
        orchestrator = RunOrchestrator(GROUP, config, fake_source({}))

        assert orchestrator.list_streams() == ["a", "b"]

    def test_skip_and_checkpoint_excluded(self, tmp_path, fake_source):
        skip = tmp_path / "skip.txt"
        skip.write_text("a\n")
        checkpoint = tmp_path / "done.txt"
        checkpoint.write_text("b\nb\n")
        out = tmp_path / "out"
        source = fake_source({"a": events("x"), "b": events("x"), "c": events("x")})
        config = ScrubConfig(local_dir=str(out), skip_file=str(skip), checkpoint_file=str(checkpoint))

        totals = RunOrchestrator(GROUP, config, source).run()

        assert totals.succeeded == ["c"]
        assert totals.skipped == ["a", "b"]
        assert local_files(out) == ["c.log"]


class TestPostProcessing:
    """Test suite for upload, deletion and retention decisions."""

    def test_upload_then_delete_local(self, tmp_path, fake_source, fake_store):
        store = fake_store()
        config = ScrubConfig(local_dir=str(tmp_path), s3_url="s3://bucket/logs/", split_bytes=1)
        orchestrator = RunOrchestrator(GROUP, config, fake_source({"s": events("a", "b")}), store)

        totals = orchestrator.run()

        assert [(b, k) for b, k, _ in store.objects] == [
            ("bucket", "logs/s_part.0000.log"),
            ("bucket", "logs/s_part.0001.log"),
        ]
        assert local_files(tmp_path) == []
        assert totals.file_count == 2

    def test_upload_key_includes_date_folder(self, tmp_path, fake_source, fake_store):
        store = fake_store()
        config = ScrubConfig(local_dir=str(tmp_path), s3_url="s3://bucket", date_folders=True)
        RunOrchestrator(GROUP, config, fake_source({"s": events("a", start=0)}), store).run()

        assert store.objects[0][:2] == ("bucket", "1970-01-01/s.log")

    def test_keep_local_after_upload(self, tmp_path, fake_source, fake_store):
        config = ScrubConfig(local_dir=str(tmp_path), s3_url="s3://bucket", keep_local=True)
        RunOrchestrator(GROUP, config, fake_source({"s": events("a")}), fake_store()).run()

        assert local_files(tmp_path) == ["s.log"]

    def test_no_upload_keeps_only_copy(self, tmp_path, fake_source):
        source = fake_source({"s": events("a")})
        RunOrchestrator(GROUP, ScrubConfig(local_dir=str(tmp_path), delete=True), source).run()

        assert local_files(tmp_path) == ["s.log"]
        assert source.deleted == ["s"]

    def test_delete_matching_only_scrubbed_streams(self, tmp_path, fake_source):
        source = fake_source({"dirty": events("secret here"), "clean": events("nothing")})
        config = ScrubConfig(local_dir=str(tmp_path), scrub_pattern="secret", delete_matching=True)

        totals = RunOrchestrator(GROUP, config, source).run()

        assert source.deleted == ["dirty"]
        assert totals.scrubbed_count == 1

    def test_no_delete_by_default(self, tmp_path, fake_source):
        source = fake_source({"s": events("secret")})
        RunOrchestrator(GROUP, ScrubConfig(local_dir=str(tmp_path), scrub_pattern="secret"), source).run()

        assert source.deleted == []

    def test_store_required_for_s3_url(self, fake_source):
        with pytest.raises(ValueError):
            RunOrchestrator(GROUP, ScrubConfig(s3_url="s3://bucket"), fake_source({}))


class TestFailureIsolation:
    """Test suite for per-stream failure handling."""

    def test_failed_stream_cleaned_up_and_excluded(self, tmp_path, fake_source):
        out = tmp_path / "out"
        checkpoint = tmp_path / "done.txt"
        source = fake_source(
            {"bad": events("a", "b"), "good": events("c")},
            fail_after={"bad": 1},
        )
        config = ScrubConfig(local_dir=str(out), checkpoint_file=str(checkpoint))

        totals = RunOrchestrator(GROUP, config, source).run()

        assert totals.failed == ["bad"]
        assert totals.succeeded == ["good"]
        assert totals.event_count == 1
        assert totals.file_count == 1
        assert local_files(out) == ["good.log"]
        assert checkpoint.read_text() == "good\n"

    @pytest.mark.parametrize("flag", ["keep_local", "delete", "delete_matching"])
    def test_failed_stream_files_retained(self, tmp_path, fake_source, flag):
        source = fake_source({"bad": events("a", "b")}, fail_after={"bad": 1})
        config = ScrubConfig(local_dir=str(tmp_path), **{flag: True})

        totals = RunOrchestrator(GROUP, config, source).run()

        assert totals.failed == ["bad"]
        assert local_files(tmp_path) == ["bad.log"]
        assert source.deleted == []

    def test_upload_failure_is_contained(self, tmp_path, fake_source, fake_store):
        checkpoint = tmp_path / "done.txt"
        out = tmp_path / "out"
        config = ScrubConfig(local_dir=str(out), s3_url="s3://bucket", checkpoint_file=str(checkpoint))

        totals = RunOrchestrator(GROUP, config, fake_source({"s": events("a")}), fake_store(fail=True)).run()

        assert totals.failed == ["s"]
        assert local_files(out) == []
        assert checkpoint.read_text() == ""

    def test_existing_output_file_fails_stream_only(self, tmp_path, fake_source):
        (tmp_path / "a.log").write_text("previous run\n")
        source = fake_source({"a": events("x"), "b": events("y")})

        orchestrator = RunOrchestrator(GROUP, ScrubConfig(local_dir=str(tmp_path)), source)
        outcome = orchestrator.process_stream("a")
        totals = orchestrator.run()

        assert outcome.error_kind == "file_exists"
        assert totals.failed == ["a"]
        assert totals.succeeded == ["b"]
        assert (tmp_path / "a.log").read_text() == "previous run\n"

    def test_outcome_kinds(self):
        assert StreamOutcome("s", ProcessResult()).ok
        assert StreamOutcome("s", ProcessResult(), ValueError()).error_kind == "unexpected"


class TestResumability:
    """Test suite for checkpointed runs."""

    def test_second_run_skips_completed(self, tmp_path, fake_source):
        checkpoint = tmp_path / "done.txt"
        source = fake_source({"a": events("x"), "b": events("y")})
        config = ScrubConfig(local_dir=str(tmp_path / "out"), checkpoint_file=str(checkpoint))

        first = RunOrchestrator(GROUP, config, source).run()
        second = RunOrchestrator(GROUP, config, source).run()

        assert first.succeeded == ["a", "b"]
        assert second.succeeded == []
        assert second.skipped == ["a", "b"]

    def test_checkpoint_created_empty(self, tmp_path):
        checkpoint = tmp_path / "done.txt"

        assert load_checkpoint(checkpoint) == set()
        assert checkpoint.exists()

    def test_checkpoint_replay_is_idempotent(self, tmp_path):
        checkpoint = tmp_path / "done.txt"
        append_checkpoint(checkpoint, "a")
        append_checkpoint(checkpoint, "a")

        assert load_checkpoint(checkpoint) == {"a"}
        assert checkpoint.read_text() == "a\na\n"

    def test_checkpoint_never_truncated(self, tmp_path):
        checkpoint = tmp_path / "done.txt"
        checkpoint.write_text("old\n")
        load_checkpoint(checkpoint)
        append_checkpoint(checkpoint, "new")

        assert checkpoint.read_text() == "old\nnew\n"


class TestDryRun:
    """Test suite for dry runs."""

    def test_dry_run_processes_but_keeps_everything(self, tmp_path, fake_source, fake_store):
        checkpoint = tmp_path / "done.txt"
        out = tmp_path / "out"
        store = fake_store()
        config = ScrubConfig(
            local_dir=str(out),
            s3_url="s3://bucket",
            checkpoint_file=str(checkpoint),
            scrub_pattern="secret",
            dry_run=True,
        )

        totals = RunOrchestrator(GROUP, config, fake_source({"s": events("a secret")}), store).run()

        assert totals.scrubbed_count == 1
        assert totals.succeeded == ["s"]
        assert local_files(out) == ["s.log"]
        assert checkpoint.read_text() == ""
        assert store.objects == []

    def test_dry_run_never_deletes_source(self, tmp_path, fake_source):
        source = fake_source({"s": events("a secret")})
        config = ScrubConfig(local_dir=str(tmp_path), scrub_pattern="secret",
                             delete=True, dry_run=True)

        totals = RunOrchestrator(GROUP, config, source).run()

        assert totals.succeeded == ["s"]
        assert source.deleted == []

    def test_dry_run_with_live_clients(self, tmp_path, cloudwatch_logs_client, sample_log_group):
        """Collaborators built without dry_run must still not be mutated."""
        import boto3

        from cloudscrub.clients import CloudWatchLogSource, S3ObjectStore

        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket="scrubbed")
        config = ScrubConfig(local_dir=str(tmp_path), s3_url="s3://scrubbed",
                             delete=True, dry_run=True)

        totals = RunOrchestrator(
            sample_log_group, config,
            CloudWatchLogSource(cloudwatch_logs_client), S3ObjectStore(s3),
        ).run()

        assert totals.succeeded == ["stream-a", "stream-b"]
        remaining = cloudwatch_logs_client.describe_log_streams(logGroupName=sample_log_group)
        assert len(remaining["logStreams"]) == 2
        assert s3.list_objects_v2(Bucket="scrubbed").get("KeyCount") == 0
        assert local_files(tmp_path) == ["stream-a.log", "stream-b.log"]


class TestStreamListFiles:
    """Test suite for stream name files."""

    def test_names_keep_surrounding_spaces(self, tmp_path):
        checkpoint = tmp_path / "done.txt"
        append_checkpoint(checkpoint, " padded ")
        append_checkpoint(checkpoint, "plain")
        with open(checkpoint, "a") as f:
            f.write("\n   \n")

        assert load_checkpoint(checkpoint) == {" padded ", "plain"}

    def test_crlf_lines(self, tmp_path):
        stream_list = tmp_path / "streams.txt"
        stream_list.write_bytes(b"a\r\nb \r\n")

        assert read_stream_list(stream_list) == ["a", "b "]

    def test_empty_stream_list_warning(self, tmp_path, fake_source, caplog):
        stream_list = tmp_path / "streams.txt"
        stream_list.write_text("\n")
        config = ScrubConfig(local_dir=str(tmp_path), stream_list_file=str(stream_list))

        with caplog.at_level(logging.WARNING, logger="cloudscrub.orchestrator"):
            assert RunOrchestrator(GROUP, config, fake_source({})).list_streams() == []

        assert "No stream names in" in caplog.text
        assert "time range" not in caplog.text
