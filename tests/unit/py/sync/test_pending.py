"""Tests for the pending push queue."""

import json
from unittest.mock import MagicMock

import pytest

from lib.sync.pending import PendingPush, PendingPushQueue, write_json_atomic
from lib.sync.store import PushOutcome, PushResult


OK = PushResult(PushOutcome.SUCCESS)
FAIL = PushResult(PushOutcome.NETWORK_ERROR, "Could not resolve host", "network")


class TestPendingPush:

    def test_defaults(self):
        entry = PendingPush(commit_id="abc1234")
        assert entry.retry_count == 0
        assert entry.last_retry is None
        assert entry.timestamp

    def test_exhausted_at_cap(self):
        assert PendingPush(commit_id="abc", retry_count=3).exhausted
        assert not PendingPush(commit_id="abc", retry_count=2).exhausted

    def test_from_dict_accepts_legacy_key(self):
        entry = PendingPush.from_dict({
            "commit_hash": "deadbeef",
            "timestamp": "2026-01-10T10:00:00Z",
            "retry_count": 1,
            "unknown_field": "ignored",
        })
        assert entry.commit_id == "deadbeef"
        assert entry.retry_count == 1

    def test_round_trip(self):
        entry = PendingPush(commit_id="abc", retry_count=2, error="timeout")
        assert PendingPush.from_dict(entry.to_dict()) == entry


class TestWriteJsonAtomic:

    def test_writes_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "nested" / "data.json"
        write_json_atomic(target, [1, 2])
        assert json.loads(target.read_text(encoding="utf-8")) == [1, 2]
        assert [p.name for p in target.parent.iterdir()] == ["data.json"]


class TestPendingPushQueue:
    """Tests for enqueue and drain."""

    @pytest.fixture
    def queue(self, paths, quiet_logger):
        return PendingPushQueue(paths.pending_pushes_file, quiet_logger)

    def test_load_missing_file_is_empty(self, queue):
        assert queue.load() == []

    def test_load_malformed_file_is_empty(self, queue, paths):
        paths.pending_pushes_file.write_text("{not json", encoding="utf-8")
        assert queue.load() == []

    def test_enqueue_persists_entry(self, queue, paths):
        queue.enqueue("abc1234", "network down")

        data = json.loads(paths.pending_pushes_file.read_text(encoding="utf-8"))
        assert len(data) == 1
        assert data[0]["commit_id"] == "abc1234"
        assert data[0]["retry_count"] == 0
        assert data[0]["error"] == "network down"

    def test_enqueue_appends_in_order(self, queue):
        queue.enqueue("first")
        queue.enqueue("second")
        assert [e.commit_id for e in queue.load()] == ["first", "second"]

    def test_remove(self, queue):
        queue.enqueue("first")
        queue.enqueue("second")
        assert queue.remove("first") is True
        assert queue.remove("missing") is False
        assert [e.commit_id for e in queue.load()] == ["second"]

    def test_drain_empty_queue_does_not_push(self, queue, paths):
        push = MagicMock(return_value=OK)
        report = queue.drain(push)
        push.assert_not_called()
        assert report.pushed == []
        assert not paths.pending_pushes_file.exists()

    def test_drain_success_removes_entry(self, queue):
        queue.enqueue("abc1234")

        report = queue.drain(MagicMock(return_value=OK))

        assert report.pushed == ["abc1234"]
        assert queue.load() == []

    def test_drain_failure_increments_retry(self, queue):
        queue.enqueue("abc1234")

        report = queue.drain(MagicMock(return_value=FAIL))

        [entry] = queue.load()
        assert report.failed == ["abc1234"]
        assert entry.retry_count == 1
        assert entry.last_retry is not None
        assert "resolve host" in entry.error

    def test_drain_exception_counts_as_failure(self, queue):
        queue.enqueue("abc1234")

        report = queue.drain(MagicMock(side_effect=RuntimeError("boom")))

        [entry] = queue.load()
        assert report.failed == ["abc1234"]
        assert entry.error == "boom"

    def test_exhausted_entry_not_retried(self, queue):
        queue.save([PendingPush(commit_id="old", retry_count=3)])
        push = MagicMock(return_value=OK)

        report = queue.drain(push)

        push.assert_not_called()
        assert report.needs_manual == ["old"]
        assert [e.commit_id for e in queue.load()] == ["old"]

    def test_retry_cap_reached_after_three_failures(self, queue):
        queue.enqueue("abc1234")
        push = MagicMock(return_value=FAIL)

        for _ in range(5):
            queue.drain(push)

        [entry] = queue.load()
        assert push.call_count == 3
        assert entry.retry_count == 3

    def test_one_attempt_per_entry(self, queue):
        queue.enqueue("first")
        queue.enqueue("second")
        push = MagicMock(side_effect=[FAIL, OK])

        report = queue.drain(push)

        assert push.call_count == 2
        assert report.failed == ["first"]
        assert report.pushed == ["second"]
        assert [e.commit_id for e in queue.load()] == ["first"]
