import asyncio

import pytest

from diffanchor.config import HostConfig, HostProvider, PostingConfig
from diffanchor.diff.models import LineRange
from diffanchor.diff.parser import map_diff_lines
from diffanchor.hosts.base import HostConnector
from diffanchor.hosts.errors import HostError, HostErrorType, RateLimitedError
from diffanchor.hosts.models import AnchorMetadata, CommentPosition, CommentRequest, CommentResult
from diffanchor.review import orchestrator as orchestrator_module
from diffanchor.review.models import Suggestion
from diffanchor.review.orchestrator import CommentOrchestrator, index_file_diffs, resolve_line_range
from diffanchor.schemas.events import Event, EventType
from diffanchor.util.events import EventLogger

DIFF = """\
diff --git a/src/app.py b/src/app.py
--- a/src/app.py
+++ b/src/app.py
@@ -1,3 +1,4 @@
 import os
+import sys
 print(os)
 print(sys)
diff --git a/src/util.py b/src/util.py
--- a/src/util.py
+++ b/src/util.py
@@ -10,2 +10,3 @@
 def f():
+    return 1
 x = 2
"""

GITHUB_ANCHOR = AnchorMetadata(base_sha="base", head_sha="head")
GITLAB_ANCHOR = AnchorMetadata(base_sha="base", start_sha="start", head_sha="head")


class FakeConnector(HostConnector):
    def __init__(
        self,
        provider: HostProvider = HostProvider.GITHUB,
        supports_bulk: bool = False,
        anchor: AnchorMetadata | None = GITHUB_ANCHOR,
        failing_paths: tuple[str, ...] = (),
        failure: Exception | None = None,
        anchor_error: Exception | None = None,
        bulk_error: Exception | None = None,
        bulk_limit: int | None = None,
    ):
        super().__init__(HostConfig(provider=provider), repo="acme/widgets", number=7)
        self.provider = provider
        self.supports_bulk = supports_bulk
        self.anchor = anchor
        self.failing_paths = failing_paths
        self.failure = failure or HostError(
            HostErrorType.INVALID_REQUEST, "HTTP 422: line must be part of the diff"
        )
        self.anchor_error = anchor_error
        self.bulk_error = bulk_error
        self.bulk_limit = bulk_limit
        self.posted: list[CommentRequest] = []
        self.bulk_calls = 0

    async def get_comment_position(self, path: str, line: int) -> AnchorMetadata | None:
        if self.anchor_error is not None:
            raise self.anchor_error
        return self.anchor

    async def create_inline_comment(self, body: str, path: str, position: CommentPosition) -> CommentResult:
        if path in self.failing_paths:
            raise self.failure
        self.posted.append(CommentRequest(body=body, path=path, position=position))
        return CommentResult(id=str(len(self.posted)), body=body)

    async def create_bulk_comments(self, comments: list[CommentRequest]) -> list[CommentResult]:
        self.bulk_calls += 1
        if self.bulk_error is not None:
            raise self.bulk_error
        accepted = comments if self.bulk_limit is None else comments[: self.bulk_limit]
        self.posted.extend(accepted)
        return [CommentResult(id=f"review-1-comment-{i}", body=c.body) for i, c in enumerate(accepted)]

    async def get_diff(self) -> str:
        return DIFF


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch):
    delays: list[float] = []

    async def fake_sleep(delay: float):
        delays.append(delay)

    monkeypatch.setattr(orchestrator_module.asyncio, "sleep", fake_sleep)
    return delays


def run(connector: HostConnector, suggestions: list[Suggestion], **kwargs):
    orchestrator = CommentOrchestrator(connector, **kwargs)
    return asyncio.run(orchestrator.post_inline_comments(suggestions, index_file_diffs(DIFF), session_id="01TEST"))


def read_events(path) -> list[Event]:
    return [Event.model_validate_json(line) for line in path.read_text(encoding="utf-8").split("\n") if line]


def valid_suggestions() -> list[Suggestion]:
    return [
        Suggestion(file="src/app.py", start_line=2, action="Drop unused import", reason="sys is unused"),
        Suggestion(file="src/util.py", start_line=11, action="Name the constant", reason="Magic number"),
    ]


class TestIndexFileDiffs:
    def test_keys_by_path(self):
        files = index_file_diffs(DIFF)

        assert set(files) == {"src/app.py", "src/util.py"}
        assert [m.new_line for m in files["src/util.py"].lines if m.type == "added"] == [11]

    def test_rename_is_reachable_by_both_paths(self):
        files = index_file_diffs(
            "diff --git a/old.py b/new.py\nrename from old.py\nrename to new.py\n"
            "--- a/old.py\n+++ b/new.py\n@@ -1 +1 @@\n-a\n+b\n"
        )

        assert files["old.py"] is files["new.py"]


class TestResolveLineRange:
    def test_valid_range(self):
        mapping = map_diff_lines(DIFF.split("diff --git a/src/util.py")[0])
        suggestion = Suggestion(file="src/app.py", start_line=1, end_line=3)

        assert resolve_line_range(mapping, suggestion) == (LineRange(1, 3), False)

    def test_critical_fallback_is_reported(self):
        mapping = map_diff_lines(DIFF.split("diff --git a/src/util.py")[0])
        suggestion = Suggestion(file="src/app.py", start_line=40, severity="critical")

        assert resolve_line_range(mapping, suggestion) == (LineRange(2, 2), True)

    def test_missing_line(self):
        assert resolve_line_range(map_diff_lines(DIFF), Suggestion(file="src/app.py")) == (None, False)


class TestSequentialPosting:
    def test_all_valid(self, sleeps):
        connector = FakeConnector()

        result = run(connector, valid_suggestions())

        assert result.session_id == "01TEST"
        assert (result.successful, result.failed) == (2, 0)
        assert result.errors == []
        assert [(c.path, c.position.new_line) for c in connector.posted] == [
            ("src/app.py", 2),
            ("src/util.py", 11),
        ]
        assert connector.posted[0].body.startswith("🟡 **[Improvement]** Drop unused import")
        assert sleeps == [0.1]

    def test_configured_delay(self, sleeps):
        run(FakeConnector(), valid_suggestions() * 2, posting=PostingConfig(sequential_delay_ms=250))

        assert sleeps == [0.25, 0.25, 0.25]

    def test_zero_delay_never_sleeps(self, sleeps):
        run(FakeConnector(), valid_suggestions(), posting=PostingConfig(sequential_delay_ms=0))

        assert sleeps == []

    def test_failure_does_not_stop_batch(self, sleeps):
        connector = FakeConnector(failing_paths=("src/app.py",))

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (1, 1)
        assert result.errors[0].file == "src/app.py"
        assert result.errors[0].line == 2
        assert "line must be part of the diff" in result.errors[0].error
        assert [c.path for c in connector.posted] == ["src/util.py"]

    def test_bulk_capable_connector_can_opt_out(self, sleeps):
        connector = FakeConnector(supports_bulk=True)

        result = run(connector, valid_suggestions(), posting=PostingConfig(prefer_bulk=False))

        assert result.successful == 2
        assert connector.bulk_calls == 0


class TestDroppedSuggestions:
    def test_file_not_in_diff(self, sleeps):
        connector = FakeConnector()

        result = run(connector, [Suggestion(file="docs/readme.md", start_line=1)] + valid_suggestions())

        assert (result.successful, result.failed) == (2, 1)
        assert result.errors[0].error == "File not found in diff"
        assert result.errors[0].line == 1

    def test_no_valid_line(self, sleeps):
        connector = FakeConnector()

        result = run(connector, [Suggestion(file="src/app.py", start_line=50, severity="minor")])

        assert (result.successful, result.failed) == (0, 1)
        assert result.errors[0].error == "No valid line found in diff"
        assert connector.posted == []

    def test_missing_file_or_line_is_skipped_silently(self, sleeps):
        result = run(
            FakeConnector(),
            [Suggestion(start_line=2), Suggestion(file="src/app.py")] + valid_suggestions(),
        )

        assert (result.successful, result.failed) == (2, 0)

    def test_unresolvable_position(self, sleeps):
        result = run(FakeConnector(anchor=None), valid_suggestions())

        assert (result.successful, result.failed) == (0, 2)
        assert {e.error for e in result.errors} == {"Could not determine comment position"}


class TestLinePlacement:
    def test_nearby_line_is_adjusted(self, sleeps):
        connector = FakeConnector()

        result = run(connector, [Suggestion(file="src/app.py", start_line=6, severity="minor")])

        assert result.successful == 1
        assert connector.posted[0].position.new_line == 4

    def test_legacy_line_number(self, sleeps):
        connector = FakeConnector()

        run(connector, [Suggestion.model_validate({"file": "src/util.py", "lineNumber": 11})])

        assert connector.posted[0].position.new_line == 11

    def test_github_multi_line_range(self, sleeps):
        connector = FakeConnector()

        run(connector, [Suggestion(file="src/app.py", start_line=1, end_line=3, action="a", reason="r")])

        position = connector.posted[0].position
        assert (position.start_line, position.new_line) == (1, 3)
        assert connector.posted[0].body.endswith("*Lines 1-3*")

    def test_gitlab_context_line_carries_old_line(self, sleeps):
        connector = FakeConnector(provider=HostProvider.GITLAB, anchor=GITLAB_ANCHOR)

        run(connector, [Suggestion(file="src/util.py", start_line=12)])

        position = connector.posted[0].position
        assert (position.old_line, position.new_line) == (11, 12)
        assert position.start_sha == "start"


class TestBulkPosting:
    def test_single_bulk_request(self, sleeps):
        connector = FakeConnector(supports_bulk=True)

        result = run(connector, valid_suggestions())

        assert connector.bulk_calls == 1
        assert (result.successful, result.failed) == (2, 0)
        assert sleeps == []

    def test_bulk_error_fails_every_comment(self, sleeps):
        connector = FakeConnector(
            supports_bulk=True,
            bulk_error=HostError(HostErrorType.PROVIDER_ERROR, "HTTP 502", status_code=502),
        )

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (0, 2)
        assert [e.error for e in result.errors] == ["HTTP 502", "HTTP 502"]

    def test_short_bulk_response(self, sleeps):
        connector = FakeConnector(supports_bulk=True, bulk_limit=1)

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (1, 1)
        assert result.errors[0].file == "src/util.py"
        assert result.errors[0].error == "Failed to post comment"

    def test_nothing_to_post_makes_no_request(self, sleeps):
        connector = FakeConnector(supports_bulk=True)

        result = run(connector, [Suggestion(file="missing.py", start_line=1)])

        assert connector.bulk_calls == 0
        assert result.failed == 1


def test_post_diff_comments_generates_session_id(sleeps):
    orchestrator = CommentOrchestrator(FakeConnector())

    result = asyncio.run(orchestrator.post_diff_comments(valid_suggestions(), DIFF))

    assert result.successful == 2
    assert len(result.session_id) == 26


def test_session_events_are_recorded(tmp_path, sleeps):
    events_path = tmp_path / "events.jsonl"
    connector = FakeConnector(failing_paths=("src/util.py",))
    suggestions = [
        Suggestion(file="src/app.py", start_line=6),
        Suggestion(start_line=1),
        Suggestion(file="src/util.py", start_line=11),
    ]

    run(connector, suggestions, event_logger=EventLogger(session_id="01TEST", events_file=events_path))

    records = read_events(events_path)
    assert [r.event_type for r in records] == [
        EventType.SESSION_STARTED,
        EventType.LINE_ADJUSTED,
        EventType.SUGGESTION_SKIPPED,
        EventType.COMMENT_POSTED,
        EventType.COMMENT_FAILED,
        EventType.SESSION_FINISHED,
    ]
    assert [r.step_id for r in records] == [1, 2, 3, 4, 5, 6]
    assert records[0].payload["suggestion_count"] == 3
    assert records[-1].payload == {"successful": 1, "failed": 1}


class TestUnexpectedErrors:
    def test_inline_crash_fails_only_that_comment(self, sleeps):
        connector = FakeConnector(
            failing_paths=("src/app.py",), failure=RuntimeError("connection reset by peer")
        )

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (1, 1)
        assert result.errors[0].file == "src/app.py"
        assert result.errors[0].error == "connection reset by peer"
        assert result.errors[0].retryable is False
        assert [c.path for c in connector.posted] == ["src/util.py"]

    def test_bulk_crash_fails_every_comment(self, sleeps):
        connector = FakeConnector(supports_bulk=True, bulk_error=ValueError("bad JSON in response"))

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (0, 2)
        assert [e.error for e in result.errors] == ["bad JSON in response", "bad JSON in response"]

    def test_position_lookup_crash_is_recorded(self, sleeps):
        connector = FakeConnector(anchor_error=KeyError("head_sha"))

        result = run(connector, valid_suggestions())

        assert (result.successful, result.failed) == (0, 2)
        assert [e.file for e in result.errors] == ["src/app.py", "src/util.py"]
        assert connector.posted == []


class TestRetryHints:
    def test_rate_limit_is_marked_retryable(self, sleeps):
        connector = FakeConnector(
            failing_paths=("src/app.py",), failure=RateLimitedError("HTTP 429", retry_after_sec=30)
        )

        result = run(connector, valid_suggestions())

        assert result.successful == 1
        assert result.errors[0].retryable is True
        assert result.errors[0].retry_after_sec == 30

    def test_bulk_server_error_is_retryable(self, sleeps):
        connector = FakeConnector(
            supports_bulk=True,
            bulk_error=HostError(HostErrorType.PROVIDER_ERROR, "HTTP 503", status_code=503, retryable=True),
        )

        result = run(connector, valid_suggestions())

        assert [e.retryable for e in result.errors] == [True, True]
        assert [e.retry_after_sec for e in result.errors] == [None, None]

    def test_rejected_comment_is_not_retryable(self, sleeps):
        result = run(FakeConnector(failing_paths=("src/app.py",)), valid_suggestions())

        assert result.errors[0].retryable is False
        assert result.errors[0].retry_after_sec is None


class TestEventWrites:
    @pytest.fixture
    def threaded(self, monkeypatch: pytest.MonkeyPatch):
        calls: list[str] = []

        async def fake_to_thread(func, *args):
            calls.append(func.__name__)
            return func(*args)

        monkeypatch.setattr(orchestrator_module.asyncio, "to_thread", fake_to_thread)
        return calls

    def test_event_writes_run_off_the_event_loop(self, tmp_path, sleeps, threaded):
        events_path = tmp_path / "events.jsonl"

        run(
            FakeConnector(failing_paths=("src/util.py",)),
            valid_suggestions(),
            event_logger=EventLogger(session_id="01TEST", events_file=events_path),
        )

        assert threaded == [
            "log_session_started",
            "log_comment_posted",
            "log_comment_failed",
            "log_session_finished",
        ]
        assert len(read_events(events_path)) == 4

    def test_null_logger_skips_the_thread_pool(self, sleeps, threaded):
        result = run(FakeConnector(), valid_suggestions())

        assert result.successful == 2
        assert threaded == []


def test_zero_end_line_posts_a_single_line_comment(sleeps):
    connector = FakeConnector()

    run(connector, [Suggestion(file="src/app.py", start_line=2, end_line=0)])

    position = connector.posted[0].position
    assert position.new_line == 2
    assert position.start_line is None
