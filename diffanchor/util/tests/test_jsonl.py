from datetime import datetime, timezone
from pathlib import Path

from diffanchor.schemas.events import Event, EventType
from diffanchor.util.jsonl import append_record


def make_event(step_id: int) -> Event:
    return Event(
        event_type=EventType.COMMENT_POSTED,
        timestamp=datetime(2026, 1, 2, tzinfo=timezone.utc),
        session_id="01TEST",
        step_id=step_id,
        payload={"file": "src/app.py", "line": 3, "comment_id": str(step_id)},
    )


def test_append_record_writes_one_line_per_record(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.jsonl"

    assert append_record(path, make_event(1)) is True
    assert append_record(path, make_event(2)) is True

    lines = path.read_text(encoding="utf-8").split("\n")
    assert lines[-1] == ""
    assert [Event.model_validate_json(line) for line in lines[:-1]] == [make_event(1), make_event(2)]


def test_append_record_reports_write_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    assert append_record(blocker / "events.jsonl", make_event(1)) is False
