"""
Unit tests for session log parsing.
"""

import json
import tempfile
from pathlib import Path

from jevons.sync.parser import (
    content_type,
    is_human_prompt,
    parse_session_file,
    prompt_preview,
)


def user_row(content, cwd=None):
    row = {"type": "user", "message": {"role": "user", "content": content}}
    if cwd:
        row["cwd"] = cwd
    return row


def assistant_row(timestamp, usage, content=None, **extra):
    input_tokens, output_tokens, cache_read, cache_create = usage
    row = {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {
            "role": "assistant",
            "content": content if content is not None else [{"type": "text", "text": "ok"}],
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_input_tokens": cache_read,
                "cache_creation_input_tokens": cache_create,
            },
        },
    }
    row.update(extra)
    return row


def write_session(path: Path, rows) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(row if isinstance(row, str) else json.dumps(row))
            f.write("\n")
    return path


class TestHelpers:
    """Test content classification."""

    def test_human_prompt_detection(self):
        assert is_human_prompt("hello")
        assert is_human_prompt(None)
        assert is_human_prompt([])
        assert is_human_prompt([{"type": "text", "text": "hi"}, {"type": "tool_result"}])
        assert not is_human_prompt([{"type": "tool_result"}, {"type": "tool_result"}])

    def test_content_type(self):
        assert content_type("plain") == "text"
        assert content_type([{"type": "tool_use"}]) == "tool_use"
        assert content_type([]) == "-"
        assert content_type(None) == "-"

    def test_prompt_preview(self):
        assert prompt_preview("  Fix\n\tthe   bug  ") == "Fix the bug"
        assert prompt_preview([{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]) == "a b"
        assert prompt_preview("") == "-"
        long = prompt_preview("x" * 500)
        assert len(long) == 180
        assert long.endswith("...")


class TestParseSession:
    """Test event extraction from one session file."""

    def test_streamed_repeats_collapse(self):
        """Repeated usage without a new human prompt is one response."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_session(Path(temp_dir) / "s1.jsonl", [
                user_row("Fix the bug", cwd="/Users/me/dev/a"),
                assistant_row("2024-01-01T10:00:00.500Z", (100, 50, 10, 5)),
                assistant_row("2024-01-01T10:00:01Z", (100, 50, 10, 5), content=[{"type": "tool_use"}]),
                user_row([{"type": "tool_result", "content": "done"}]),
                assistant_row("2024-01-01T10:00:02Z", (100, 50, 10, 5)),
                assistant_row("2024-01-01T10:00:03Z", (200, 80, 0, 0), content=[{"type": "tool_use"}]),
            ])
            parsed = parse_session_file(path, "proj-a", "s1")

            assert parsed.project_path == "/Users/me/dev/a"
            assert [e.signature for e in parsed.events] == ["s1:0:100|50|10|5", "s1:1:200|80|0|0"]
            first, second = parsed.events
            assert first.ts_epoch == 1704103200
            assert first.ts_iso == "2024-01-01T10:00:00.500Z"
            assert first.billable == 150
            assert first.total_with_cache == 165
            assert second.content_type == "tool_use"
            assert [e.prompt_preview for e in parsed.live_events] == ["Fix the bug", "Fix the bug"]

    def test_same_usage_after_new_prompt_is_new_event(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_session(Path(temp_dir) / "s2.jsonl", [
                user_row("one"),
                assistant_row("2024-01-01T10:00:00Z", (1, 1, 0, 0)),
                user_row("two"),
                assistant_row("2024-01-01T10:01:00Z", (1, 1, 0, 0)),
            ])
            parsed = parse_session_file(path, "proj-a", "s2")
            assert len(parsed.events) == 2
            assert [e.prompt_preview for e in parsed.live_events] == ["one", "two"]

    def test_noise_rows_are_dropped(self):
        """Bad JSON, API errors, missing usage and bad timestamps are skipped."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_session(Path(temp_dir) / "s3.jsonl", [
                "{not json",
                {"type": "summary", "summary": "no message"},
                assistant_row("2024-01-01T10:00:00Z", (5, 5, 0, 0), isApiErrorMessage=True),
                assistant_row("not a time", (6, 6, 0, 0)),
                {"type": "assistant", "timestamp": "2024-01-01T10:00:00Z", "message": {"content": "x"}},
                assistant_row("2024-01-01T10:00:00Z", (7, 7, 0, 0), content="plain"),
            ])
            parsed = parse_session_file(path, "proj-a", "s3")
            assert len(parsed.events) == 1
            assert parsed.events[0].input == 7
            assert parsed.events[0].content_type == "text"
            assert parsed.live_events[0].prompt_preview == "-"
            assert parsed.project_path is None
