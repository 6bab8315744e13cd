"""
Session log parsing.

Reads one JSONL session log written by the AI coding client and turns its
assistant responses into usage events.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

from jevons.core.token_counter import TokenUsage
from jevons.storage.models import LiveUsageEvent, UsageEvent
from jevons.utils.timefmt import iso_to_epoch

logger = logging.getLogger(__name__)

PREVIEW_MAX_CHARS = 180
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedSession:
    """Events extracted from one session file."""
    events: List[UsageEvent]
    live_events: List[LiveUsageEvent]
    project_path: Optional[str]


def _iter_rows(path: Path) -> Iterator[dict]:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
            except ValueError:
                continue
            if isinstance(row, dict):
                yield row


def is_human_prompt(content: Any) -> bool:
    """True unless the content is a non-empty list made only of tool results."""
    if isinstance(content, list) and content:
        return not all(
            isinstance(block, dict) and block.get("type") == "tool_result"
            for block in content
        )
    return True


def content_type(content: Any) -> str:
    """Content tag of an assistant message: "text", the first block type, or "-"."""
    if isinstance(content, str):
        return "text"
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and first.get("type"):
            return str(first["type"])
    return "-"


def prompt_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""


def prompt_preview(content: Any) -> str:
    """Whitespace-normalized prompt text, truncated to 180 characters."""
    cleaned = _WHITESPACE_RE.sub(" ", prompt_text(content)).strip()
    if not cleaned:
        return "-"
    if len(cleaned) > PREVIEW_MAX_CHARS:
        return cleaned[:PREVIEW_MAX_CHARS - 3] + "..."
    return cleaned


def _usage_from(block: Any) -> Optional[TokenUsage]:
    if not isinstance(block, dict):
        return None
    try:
        return TokenUsage(
            input=int(block.get("input_tokens") or 0),
            output=int(block.get("output_tokens") or 0),
            cache_read=int(block.get("cache_read_input_tokens") or 0),
            cache_create=int(block.get("cache_creation_input_tokens") or 0),
        )
    except (TypeError, ValueError):
        return None


def parse_session_file(
    path: Union[str, Path],
    project_slug: str,
    session_id: str,
) -> ParsedSession:
    """Extract usage events from a session log.

    A streamed response repeats its usage block on every content block; a
    row with the same usage as the previous event and no human prompt in
    between is one of those repeats and is skipped. API error rows and rows
    with unparseable timestamps are dropped.

    Args:
        path: JSONL session file
        project_slug: Slug of the project directory holding the file
        session_id: Session identifier (file stem)

    Returns:
        ParsedSession with steady-state events, live events and the first
        working directory seen in the log

    Raises:
        OSError: If the file cannot be read
    """
    events: List[UsageEvent] = []
    live_events: List[LiveUsageEvent] = []
    project_path: Optional[str] = None

    pending_human = False
    last_signature = ""
    last_prompt = "-"

    for row in _iter_rows(Path(path)):
        if project_path is None and isinstance(row.get("cwd"), str) and row["cwd"]:
            project_path = row["cwd"]

        message = row.get("message")
        if not isinstance(message, dict):
            continue

        kind = row.get("type")
        if kind == "user":
            if is_human_prompt(message.get("content")):
                pending_human = True
                last_prompt = prompt_preview(message.get("content"))
            continue
        if kind != "assistant" or row.get("isApiErrorMessage") is True:
            continue

        usage = _usage_from(message.get("usage"))
        if usage is None:
            continue
        if usage.signature == last_signature and not pending_human:
            continue

        ts_iso = str(row.get("timestamp") or "")
        ts_epoch = iso_to_epoch(ts_iso)
        if ts_epoch is None:
            logger.debug("Dropping row with bad timestamp %r in %s", ts_iso, path)
            continue

        fields = dict(
            ts_epoch=ts_epoch,
            ts_iso=ts_iso,
            project_slug=project_slug,
            session_id=session_id,
            input=usage.input,
            output=usage.output,
            cache_read=usage.cache_read,
            cache_create=usage.cache_create,
            billable=usage.billable,
            total_with_cache=usage.total_with_cache,
            content_type=content_type(message.get("content")),
            signature=f"{session_id}:{len(events)}:{usage.signature}",
        )
        events.append(UsageEvent(**fields))
        live_events.append(LiveUsageEvent(prompt_preview=last_prompt, **fields))

        last_signature = usage.signature
        pending_human = False

    return ParsedSession(events=events, live_events=live_events, project_path=project_path)
