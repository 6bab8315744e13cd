"""
Tab-separated event log codec.

Reads and writes ``events.tsv`` and ``live-events.tsv``. A header row is
mandatory and must match the expected columns exactly.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Tuple, TypeVar, Union

from jevons.errors import InvalidRecord, MalformedLog, MissingFile
from jevons.storage.models import LiveUsageEvent, UsageEvent
from jevons.utils.timefmt import iso_to_epoch

logger = logging.getLogger(__name__)

EVENT_COLUMNS: Tuple[str, ...] = (
    "ts_epoch", "ts_iso", "project_slug", "session_id",
    "input", "output", "cache_read", "cache_create",
    "billable", "total_with_cache", "content_type", "signature",
)

LIVE_EVENT_COLUMNS: Tuple[str, ...] = (
    EVENT_COLUMNS[:4] + ("prompt_preview",) + EVENT_COLUMNS[4:]
)

EVENTS_TSV_HEADER = "\t".join(EVENT_COLUMNS)
LIVE_EVENTS_TSV_HEADER = "\t".join(LIVE_EVENT_COLUMNS)

_NUMERIC_COLUMNS = (
    "ts_epoch", "input", "output", "cache_read", "cache_create",
    "billable", "total_with_cache",
)

E = TypeVar("E", bound=UsageEvent)


@dataclass
class LogReadResult:
    """Rows loaded from one log file plus the number of rows rejected."""
    events: List[UsageEvent] = field(default_factory=list)
    skipped: int = 0
    duplicates: int = 0


def _parse_count(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise InvalidRecord(f"{name} is not an integer: {raw!r}")
    if value < 0:
        raise InvalidRecord(f"{name} cannot be negative: {value}")
    return value


def _parse_fields(fields: List[str], columns: Tuple[str, ...]) -> Dict[str, Union[int, str]]:
    if len(fields) != len(columns):
        raise InvalidRecord(f"expected {len(columns)} fields, got {len(fields)}")

    row: Dict[str, Union[int, str]] = dict(zip(columns, fields))
    for name in _NUMERIC_COLUMNS:
        row[name] = _parse_count(name, fields[columns.index(name)])

    if row["billable"] != row["input"] + row["output"]:
        raise InvalidRecord(
            f"billable {row['billable']} != input + output "
            f"({row['input']} + {row['output']})"
        )
    expected_total = row["billable"] + row["cache_read"] + row["cache_create"]
    if row["total_with_cache"] != expected_total:
        raise InvalidRecord(
            f"total_with_cache {row['total_with_cache']} != {expected_total}"
        )

    iso_epoch = iso_to_epoch(str(row["ts_iso"]))
    if iso_epoch is None:
        raise InvalidRecord(f"ts_iso is not a timestamp: {row['ts_iso']!r}")
    if iso_epoch != row["ts_epoch"]:
        raise InvalidRecord(
            f"ts_iso {row['ts_iso']} does not match ts_epoch {row['ts_epoch']}"
        )

    if not row["signature"]:
        raise InvalidRecord("signature is empty")
    return row


def parse_event_row(line: str) -> UsageEvent:
    """Parse one ``events.tsv`` data row.

    Args:
        line: Row without its trailing newline

    Returns:
        The validated UsageEvent

    Raises:
        InvalidRecord: If the row has the wrong shape or violates an invariant
    """
    return UsageEvent(**_parse_fields(line.split("\t"), EVENT_COLUMNS))


def parse_live_event_row(line: str) -> LiveUsageEvent:
    """Parse one ``live-events.tsv`` data row.

    Raises:
        InvalidRecord: If the row has the wrong shape or violates an invariant
    """
    return LiveUsageEvent(**_parse_fields(line.split("\t"), LIVE_EVENT_COLUMNS))


def format_event_row(event: UsageEvent) -> str:
    """Serialize a UsageEvent as an ``events.tsv`` row."""
    return "\t".join(str(getattr(event, name)) for name in EVENT_COLUMNS)


def format_live_event_row(event: LiveUsageEvent) -> str:
    """Serialize a LiveUsageEvent as a ``live-events.tsv`` row."""
    return "\t".join(str(getattr(event, name)) for name in LIVE_EVENT_COLUMNS)


def _decode_line(raw: bytes) -> str:
    try:
        return raw.decode("utf-8").rstrip("\r\n")
    except UnicodeDecodeError as e:
        raise InvalidRecord(f"not valid UTF-8 at byte {e.start}")


def _read_log(path: Path, header: str, parse_row: Callable[[str], E]) -> LogReadResult:
    if not path.exists():
        raise MissingFile(str(path))

    result = LogReadResult()
    seen_signatures = set()

    with open(path, "rb") as f:
        first = f.readline().decode("utf-8", errors="replace")
        if first.rstrip("\r\n") != header:
            raise MalformedLog(str(path), f"unexpected header {first.rstrip()!r}")

        for line_number, raw in enumerate(f, start=2):
            if not raw.strip():
                continue
            try:
                event = parse_row(_decode_line(raw))
            except InvalidRecord as e:
                result.skipped += 1
                logger.warning("Skipping invalid record in %s line %d: %s", path, line_number, e)
                continue

            if event.signature in seen_signatures:
                result.duplicates += 1
                continue
            seen_signatures.add(event.signature)
            result.events.append(event)

    return result


def read_events(path: Union[str, Path]) -> LogReadResult:
    """Load every valid row of an ``events.tsv`` file.

    Rows with a previously seen signature are dropped, keeping the first.

    Raises:
        MissingFile: If the file does not exist
        MalformedLog: If the header row does not match
    """
    return _read_log(Path(path), EVENTS_TSV_HEADER, parse_event_row)


def read_live_events(path: Union[str, Path]) -> LogReadResult:
    """Load every valid row of a ``live-events.tsv`` file.

    Raises:
        MissingFile: If the file does not exist
        MalformedLog: If the header row does not match
    """
    return _read_log(Path(path), LIVE_EVENTS_TSV_HEADER, parse_live_event_row)


def atomic_write_text(path: Union[str, Path], content: str) -> None:
    """Write a file through a temporary sibling and rename it into place."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    os.replace(tmp, path)


def write_events(path: Union[str, Path], events: Iterable[UsageEvent]) -> int:
    """Atomically write an ``events.tsv`` file. Returns the row count."""
    lines = [EVENTS_TSV_HEADER] + [format_event_row(e) for e in events]
    atomic_write_text(path, "\n".join(lines) + "\n")
    return len(lines) - 1


def write_live_events(path: Union[str, Path], events: Iterable[LiveUsageEvent]) -> int:
    """Atomically write a ``live-events.tsv`` file. Returns the row count."""
    lines = [LIVE_EVENTS_TSV_HEADER] + [format_live_event_row(e) for e in events]
    atomic_write_text(path, "\n".join(lines) + "\n")
    return len(lines) - 1
