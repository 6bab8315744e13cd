"""
Heartbeat and pid files written by the sync scheduler.

The heartbeat is a single line ``epoch,interval,pid,status`` that tells other
processes whether the background sync is alive.
"""

import os
import time
from pathlib import Path
from typing import Optional, Union

from jevons.storage.models import HeartbeatState
from jevons.storage.tsv import atomic_write_text

STALE_FLOOR_SECONDS = 300
STALE_INTERVAL_MULTIPLIER = 12


def write_heartbeat(path: Union[str, Path], interval: int, status: str, now: Optional[int] = None) -> None:
    """Atomically replace the heartbeat line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    epoch = int(time.time()) if now is None else int(now)
    atomic_write_text(path, f"{epoch},{int(interval)},{os.getpid()},{status}\n")


def stale_after(interval: int) -> int:
    """Seconds after which a heartbeat with this interval counts as stale."""
    return max(interval * STALE_INTERVAL_MULTIPLIER, STALE_FLOOR_SECONDS)


def read_heartbeat(path: Union[str, Path], now: Optional[int] = None) -> Optional[HeartbeatState]:
    """Parse the heartbeat file.

    The sync is "running" when its interval is positive and the heartbeat is
    no older than ``max(interval * 12, 300)`` seconds; otherwise "stale".

    Args:
        path: Heartbeat file
        now: Current epoch seconds

    Returns:
        HeartbeatState, or None when the file is absent or unparseable
    """
    path = Path(path)
    try:
        line = path.read_text(encoding="utf-8").strip()
    except (FileNotFoundError, NotADirectoryError):
        return None

    parts = line.split(",")
    if len(parts) != 4:
        return None
    try:
        epoch = int(parts[0])
        interval = int(parts[1])
    except ValueError:
        return None

    now = int(time.time()) if now is None else int(now)
    age = max(0, now - epoch)
    running = interval > 0 and age <= stale_after(interval)
    return HeartbeatState(
        epoch=epoch,
        interval=interval,
        pid=parts[2],
        status=parts[3],
        age=age,
        mode="running" if running else "stale",
    )


def write_pid_file(path: Union[str, Path]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(path, f"{os.getpid()}\n")


def remove_pid_file(path: Union[str, Path]) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
