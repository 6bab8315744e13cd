"""
Background sync scheduler.

Runs the sync pipeline once at start-up and then on a fixed interval,
publishing a heartbeat and reloading the event store after each successful
cycle. Only one cycle is ever in flight; extra triggers are coalesced.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from jevons.config.loader import AppConfig
from jevons.errors import SyncCancelled
from jevons.storage.repository import EventStore
from jevons.sync.heartbeat import remove_pid_file, write_heartbeat, write_pid_file
from jevons.sync.pipeline import SyncResult, run_sync

logger = logging.getLogger(__name__)

SyncFn = Callable[..., SyncResult]


class SyncState(Enum):
    """Lifecycle states of the scheduler."""
    IDLE = "idle"
    SYNCING = "syncing"
    STOPPED = "stopped"


class SyncScheduler:
    """Owns the background sync thread."""

    def __init__(
        self,
        config: AppConfig,
        store: EventStore,
        sync_fn: SyncFn = run_sync,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the scheduler.

        Args:
            config: Application configuration
            store: Event store reloaded after every successful cycle
            sync_fn: Pipeline entry point, called as
                ``sync_fn(config, stop_event=..., clock=...)``
            clock: Source of "now" for heartbeats and the pipeline
        """
        self.config = config
        self.store = store
        self._sync_fn = sync_fn
        self._clock = clock
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._state = SyncState.IDLE
        self.last_result: Optional[SyncResult] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _heartbeat(self, status: str, interval: Optional[int] = None) -> None:
        try:
            write_heartbeat(
                self.config.heartbeat_file,
                self.config.sync_interval if interval is None else interval,
                status,
                now=int(self._clock()),
            )
        except OSError as exc:
            logger.warning("Could not write heartbeat: %s", exc)

    def start(self) -> None:
        """Start the background thread (no-op if already running)."""
        if self._state is SyncState.STOPPED:
            raise RuntimeError("scheduler has been stopped")
        if self.is_running:
            return
        try:
            write_pid_file(self.config.pid_file)
        except OSError as exc:
            logger.warning("Could not write pid file: %s", exc)
        self._thread = threading.Thread(target=self._run, name="jevons-sync", daemon=True)
        self._thread.start()
        logger.info("Sync scheduler started (interval %ss)", self.config.sync_interval)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.trigger()
            if self.config.sync_interval <= 0:
                return
            if self._stop_event.wait(self.config.sync_interval):
                return

    def trigger(self) -> Optional[SyncResult]:
        """Run one sync cycle now.

        Returns:
            The cycle's SyncResult, or None when another cycle was already in
            flight, the scheduler is stopped, or the cycle failed
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Sync already in flight; trigger coalesced")
            return None
        try:
            if self._stop_event.is_set():
                return None
            return self._cycle()
        finally:
            self._cycle_lock.release()

    def _cycle(self) -> Optional[SyncResult]:
        self._state = SyncState.SYNCING
        self._heartbeat("working")
        try:
            result = self._sync_fn(self.config, stop_event=self._stop_event, clock=self._clock)
        except SyncCancelled:
            logger.info("Sync cycle cancelled by shutdown")
            return None
        except Exception as exc:  # noqa: BLE001
            self.last_error = str(exc)
            logger.warning("Sync cycle failed: %s", exc)
            self._heartbeat("error")
            return None
        finally:
            if self._state is SyncState.SYNCING:
                self._state = SyncState.IDLE

        self.last_result = result
        self.last_error = None
        self._heartbeat("ok")
        self.store.reload()
        return result

    def trigger_async(self) -> bool:
        """Trigger a cycle on a short-lived thread.

        Returns:
            False when a cycle is already in flight (the request is coalesced)
        """
        if self._state is SyncState.STOPPED:
            return False
        if self._cycle_lock.locked():
            return False
        threading.Thread(target=self.trigger, name="jevons-sync-trigger", daemon=True).start()
        return True

    def run_once(self) -> Optional[SyncResult]:
        """Run a single cycle in the calling thread."""
        return self.trigger()

    def stop(self, timeout: float = 5.0) -> None:
        """Request shutdown and wait for the background thread to exit.

        An in-flight cycle is abandoned at the next session-file boundary
        without writing any output.
        """
        if self._state is SyncState.STOPPED:
            return
        self._stop_event.set()
        self._state = SyncState.STOPPED
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._heartbeat("stopped", interval=0)
        remove_pid_file(self.config.pid_file)
        logger.info("Sync scheduler stopped")
