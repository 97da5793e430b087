"""Background task that periodically expires overdue holds."""

from __future__ import annotations

import threading
from typing import Optional

from hostel_inventory.services.hold_manager import HoldManager
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)


class HoldSweeper:
    """Runs ``HoldManager.sweep_expired`` on a fixed interval in a daemon thread."""

    def __init__(self, manager: HoldManager, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._manager = manager
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def runs(self) -> int:
        return self._runs

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="hold-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("Hold sweeper started (interval=%ss)", self._interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Hold sweeper did not stop within %ss", timeout)
            self._thread = None
        logger.info("Hold sweeper stopped")

    def run_once(self) -> int:
        try:
            return self._manager.sweep_expired()
        except Exception:
            logger.exception("Hold sweep failed; retrying next interval")
            return 0
        finally:
            self._runs += 1

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.run_once()
