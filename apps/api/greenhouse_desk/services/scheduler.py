from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``fn`` every ``interval`` seconds on a daemon thread until stopped.

    A failing run is logged and the loop carries on; ``stop`` wakes the thread
    immediately instead of waiting out the sleep.
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], object]):
        self.name = name
        self.interval = max(1.0, float(interval))
        self.fn = fn
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> None:
        try:
            self.fn()
        except Exception:
            logger.exception("%s run failed", self.name)

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started: every %ss", self.name, self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("%s stopped", self.name)
