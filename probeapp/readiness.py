"""
Readiness controller
====================
Simulates a cold start: the service is live immediately but only reports
ready once a fixed warm-up delay has elapsed. The flag goes false -> true
exactly once and never reverts for the life of the process.
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger("uvicorn.error")


class ReadinessController:
    def __init__(self, delay: float = 10.0):
        self.delay = delay
        self._ready = threading.Event()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Schedule the one-shot warm-up timer. Calling it again is a no-op."""
        with self._lock:
            if self._timer is not None:
                return
            logger.info("Ready NOK")
            self._timer = threading.Timer(self.delay, self._mark_ready)
            self._timer.daemon = True
            self._timer.name = "readiness-warmup"
            self._timer.start()

    def _mark_ready(self) -> None:
        self._ready.set()
        logger.info("Ready OK")

    def cancel(self) -> None:
        """Drop a pending warm-up; an already-flipped flag stays true."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until ready or until ``timeout`` seconds pass."""
        return self._ready.wait(timeout)
