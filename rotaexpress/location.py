"""
Live position tracking for Rota Express.

The device's positioning capability is modelled as an iterable of
``Coordinate`` values that may never end. ``LiveLocationTracker``
consumes such a stream on a background thread and keeps only the most
recent valid fix; there is no history and no queue. Reading the
position never blocks on the stop store and vice versa.

The live position is ephemeral: it is re-acquired every session and is
never written to storage.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from rotaexpress.errors import CaptureUnavailable
from rotaexpress.geo import Coordinate

logger = logging.getLogger(__name__)


class LiveLocationTracker:
    def __init__(self) -> None:
        self._latest: Optional[Coordinate] = None
        self._error: Optional[CaptureUnavailable] = None
        self._cond = threading.Condition()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def latest(self) -> Optional[Coordinate]:
        return self._latest

    @property
    def error(self) -> Optional[CaptureUnavailable]:
        """Set when the positioning capability refused access."""
        return self._error

    def update(self, coordinate: Coordinate) -> bool:
        """Record a new fix, replacing the previous one. Invalid fixes are ignored."""
        if not isinstance(coordinate, Coordinate) or not coordinate.is_valid():
            logger.debug("Ignoring invalid position fix %r", coordinate)
            return False
        with self._cond:
            self._latest = coordinate
            self._error = None
            self._cond.notify_all()
        return True

    def wait_for_fix(self, timeout: Optional[float] = None) -> Optional[Coordinate]:
        """Block until a fix is known or ``timeout`` expires; return it or ``None``."""
        with self._cond:
            self._cond.wait_for(lambda: self._latest is not None or self._error is not None, timeout=timeout)
            return self._latest

    def follow(self, stream: Iterable[Coordinate]) -> None:
        """Start consuming ``stream`` in the background, replacing any previous one."""
        self.stop()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._consume, args=(stream, stop_event), name="live-location", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        """Unsubscribe from the current stream, if any."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        self._stop_event = None

    def _consume(self, stream: Iterable[Coordinate], stop_event: threading.Event) -> None:
        try:
            for fix in stream:
                if stop_event.is_set():
                    break
                self.update(fix)
        except PermissionError as exc:
            logger.warning("Positioning permission denied: %s", exc)
            with self._cond:
                self._error = CaptureUnavailable("Location permission denied")
                self._cond.notify_all()
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()
