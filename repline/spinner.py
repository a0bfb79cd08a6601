"""
Busy indicator shown while an evaluation blocks the foreground thread.

The spinner runs on one worker thread for exactly one evaluation. Frames are
drawn under a lock that re-checks the stop token, and ``stop()`` takes the
same lock to set it, so once ``stop()`` has returned nothing more reaches the
terminal and the spinner line has been erased.
"""

import sys
import threading
import time
from typing import Callable, List, Optional, TextIO, Tuple

DEFAULT_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class NullIndicator:
    """No-op indicator used when the spinner is disabled or in shell mode."""

    def __init__(self):
        self.frames_drawn: List[Tuple[float, str]] = []
        self.stopped_at: Optional[float] = None

    def start(self):
        pass

    def stop(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.stop()
        return False


class BusyIndicator:
    """
    Cancellable spinner for a single blocking call.

    Args:
        frames: Animation frames; empty disables drawing
        interval: Seconds between frames
        stream: Where frames go (default ``sys.stderr``)
        clock: Time source for the frame log
    """

    def __init__(
        self,
        frames: str = DEFAULT_FRAMES,
        interval: float = 0.08,
        stream: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.frames = frames
        self.interval = interval
        self._stream = stream
        self._clock = clock
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._out: Optional[TextIO] = None
        self._visible = False
        # (timestamp, frame) for every frame drawn
        self.frames_drawn: List[Tuple[float, str]] = []
        self.stopped_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._thread is not None

    # ── public API ─────────────────────────────────────────────────

    def start(self):
        """Launch the worker. The first frame appears after one interval."""
        if not self.frames or self._thread is not None:
            return
        # Bound now: sys.stderr may be redirected while the evaluation runs
        self._out = self._stream or sys.stderr
        self._stop_event.clear()
        self.stopped_at = None
        self._thread = threading.Thread(target=self._run, name="repline-spinner", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop drawing, join the worker and erase the spinner. Idempotent."""
        with self._lock:
            if not self._stop_event.is_set():
                self._stop_event.set()
                self.stopped_at = self._clock()
        thread = self._thread
        if thread is not None:
            if thread is not threading.current_thread():
                thread.join()
            self._thread = None
        with self._lock:
            self._clear()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()
        return False

    # ── internals ──────────────────────────────────────────────────

    def _clear(self):
        if self._visible:
            self._out.write("\r\033[K")
            self._out.flush()
            self._visible = False

    def _run(self):
        idx = 0
        while not self._stop_event.wait(timeout=self.interval):
            with self._lock:
                if self._stop_event.is_set():
                    break
                frame = self.frames[idx % len(self.frames)]
                self._out.write(f"\r{frame} ")
                self._out.flush()
                self._visible = True
                self.frames_drawn.append((self._clock(), frame))
            idx += 1


def make_indicator(section: dict, enabled: bool = True, stream: Optional[TextIO] = None):
    """Build an indicator from the ``spinner`` settings section."""
    frames = section.get("frames") or ""
    if not enabled or not frames:
        return NullIndicator()
    interval = max(int(section.get("interval_ms", 80)), 10) / 1000
    return BusyIndicator(frames=frames, interval=interval, stream=stream)
