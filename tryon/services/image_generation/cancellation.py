"""
Cancellation signal for in-flight generations (mainly the Grsai poll loop).
"""
import threading


class CancelToken:
    """Set once by the caller; waits on it wake up early when cancelled."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if cancelled meanwhile."""
        return self._event.wait(seconds)
