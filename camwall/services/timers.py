"""
Cancellable timer service.
Call sites keep the handle they get back and cancel it before rescheduling.
"""
import threading
from typing import Callable, Optional


class TimerHandle:
    """Handle for one scheduled callback"""

    def __init__(self, timer: threading.Timer, delay: float):
        self._timer = timer
        self.delay = delay

    @property
    def active(self) -> bool:
        return self._timer.is_alive() and not self._timer.finished.is_set()

    def cancel(self):
        self._timer.cancel()


class TimerService:
    """Schedules callbacks on daemon threading.Timer threads"""

    def schedule(self, delay: float, callback: Callable, *args) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), callback, args=args)
        timer.daemon = True
        timer.start()
        return TimerHandle(timer, delay)

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()
