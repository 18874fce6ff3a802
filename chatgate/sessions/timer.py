"""Single-shot, single-outstanding timer used for reconnect scheduling."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class ReconnectTimer:
    """Holds at most one pending fire.

    Scheduling while a fire is pending cancels the earlier one. When the
    timer fires, the callback runs in its own task; a reference is kept
    until it completes so the task is not garbage collected mid-flight.
    Cancelling only prevents a pending fire from starting. A callback
    that is already running is expected to re-check session state
    before acting.
    """

    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._delay: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def delay(self) -> Optional[float]:
        """Delay of the pending fire, None when nothing is scheduled."""
        return self._delay if self._handle is not None else None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay: float, callback: TimerCallback) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._delay = delay
        self._handle = loop.call_later(delay, self._fire, callback)

    def cancel(self) -> bool:
        """Cancel the pending fire. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._delay = None
        return True

    def _fire(self, callback: TimerCallback) -> None:
        self._handle = None
        self._delay = None
        self._task = asyncio.create_task(callback())
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self._task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Reconnect callback raised: %r", exc)
