"""Countdown timer for exams and exam sections."""
import asyncio
import enum
import inspect
import logging
from typing import Any, Callable, Protocol

from exam_api.config import WARNING_THRESHOLD_SECONDS

logger = logging.getLogger(__name__)


class TimerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    WARNING = "warning"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> Handle: ...


class CountdownTimer:
    """
    One-second cooperative countdown.

    Fires ``on_warning(remaining)`` once when the remaining time reaches the
    warning threshold and ``on_expire()`` once when it reaches zero. Only one
    tick is ever scheduled; ``start`` replaces a running countdown and
    ``cancel`` guarantees expiry never fires.
    """

    def __init__(
        self,
        on_expire: Callable[[], Any],
        on_warning: Callable[[int], Any] | None = None,
        warning_threshold: int = WARNING_THRESHOLD_SECONDS,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._on_expire = on_expire
        self._on_warning = on_warning
        self.warning_threshold = warning_threshold
        self._scheduler = scheduler
        self._handle: Handle | None = None
        self._tasks: set[asyncio.Future] = set()
        self.state = TimerState.IDLE
        self.remaining = 0
        self.warning_raised = False

    @property
    def is_running(self) -> bool:
        return self.state in (TimerState.RUNNING, TimerState.WARNING)

    def start(self, duration_seconds: int) -> None:
        """Start a countdown, replacing any countdown in progress."""
        self._cancel_handle()
        self.remaining = max(int(duration_seconds), 0)
        self.warning_raised = False
        self.state = TimerState.RUNNING
        if self.remaining == 0:
            self._expire()
            return
        self._schedule()

    def cancel(self) -> None:
        """Stop the countdown without firing expiry."""
        self._cancel_handle()
        if self.state is not TimerState.EXPIRED:
            self.state = TimerState.CANCELLED

    def tick(self) -> None:
        """Advance the countdown by one second."""
        self._handle = None
        if not self.is_running:
            return

        self.remaining -= 1
        if self.remaining <= self.warning_threshold and not self.warning_raised:
            self.warning_raised = True
            self.state = TimerState.WARNING
            if self._on_warning is not None:
                self._call(self._on_warning, self.remaining)

        if self.remaining <= 0:
            self.remaining = 0
            self._expire()
            return
        self._schedule()

    def _expire(self) -> None:
        self.state = TimerState.EXPIRED
        self._cancel_handle()
        self._call(self._on_expire)

    def _schedule(self) -> None:
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(1, self.tick)

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _call(self, callback: Callable[..., Any], *args: Any) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
