"""
Countdown timer for trivia rounds.
Emits periodic ticks on the running event loop, decoupled from rendering.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(timer_name: str, period: float) -> None:
        """Log timer start."""
        logger.info(
            f"Timer lifecycle: START - Timer {timer_name}, Period {period}s",
            extra={
                'event_type': 'timer_start',
                'timer_name': timer_name,
                'period': period,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_tick(timer_name: str, tick_count: int) -> None:
        """Log tick events (throttled to avoid spam)."""
        if tick_count % 10 == 0:
            logger.debug(
                f"Timer lifecycle: TICK - Timer {timer_name}, Tick {tick_count}",
                extra={
                    'event_type': 'timer_tick',
                    'timer_name': timer_name,
                    'tick_count': tick_count,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_stopped(timer_name: str, reason: str, tick_count: int) -> None:
        """Log timer stop (explicit stop, restart, or cancellation)."""
        logger.info(
            f"Timer lifecycle: STOPPED - Timer {timer_name}, Reason {reason}, Ticks {tick_count}",
            extra={
                'event_type': 'timer_stopped',
                'timer_name': timer_name,
                'reason': reason,
                'tick_count': tick_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_name: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Timer {timer_name}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_name': timer_name,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """Repeating tick source with idempotent stop."""

    def __init__(self, name: str = None):
        """
        Initialize the timer.

        Args:
            name: Label used in log records, usually the round id
        """
        self._name = name or f"timer-{id(self):x}"
        self._task: Optional[asyncio.Task] = None
        self._tick_count = 0
        self._period = 1.0

    @property
    def is_running(self) -> bool:
        """Check if the tick loop is scheduled and not finished."""
        return self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        """Number of ticks emitted by the current (or last) run."""
        return self._tick_count

    def start(self, on_tick: Callable[[], Any], period_seconds: float = 1.0) -> None:
        """
        Begin emitting ticks every ``period_seconds``.

        A run already in progress is stopped first, so there is never more
        than one tick stream. Must be called from within a running event loop.

        Args:
            on_tick: Plain or coroutine function called once per period
            period_seconds: Delay between ticks
        """
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")

        if self.is_running:
            self._cancel_task("restart")

        self._tick_count = 0
        self._period = period_seconds
        self._task = asyncio.create_task(self._run(on_tick, period_seconds))
        TimerLifecycleLogger.log_timer_start(self._name, period_seconds)

    def stop(self) -> bool:
        """
        Halt tick emission. Safe to call at any time.

        Returns:
            True if a running timer was stopped, False if nothing was running
        """
        if not self.is_running:
            logger.debug(f"No running timer to stop for {self._name}")
            self._task = None
            return False
        self._cancel_task("stop requested")
        return True

    def _cancel_task(self, reason: str) -> None:
        task = self._task
        self._task = None
        task.cancel()
        TimerLifecycleLogger.log_timer_stopped(self._name, reason, self._tick_count)

    async def _run(self, on_tick: Callable[[], Any], period: float) -> None:
        try:
            while True:
                await asyncio.sleep(period)
                self._tick_count += 1
                TimerLifecycleLogger.log_timer_tick(self._name, self._tick_count)
                try:
                    result = on_tick()
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    TimerLifecycleLogger.log_timer_error(
                        self._name,
                        type(e).__name__,
                        str(e),
                        "on_tick"
                    )
        except asyncio.CancelledError:
            logger.debug(f"Tick loop cancelled for {self._name}")
            raise
