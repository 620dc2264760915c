import logging
import threading
import time
from typing import Callable, Optional

from ..config import settings
from ..errors import ServiceError, ValidationError
from ..models import AutoStopStatus
from .container_runtime import ContainerRuntime, NetworkCounters

logger = logging.getLogger(__name__)


class AutoStopController:
    """Stops the managed container after a sustained run of quiet minutes.

    Once per interval the controller sums the container's rx/tx counters and
    compares them with the previous sample. A period that moved fewer than
    ``idle_threshold_bytes`` extends the idle streak, anything more cancels
    it. When the streak reaches ``timeout_minutes`` the container is stopped
    and the streak starts over.

    Configuration and ``idle_since`` share one lock. Docker calls happen
    outside it, and a sample taken while the configuration changed underneath
    it is discarded, so a settings update always leaves a fresh streak.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        container_name: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout_minutes: Optional[float] = None,
        idle_threshold_bytes: Optional[int] = None,
        interval_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.runtime = runtime
        self.container_name = container_name if container_name is not None else settings.restart_container
        self.idle_threshold_bytes = (
            settings.idle_threshold_bytes if idle_threshold_bytes is None else idle_threshold_bytes
        )
        self.interval_seconds = (
            settings.auto_stop_interval_seconds if interval_seconds is None else interval_seconds
        )
        self._clock = clock

        self._lock = threading.Lock()
        self._enabled = settings.auto_stop_enabled if enabled is None else enabled
        self._timeout_minutes = (
            settings.auto_stop_timeout_minutes if timeout_minutes is None else timeout_minutes
        )
        self._idle_since: Optional[float] = None
        self._last_counters: Optional[NetworkCounters] = None
        self._generation = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def idle_since(self) -> Optional[float]:
        with self._lock:
            return self._idle_since

    def get_status(self) -> AutoStopStatus:
        with self._lock:
            idle_minutes = 0.0
            if self._idle_since is not None:
                idle_minutes = max(0.0, (self._clock() - self._idle_since) / 60)
            return AutoStopStatus(
                enabled=self._enabled,
                timeout_minutes=self._timeout_minutes,
                idle_minutes=idle_minutes,
            )

    def update_config(
        self, enabled: Optional[bool] = None, timeout_minutes: Optional[float] = None
    ) -> AutoStopStatus:
        if timeout_minutes is not None and timeout_minutes <= 0:
            raise ValidationError("timeoutMinutes must be positive")
        with self._lock:
            if enabled is not None:
                self._enabled = enabled
            if timeout_minutes is not None:
                self._timeout_minutes = timeout_minutes
            self._idle_since = None
            self._generation += 1
            logger.info(
                "Auto-stop configured: enabled=%s timeout=%sm",
                self._enabled,
                self._timeout_minutes,
            )
        return self.get_status()

    def sample_and_maybe_stop(self) -> bool:
        """Run one sampling period. Returns True when a stop was issued."""
        name = self.container_name
        with self._lock:
            if not self._enabled or not name:
                return False
            generation = self._generation

        try:
            state = self.runtime.inspect(name)
            if not state.running:
                with self._lock:
                    self._idle_since = None
                return False
            counters = self.runtime.stats(name)
        except ServiceError as exc:
            logger.warning("Auto-stop sample skipped: %s", exc.message)
            return False

        now = self._clock()
        with self._lock:
            previous = self._last_counters
            self._last_counters = counters
            if generation != self._generation or previous is None:
                return False

            delta = (counters.rx_bytes - previous.rx_bytes) + (counters.tx_bytes - previous.tx_bytes)
            if delta < 0:
                logger.info("Auto-stop: network counters reset (delta %s bytes), skipping", delta)
                return False

            if delta >= self.idle_threshold_bytes:
                if self._idle_since is not None:
                    logger.info("Auto-stop: activity detected (delta %s bytes), timer reset", delta)
                self._idle_since = None
                return False

            if self._idle_since is None:
                self._idle_since = now
            idle_minutes = (now - self._idle_since) / 60
            logger.info("Auto-stop: server idle for %.1fm (delta %s bytes)", idle_minutes, delta)
            if idle_minutes < self._timeout_minutes:
                return False

        logger.info("Auto-stop: timeout reached, stopping %s", name)
        try:
            self.runtime.stop(name)
        except ServiceError as exc:
            logger.warning("Auto-stop: failed to stop %s: %s", name, exc.message)
            return False

        with self._lock:
            if generation == self._generation:
                self._idle_since = None
        return True

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()

        def loop() -> None:
            while not self._stop_event.wait(self.interval_seconds):
                try:
                    self.sample_and_maybe_stop()
                except Exception as exc:
                    logger.warning("Auto-stop loop error: %s", exc)

        self._thread = threading.Thread(target=loop, daemon=True, name="auto-stop")
        self._thread.start()
        logger.info("Auto-stop monitor started (interval=%ss)", self.interval_seconds)

    def shutdown(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
