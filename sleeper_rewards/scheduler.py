"""Recurring trigger for the daily distribution"""
import logging
import threading
from datetime import date, datetime
from typing import Callable, Optional

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.models.results import DistributionOutcome
from sleeper_rewards.services.distribution import DistributionService

logger = logging.getLogger(__name__)


class DistributionScheduler:
    """
    Checks the clock on a fixed interval and runs the distribution during
    the configured hour.

    Owns its worker thread; nothing is scheduled until start() and stop()
    returns once the worker has exited. Several ticks may land in the
    distribution hour, the distribution itself is idempotent per date.
    """

    def __init__(self, service: DistributionService, config: Settings = default_settings,
                 interval_seconds: Optional[float] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.service = service
        self.distribution_hour = config.DISTRIBUTION_HOUR
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else config.DISTRIBUTION_CHECK_INTERVAL_SECONDS
        )
        # Server-local wall clock
        self._clock = clock or datetime.now
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="DistributionScheduler"
        )
        self._thread.start()
        logger.info(f"Distribution scheduler started (runs daily at {self.distribution_hour:02d}:00, "
                    f"checks every {self.interval_seconds:g}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Distribution scheduler stopped")

    def _run_loop(self) -> None:
        while self._running:
            self.tick(self._clock())
            if self._stop_event.wait(self.interval_seconds):
                break

    def tick(self, now: datetime) -> Optional[DistributionOutcome]:
        """One clock check; failures are logged and retried on a later tick"""
        if now.hour != self.distribution_hour:
            return None
        try:
            outcome = self.service.run_daily_distribution()
            logger.info(f"Scheduled distribution for {outcome.night_date}: {outcome.status.value}")
            return outcome
        except Exception as e:
            logger.error(f"Scheduled distribution failed, will retry next tick: {e}")
            return None

    def trigger(self, today: Optional[date] = None) -> DistributionOutcome:
        """Manual run for the night before ``today``; errors propagate to the caller"""
        logger.info("Manual distribution triggered")
        return self.service.run_daily_distribution(today)
