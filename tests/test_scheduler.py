"""Tests for the distribution scheduler lifecycle and clock checks"""
import threading
from datetime import date, datetime
from unittest.mock import Mock

import pytest

from sleeper_rewards.models.results import DistributionOutcome, DistributionStatus
from sleeper_rewards.scheduler import DistributionScheduler


@pytest.fixture
def service():
    service = Mock()
    service.run_daily_distribution.return_value = DistributionOutcome(
        status=DistributionStatus.NO_SESSIONS, night_date=date(2026, 3, 1)
    )
    return service


class TestTick:

    def test_runs_in_distribution_hour(self, service, settings):
        scheduler = DistributionScheduler(service, settings)
        outcome = scheduler.tick(datetime(2026, 3, 2, 9, 15))
        assert outcome.status == DistributionStatus.NO_SESSIONS
        service.run_daily_distribution.assert_called_once_with()

    @pytest.mark.parametrize("hour", [0, 8, 10, 23])
    def test_idle_outside_distribution_hour(self, service, settings, hour):
        scheduler = DistributionScheduler(service, settings)
        assert scheduler.tick(datetime(2026, 3, 2, hour, 0)) is None
        service.run_daily_distribution.assert_not_called()

    def test_configured_hour(self, service, settings):
        config = settings.model_copy(update={'DISTRIBUTION_HOUR': 3})
        scheduler = DistributionScheduler(service, config)
        assert scheduler.tick(datetime(2026, 3, 2, 9, 0)) is None
        assert scheduler.tick(datetime(2026, 3, 2, 3, 0)) is not None

    def test_tick_never_raises(self, service, settings, caplog):
        service.run_daily_distribution.side_effect = RuntimeError("connection refused")
        scheduler = DistributionScheduler(service, settings)
        with caplog.at_level('ERROR'):
            assert scheduler.tick(datetime(2026, 3, 2, 9, 0)) is None
        assert "retry next tick" in caplog.text


class TestTrigger:

    def test_manual_trigger_passes_date(self, service, settings):
        scheduler = DistributionScheduler(service, settings)
        scheduler.trigger(date(2026, 3, 5))
        service.run_daily_distribution.assert_called_once_with(date(2026, 3, 5))

    def test_manual_trigger_propagates_errors(self, service, settings):
        service.run_daily_distribution.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            DistributionScheduler(service, settings).trigger()


class TestLifecycle:

    def test_start_and_stop(self, service, settings):
        ran = threading.Event()
        outcome = service.run_daily_distribution.return_value

        def run(*args):
            ran.set()
            return outcome

        service.run_daily_distribution.side_effect = run

        scheduler = DistributionScheduler(
            service, settings, interval_seconds=0.01, clock=lambda: datetime(2026, 3, 2, 9, 0)
        )
        scheduler.start()
        assert scheduler.is_running
        assert ran.wait(timeout=2.0)
        scheduler.stop()

        assert not scheduler.is_running
        calls = service.run_daily_distribution.call_count
        ran.clear()
        assert not ran.wait(timeout=0.05)
        assert service.run_daily_distribution.call_count == calls

    def test_start_twice_keeps_one_worker(self, service, settings):
        scheduler = DistributionScheduler(
            service, settings, interval_seconds=60, clock=lambda: datetime(2026, 3, 2, 1, 0)
        )
        scheduler.start()
        worker = scheduler._thread
        scheduler.start()
        assert scheduler._thread is worker
        scheduler.stop()

    def test_stop_before_start(self, service, settings):
        DistributionScheduler(service, settings).stop()

    def test_interval_from_settings(self, service, settings):
        assert DistributionScheduler(service, settings).interval_seconds == 3600
