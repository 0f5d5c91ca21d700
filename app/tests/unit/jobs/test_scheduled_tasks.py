"""Unit tests for scheduled notification jobs.

Tests the scheduling logic, error handling and recommendation follow-ups
without waiting on the scheduler thread.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import schedule

from jobs import scheduled_tasks
from jobs.scheduled_tasks import (
    FOLLOW_UP_TAG,
    RETRY_TAG,
    honour_recommendation,
    init,
    run_continuously,
    run_overdue_sweep,
    run_with_retry,
    safe_run,
)
from modules.notifications.models import NotificationStatus, Recommendation
from tests.factories import make_notification

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clear_schedule():
    schedule.clear()
    yield
    schedule.clear()


def recommendation(job="overdue_sweep", minutes=5):
    return Recommendation(
        job=job, run_again_after=timedelta(minutes=minutes), reason="backlog"
    )


class TestSafeRun:
    """Tests for the safe_run error handling wrapper."""

    def test_passes_arguments_and_result(self):
        job = MagicMock(return_value="done")
        job.__module__ = "test_module"
        job.__name__ = "test_job"

        assert safe_run(job)(engine="engine") == "done"
        job.assert_called_once_with(engine="engine")

    @patch("jobs.scheduled_tasks.logger")
    def test_catches_and_logs_exception(self, mock_logger):
        def failing_job():
            raise ValueError("Test error")

        assert safe_run(failing_job)() is None

        error_call = mock_logger.error.call_args
        assert error_call[0][0] == "safe_run_error"
        assert error_call[1]["error"] == "Test error"
        assert error_call[1]["function"] == "failing_job"


class TestInit:
    def test_registers_every_job(self, engine):
        init(engine)
        assert len(schedule.get_jobs()) == 6


class TestRunWithRetry:
    """Job-level reruns driven by the job's retry policy."""

    def test_successful_run_schedules_nothing(self, engine):
        def run_sweep(engine):
            return "report"

        assert run_with_retry("overdue_sweep", run_sweep, engine) == "report"
        assert schedule.get_jobs(RETRY_TAG) == []

    def test_failed_run_is_rerun_after_policy_backoff(self, engine):
        def run_sweep(engine):
            raise RuntimeError("store unavailable")

        assert run_with_retry("overdue_sweep", run_sweep, engine) is None

        (rerun,) = schedule.get_jobs(RETRY_TAG)
        assert rerun.interval == 60
        assert "retry:run_sweep" in rerun.tags

    def test_reruns_stop_after_max_attempts(self, engine):
        calls = []

        def run_cleanup(engine):
            calls.append(engine)
            raise RuntimeError("store unavailable")

        run_with_retry("cleanup", run_cleanup, engine)
        assert schedule.get_jobs(RETRY_TAG)[0].interval == 300
        schedule.run_all()

        assert len(calls) == 2
        assert schedule.get_jobs(RETRY_TAG) == []

    def test_rerun_that_fails_again_backs_off_further(self, engine):
        def run_sweep(engine):
            raise RuntimeError("store unavailable")

        run_with_retry("overdue_sweep", run_sweep, engine)
        schedule.run_all()

        (rerun,) = schedule.get_jobs(RETRY_TAG)
        assert rerun.interval == 300

    def test_rerun_succeeds(self, engine):
        outcomes = [RuntimeError("throttled"), "report"]

        def run_pending(engine):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        run_with_retry("batch", run_pending, engine)
        schedule.run_all()

        assert outcomes == []
        assert schedule.get_jobs(RETRY_TAG) == []


class TestHonourRecommendation:
    def test_none_is_ignored(self, engine):
        assert honour_recommendation(engine, None) is None
        assert schedule.get_jobs() == []

    def test_registers_one_off_follow_up(self, engine):
        job = honour_recommendation(engine, recommendation(minutes=5))

        assert job is not None
        assert job.interval == 300
        assert FOLLOW_UP_TAG in job.tags
        assert "follow_up:overdue_sweep" in job.tags

    def test_single_pending_follow_up_per_job(self, engine):
        honour_recommendation(engine, recommendation())
        assert honour_recommendation(engine, recommendation()) is None
        assert honour_recommendation(engine, recommendation(job="cleanup")) is not None
        assert len(schedule.get_jobs(FOLLOW_UP_TAG)) == 2

    def test_unknown_job(self, engine):
        assert honour_recommendation(engine, recommendation(job="reindex")) is None

    def test_follow_up_runs_once(self, engine):
        calls = []
        with patch.dict(
            scheduled_tasks.JOBS, {"overdue_sweep": lambda engine: calls.append(engine)}
        ):
            honour_recommendation(engine, recommendation())
            schedule.run_all()

        assert calls == [engine]
        assert schedule.get_jobs(FOLLOW_UP_TAG) == []


class TestJobs:
    def test_overdue_sweep_honours_recommendation(self, engine, store):
        for _ in range(3):
            store.add(make_notification())
        engine.sweeper.batch_settings = engine.sweeper.batch_settings.model_copy(
            update={"sweep_batch_size": 2}
        )

        report = run_overdue_sweep(engine)

        assert report.dispatched.sent == 2
        assert len(schedule.get_jobs("follow_up:overdue_sweep")) == 1

    def test_quiet_sweep_schedules_nothing(self, engine, store):
        record = make_notification()
        store.add(record)

        run_overdue_sweep(engine)

        assert store.get(record.id).status == NotificationStatus.SENT
        assert schedule.get_jobs(FOLLOW_UP_TAG) == []


class TestRunContinuously:
    @patch("jobs.scheduled_tasks.threading.Thread.start")
    def test_returns_stop_event(self, mock_start):
        cease = run_continuously(interval=1)
        assert hasattr(cease, "set")
        mock_start.assert_called_once()
