import threading
import time
from typing import Callable, Dict, Optional

import schedule
import structlog

from modules.notifications import NotificationEngine
from modules.notifications.models import Recommendation
from modules.notifications.retry import backoff_delay

logger = structlog.get_logger()

FOLLOW_UP_TAG = "follow_up"
RETRY_TAG = "retry"


def safe_run(job):
    def wrapper(*args, **kwargs):
        try:
            return job(*args, **kwargs)
        except Exception as e:
            logger.error(
                "safe_run_error",
                error=str(e),
                module=job.__module__,
                function=job.__name__,
                arguments=kwargs,
                job_args=args,
            )
            return None

    return wrapper


def init(engine: NotificationEngine):
    logger.info("scheduled_tasks_initialized")

    schedule.every(5).minutes.do(
        run_with_retry, "overdue_sweep", run_overdue_sweep, engine=engine
    )
    schedule.every(1).minutes.do(
        run_with_retry, "batch", run_pending_batch, engine=engine
    )
    schedule.every(30).minutes.do(
        run_with_retry, "batch", run_failed_batch, engine=engine
    )
    schedule.every().day.at("03:00").do(
        run_with_retry, "cleanup", run_cleanup, engine=engine
    )
    schedule.every(15).minutes.do(safe_run(run_health_check), engine=engine)
    schedule.every(5).minutes.do(safe_run(scheduler_heartbeat))


def run_with_retry(
    job_name: str, job: Callable, engine: NotificationEngine, attempt: int = 1
):
    """Run a job; if it raises, schedule a rerun per the job's retry policy.

    Reruns follow the policy's backoff and stop after max_attempts runs.
    At most one rerun per job function is pending at any time.
    """
    policy = engine.policies.for_job(job_name)
    try:
        return job(engine=engine)
    except Exception as e:  # pylint: disable=broad-except
        if attempt >= policy.max_attempts:
            logger.error(
                "job_retries_exhausted",
                job=job_name,
                function=job.__name__,
                attempts=attempt,
                error=str(e),
            )
            return None
        delay = backoff_delay(policy, attempt)
        logger.warning(
            "job_run_failed",
            job=job_name,
            function=job.__name__,
            attempt=attempt,
            retry_in_seconds=delay,
            error=str(e),
        )
        schedule_rerun(job_name, job, engine, attempt + 1, delay)
        return None


def schedule_rerun(
    job_name: str,
    job: Callable,
    engine: NotificationEngine,
    attempt: int,
    delay_seconds: int,
) -> Optional[schedule.Job]:
    tag = f"{RETRY_TAG}:{job.__name__}"
    if schedule.get_jobs(tag):
        return None

    def run_once():
        schedule.cancel_job(rerun)
        run_with_retry(job_name, job, engine, attempt)
        return schedule.CancelJob

    rerun = schedule.every(max(delay_seconds, 1)).seconds.do(run_once)
    return rerun.tag(RETRY_TAG, tag)


def scheduler_heartbeat():
    logger.info(
        "running_scheduler_heartbeat",
        module="scheduled_tasks",
        time=time.ctime(),
    )


def run_overdue_sweep(engine: NotificationEngine):
    report = engine.sweeper.run()
    honour_recommendation(engine, report.recommendation)
    return report


def run_pending_batch(engine: NotificationEngine):
    report = engine.batch.run_from_pending()
    honour_recommendation(engine, report.recommendation)
    return report


def run_failed_batch(engine: NotificationEngine):
    report = engine.batch.run_from_failed()
    honour_recommendation(engine, report.recommendation)
    return report


def run_cleanup(engine: NotificationEngine):
    report = engine.cleanup.run()
    honour_recommendation(engine, report.recommendation)
    return report


def run_health_check(engine: NotificationEngine):
    return engine.health.run()


JOBS: Dict[str, Callable] = {
    "overdue_sweep": run_overdue_sweep,
    "cleanup": run_cleanup,
    "batch": run_pending_batch,
}


def honour_recommendation(
    engine: NotificationEngine, recommendation: Optional[Recommendation]
) -> Optional[schedule.Job]:
    """Register a one-off follow-up run for a returned recommendation.

    At most one follow-up per job is pending at any time.
    """
    if recommendation is None:
        return None

    job = JOBS.get(recommendation.job)
    if job is None:
        logger.warning("recommendation_unknown_job", job=recommendation.job)
        return None

    tag = f"{FOLLOW_UP_TAG}:{recommendation.job}"
    if schedule.get_jobs(tag):
        logger.info("recommendation_already_scheduled", job=recommendation.job)
        return None

    def run_once():
        safe_run(job)(engine=engine)
        return schedule.CancelJob

    seconds = max(int(recommendation.run_again_after.total_seconds()), 1)
    follow_up = schedule.every(seconds).seconds.do(run_once).tag(FOLLOW_UP_TAG, tag)
    logger.info(
        "recommendation_scheduled",
        job=recommendation.job,
        run_again_after_seconds=seconds,
        reason=recommendation.reason,
    )
    return follow_up


def run_continuously(interval=1):
    """Continuously run, while executing pending jobs at each
    elapsed time interval.
    @return cease_continuous_run: threading. Event which can
    be set to cease continuous run. Missed runs are not caught up:
    a job due several times during one interval runs once.
    """
    cease_continuous_run = threading.Event()

    class ScheduleThread(threading.Thread):
        @classmethod
        def run(cls):
            while not cease_continuous_run.is_set():
                schedule.run_pending()
                time.sleep(interval)

    continuous_thread = ScheduleThread(daemon=True)
    continuous_thread.start()
    return cease_continuous_run
