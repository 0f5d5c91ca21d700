"""Unit tests for the batch processor."""

from datetime import timedelta

import pytest

from infrastructure.configuration.features import NotificationBatchSettings
from modules.notifications.batch import (
    BatchProcessor,
    batch_key,
    is_retryable_failure,
)
from modules.notifications.models import (
    Channel,
    FailureKind,
    NotificationStatus,
    NotificationType,
    Priority,
)
from tests.factories import NOW, make_notification

pytestmark = pytest.mark.unit

COOLDOWN = timedelta(minutes=30)


def stored(store, **kwargs):
    record = make_notification(**kwargs)
    store.add(record)
    return record


def processor_with(engine, clock, timeout_seconds=600, **settings):
    return BatchProcessor(
        engine.store,
        engine.cache,
        engine.dispatcher,
        clock,
        NotificationBatchSettings(**settings),
        timeout_seconds=timeout_seconds,
    )


def exploding_processor(engine, store, clock):
    """Processor whose dispatcher claims the item, then dies mid-send."""

    class ExplodingDispatcher:
        controller = engine.controller

        def dispatch(self, notification_id):
            store.claim(notification_id, clock.now())
            raise RuntimeError("worker lost")

    return BatchProcessor(
        store, engine.cache, ExplodingDispatcher(), clock, NotificationBatchSettings()
    )


def failed_record(**overrides):
    fields = {
        "status": NotificationStatus.FAILED,
        "failure_kind": FailureKind.TRANSIENT,
        "failure_reason": "timeout",
        "attempts": 1,
        "last_attempted_at": NOW - timedelta(minutes=31),
    }
    fields.update(overrides)
    return make_notification(**fields)


class TestBatchKey:
    def test_order_independent(self):
        assert batch_key(["b", "a"]) == batch_key(["a", "b"])

    def test_different_sets_differ(self):
        assert batch_key(["a"]) != batch_key(["a", "b"])


class TestRun:
    """Tests for BatchProcessor.run()."""

    def test_groups_and_sends(self, engine, store, email_provider, sms_provider):
        ids = [
            stored(store).id,
            stored(store, channel=Channel.SMS).id,
            stored(store).id,
        ]

        report = engine.batch.run(ids)

        assert report.groups == 2
        assert report.tally.sent == 3
        assert len(email_provider.calls) == 2
        assert len(sms_provider.calls) == 1
        assert report.run_id is not None

    def test_identical_batch_is_duplicate(self, engine, store):
        """A second run over the same ids within the window does nothing."""
        ids = [stored(store).id, stored(store).id]
        engine.batch.run(ids)

        second = engine.batch.run(list(reversed(ids)))

        assert second.duplicate is True
        assert second.tally.processed == 0

    def test_invalid_items_are_counted(self, engine, store):
        sent = stored(store, status=NotificationStatus.SENT)
        pending = stored(store)

        report = engine.batch.run(["missing", sent.id, pending.id])

        assert report.invalid == 2
        assert report.tally.sent == 1

    def test_empty_batch(self, engine):
        report = engine.batch.run([])
        assert report.total == 0
        assert report.duplicate is False

    def test_pacing_delays(self, engine, store, clock):
        """Items in a group and groups are separated by the pacing delays."""
        processor = processor_with(
            engine,
            clock,
            NOTIFICATIONS_INTER_ITEM_DELAY_MS=50,
            NOTIFICATIONS_INTER_GROUP_DELAY_MS=200,
        )
        ids = [
            stored(store).id,
            stored(store).id,
            stored(store, channel=Channel.SMS).id,
        ]

        processor.run(ids)

        assert clock.slept == [0.05, 0.2]

    def test_timeout_leaves_rest_pending(self, engine, store, clock):
        processor = processor_with(
            engine,
            clock,
            timeout_seconds=1,
            NOTIFICATIONS_INTER_ITEM_DELAY_MS=600,
        )
        records = [stored(store) for _ in range(4)]

        report = processor.run([r.id for r in records])

        assert report.timed_out is True
        assert report.tally.sent == 3
        assert report.left_pending == 1
        assert store.get(records[-1].id).status == NotificationStatus.PENDING

    def test_large_batch_recommends_cleanup(self, engine, store, clock):
        processor = processor_with(engine, clock, NOTIFICATIONS_LARGE_BATCH_THRESHOLD=2)
        ids = [stored(store).id, stored(store).id]

        report = processor.run(ids)

        assert report.recommendation.job == "cleanup"
        assert report.recommendation.run_again_after == timedelta(minutes=30)

    def test_small_batch_has_no_recommendation(self, engine, store):
        report = engine.batch.run([stored(store).id])
        assert report.recommendation is None

    def test_abort_fails_claimed_items(self, engine, store, clock):
        """A run that blows up fails its still-claimed items and re-raises."""

        processor = exploding_processor(engine, store, clock)
        record = stored(store)

        with pytest.raises(RuntimeError):
            processor.run([record.id])

        saved = store.get(record.id)
        assert saved.status == NotificationStatus.FAILED
        assert saved.failure_code == "BATCH_ABORTED"

    def test_abort_escalates_urgent_items(self, engine, store, clock, escalator):
        processor = exploding_processor(engine, store, clock)
        urgent = stored(
            store,
            notification_type=NotificationType.CONSULTATION_STARTING_SOON,
            channel=Channel.PUSH,
            priority=Priority.URGENT,
        )

        with pytest.raises(RuntimeError):
            processor.run([urgent.id])

        saved = store.get(urgent.id)
        assert saved.failure_code == "BATCH_ABORTED"
        assert saved.escalated_at == NOW
        assert [e.notification_id for e in escalator.events] == [urgent.id]


class TestRunFromPending:
    def test_processes_due_records_only(self, engine, store, clock):
        due = stored(store, priority=Priority.HIGH)
        future = stored(store, scheduled_at=NOW + timedelta(hours=1))

        report = engine.batch.run_from_pending()

        assert report.tally.sent == 1
        assert store.get(due.id).status == NotificationStatus.SENT
        assert store.get(future.id).status == NotificationStatus.PENDING

    def test_type_filter(self, engine, store):
        stored(store)
        reminder = stored(
            store,
            notification_type=NotificationType.BOOKING_FOLLOW_UP,
        )

        report = engine.batch.run_from_pending(
            type_filter=NotificationType.BOOKING_FOLLOW_UP
        )

        assert report.total == 1
        assert store.get(reminder.id).attempts == 1


class TestRetryableFailures:
    """Tests for explicit retries of failed records."""

    def test_transient_failure_after_cooldown(self):
        assert is_retryable_failure(failed_record(), NOW, COOLDOWN)

    def test_fatal_failure_never_retried(self):
        record = failed_record(failure_kind=FailureKind.FATAL)
        assert not is_retryable_failure(record, NOW, COOLDOWN)

    def test_inside_cooldown(self):
        record = failed_record(last_attempted_at=NOW - timedelta(minutes=5))
        assert not is_retryable_failure(record, NOW, COOLDOWN)

    def test_attempts_exhausted(self):
        record = failed_record(attempts=3)
        assert not is_retryable_failure(record, NOW, COOLDOWN)

    def test_deadline_passed(self):
        record = failed_record(retry_until=NOW - timedelta(minutes=1))
        assert not is_retryable_failure(record, NOW, COOLDOWN)

    def test_run_from_failed_requeues_and_sends(self, engine, store):
        retryable = failed_record()
        fatal = failed_record(failure_kind=FailureKind.FATAL)
        store.add(retryable)
        store.add(fatal)

        report = engine.batch.run_from_failed()

        assert report.requeued == 1
        assert report.tally.sent == 1
        assert store.get(retryable.id).status == NotificationStatus.SENT
        assert store.get(retryable.id).attempts == 2
        assert store.get(fatal.id).status == NotificationStatus.FAILED
