"""Notification engine wiring.

``build_engine`` is the only place that reads settings: every component
receives its own settings section and the shared clock. Collaborators
(store, cache, providers, directory, escalator) can be injected for tests
and embedding; anything not injected falls back to the development
defaults or the backend selected in configuration.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from infrastructure.clients.aws import DynamoDBClient, ElastiCacheClient, SessionProvider
from infrastructure.clock import Clock
from infrastructure.configuration import Settings
from infrastructure.idempotency import IdempotencyCache, build_cache
from infrastructure.logging import get_module_logger
from infrastructure.notifications import (
    DeviceTokenRegistry,
    EmailChannel,
    EmailProvider,
    InAppChannel,
    InboxWriter,
    InMemoryDeviceTokenRegistry,
    InMemoryInbox,
    InMemoryPreferenceProvider,
    LogEmailProvider,
    LogPushProvider,
    LogSmsProvider,
    NotificationChannel,
    PreferenceProvider,
    PushChannel,
    PushProvider,
    RateLimiter,
    SMSChannel,
    SmsProvider,
    build_rate_limiter,
)
from infrastructure.resilience import CircuitBreakerRegistry
from infrastructure.services import get_clock, get_settings
from modules.notifications.batch import BatchProcessor
from modules.notifications.business import BusinessDirectory, InMemoryBusinessDirectory
from modules.notifications.cleanup import ArchiveSink, CleanupJob
from modules.notifications.dispatcher import Dispatcher
from modules.notifications.dynamodb_store import DynamoDBNotificationStore
from modules.notifications.escalation import Escalator, LogEscalator
from modules.notifications.health import HealthCheck
from modules.notifications.lanes import LanePool
from modules.notifications.models import Channel
from modules.notifications.relevance import RelevanceValidator
from modules.notifications.rendering import MessageRenderer, PlainTextRenderer
from modules.notifications.retry import BackoffController, RetryPolicies
from modules.notifications.router import QueueRouter
from modules.notifications.scheduler import NotificationScheduler
from modules.notifications.store import InMemoryNotificationStore, NotificationStore
from modules.notifications.sweeper import OverdueSweeper

logger = get_module_logger()


@dataclass
class NotificationEngine:
    """Every component of one engine instance, wired together."""

    settings: Settings
    clock: Clock
    store: NotificationStore
    cache: IdempotencyCache
    directory: BusinessDirectory
    preferences: PreferenceProvider
    token_registry: DeviceTokenRegistry
    rate_limiter: RateLimiter
    channels: Dict[Channel, NotificationChannel]
    breakers: CircuitBreakerRegistry
    policies: RetryPolicies
    router: QueueRouter
    lanes: LanePool
    relevance: RelevanceValidator
    controller: BackoffController
    dispatcher: Dispatcher
    scheduler: NotificationScheduler
    batch: BatchProcessor
    sweeper: OverdueSweeper
    cleanup: CleanupJob
    health: HealthCheck

    def shutdown(self) -> None:
        self.lanes.shutdown()
        self.controller.shutdown()


def build_store(
    settings: Settings, dynamodb_client: Optional[DynamoDBClient] = None
) -> NotificationStore:
    config = settings.notification_store
    if config.backend == "dynamodb":
        client = dynamodb_client or DynamoDBClient(
            SessionProvider(
                region=settings.aws.AWS_REGION,
                endpoint_url=settings.aws.ENDPOINT_URL,
            )
        )
        return DynamoDBNotificationStore(
            client, table_name=config.table_name, ttl_days=config.ttl_days
        )
    return InMemoryNotificationStore()


def build_engine(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    *,
    store: Optional[NotificationStore] = None,
    cache: Optional[IdempotencyCache] = None,
    directory: Optional[BusinessDirectory] = None,
    preferences: Optional[PreferenceProvider] = None,
    token_registry: Optional[DeviceTokenRegistry] = None,
    inbox: Optional[InboxWriter] = None,
    renderer: Optional[MessageRenderer] = None,
    email_provider: Optional[EmailProvider] = None,
    sms_provider: Optional[SmsProvider] = None,
    push_provider: Optional[PushProvider] = None,
    escalator: Optional[Escalator] = None,
    archive: Optional[ArchiveSink] = None,
    rate_limiter: Optional[RateLimiter] = None,
    dynamodb_client: Optional[DynamoDBClient] = None,
    elasticache_client: Optional[ElastiCacheClient] = None,
) -> NotificationEngine:
    """Build a fully wired NotificationEngine.

    Args:
        settings: Application settings (process settings if omitted)
        clock: Time source (system clock if omitted)

    Returns:
        NotificationEngine
    """
    settings = settings or get_settings()
    clock = clock or get_clock()
    channel_settings = settings.notification_channels

    shared_client = dynamodb_client
    if shared_client is None and "dynamodb" in (
        settings.notification_store.backend,
        settings.idempotency.IDEMPOTENCY_BACKEND,
    ):
        shared_client = DynamoDBClient(
            SessionProvider(
                region=settings.aws.AWS_REGION,
                endpoint_url=settings.aws.ENDPOINT_URL,
            )
        )

    store = store or build_store(settings, shared_client)
    cache = cache or build_cache(settings, clock, shared_client)
    directory = directory or InMemoryBusinessDirectory()
    preferences = preferences or InMemoryPreferenceProvider()
    token_registry = token_registry or InMemoryDeviceTokenRegistry()
    rate_limiter = rate_limiter or build_rate_limiter(
        settings, clock, elasticache_client
    )

    channels: Dict[Channel, NotificationChannel] = {
        Channel.EMAIL: EmailChannel(
            email_provider or LogEmailProvider(),
            clock,
            enabled=channel_settings.email_enabled,
            preferences=preferences,
        ),
        Channel.SMS: SMSChannel(
            sms_provider or LogSmsProvider(),
            clock,
            enabled=channel_settings.sms_enabled,
            preferences=preferences,
            rate_limiter=rate_limiter,
        ),
        Channel.PUSH: PushChannel(
            push_provider or LogPushProvider(),
            clock,
            enabled=channel_settings.push_enabled,
            preferences=preferences,
            token_registry=token_registry,
        ),
        Channel.DATABASE: InAppChannel(
            inbox or InMemoryInbox(),
            clock,
            enabled=channel_settings.database_enabled,
            preferences=preferences,
        ),
    }
    breakers = CircuitBreakerRegistry()
    for channel in channels.values():
        breakers.register(channel.circuit_breaker)

    policies = RetryPolicies(settings.notification_retry)
    router = QueueRouter(channel_settings)
    lanes = LanePool(channel_settings)
    relevance = RelevanceValidator(clock, settings.notification_scheduling)
    controller = BackoffController(
        clock,
        policies,
        escalator=escalator or LogEscalator(),
        max_workers=sum(lanes.workers.values()),
    )
    dispatcher = Dispatcher(
        store=store,
        cache=cache,
        channels=channels,
        directory=directory,
        relevance=relevance,
        renderer=renderer or PlainTextRenderer(),
        controller=controller,
        clock=clock,
        reservation_seconds=settings.notification_retry.dispatch_reservation_seconds,
    )
    scheduler = NotificationScheduler(
        store=store,
        cache=cache,
        directory=directory,
        router=router,
        policies=policies,
        clock=clock,
        channel_settings=channel_settings,
        scheduling_settings=settings.notification_scheduling,
        retry_settings=settings.notification_retry,
        preferences=preferences,
    )
    batch = BatchProcessor(
        store,
        cache,
        dispatcher,
        clock,
        settings.notification_batches,
        timeout_seconds=policies.for_job("batch").timeout_seconds,
    )
    sweeper = OverdueSweeper(
        store=store,
        dispatcher=dispatcher,
        router=router,
        lanes=lanes,
        scheduler=scheduler,
        directory=directory,
        clock=clock,
        batch_settings=settings.notification_batches,
        scheduling_settings=settings.notification_scheduling,
        retry_settings=settings.notification_retry,
        timeout_seconds=policies.for_job("overdue_sweep").timeout_seconds,
    )
    cleanup = CleanupJob(
        store,
        cache,
        directory,
        clock,
        settings.notification_retention,
        settings.notification_batches,
        archive=archive,
        timeout_seconds=policies.for_job("cleanup").timeout_seconds,
    )
    health = HealthCheck(
        store,
        clock,
        breakers,
        settings.notification_retention,
        settings.notification_scheduling,
        settings.notification_retry,
    )

    logger.info(
        "notification_engine_built",
        store=type(store).__name__,
        cache=type(cache).__name__,
        rate_limiter=type(rate_limiter).__name__,
        enabled_channels=[
            c.value for c, sender in channels.items() if sender.enabled
        ],
    )
    return NotificationEngine(
        settings=settings,
        clock=clock,
        store=store,
        cache=cache,
        directory=directory,
        preferences=preferences,
        token_registry=token_registry,
        rate_limiter=rate_limiter,
        channels=channels,
        breakers=breakers,
        policies=policies,
        router=router,
        lanes=lanes,
        relevance=relevance,
        controller=controller,
        dispatcher=dispatcher,
        scheduler=scheduler,
        batch=batch,
        sweeper=sweeper,
        cleanup=cleanup,
        health=health,
    )


@lru_cache
def get_engine() -> NotificationEngine:
    """Process-wide engine built from the process settings."""
    return build_engine()


def reset_engine() -> None:
    """Shut down and forget the process-wide engine (tests, reloads)."""
    if get_engine.cache_info().currsize:
        get_engine().shutdown()
    get_engine.cache_clear()
