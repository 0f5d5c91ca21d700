"""Infrastructure layer of the notification engine.

Domain-independent building blocks shared by the notification module:

- clock: Injectable time source (SystemClock, FrozenClock)
- configuration: Settings aggregated from environment (pydantic-settings)
- logging: structlog configuration, run context binding, redaction
- operations: OperationResult and provider/AWS error classification
- idempotency: TTL key reservations (in-memory or DynamoDB)
- notifications: Channel senders, providers, preferences, rate limiting
- resilience: Circuit breakers around channel providers
- clients.aws: DynamoDB client used by the shared backends
- services: Application-scoped providers and FastAPI dependencies
"""
