"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in application code.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema    → application.yaml
    RedisSchema          → redis.yaml
    LoggingSchema        → logging.yaml
    FeaturesSchema       → features.yaml
    SecuritySchema       → security.yaml
    ObservabilitySchema  → observability.yaml
    ConcurrencySchema    → concurrency.yaml
    EventsSchema         → events.yaml
    EmailSchema          → email.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class ServerSchema(_StrictBase):
    host: str
    port: int = Field(gt=0, lt=65536)


class CorsSchema(_StrictBase):
    origins: list[str]


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    description: str
    environment: str
    debug: bool
    api_prefix: str
    docs_enabled: bool
    server: ServerSchema
    cors: CorsSchema


# =============================================================================
# redis.yaml
# =============================================================================


class RedisSchema(_StrictBase):
    host: str
    port: int = Field(gt=0, lt=65536)
    db: int
    socket_timeout: float
    decode_responses: bool


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    format: Literal["json", "console"]
    handlers: HandlersSchema


# =============================================================================
# features.yaml
# =============================================================================


class FeaturesSchema(_StrictBase):
    api_detailed_errors: bool
    events_publish_enabled: bool
    polling_long_poll_enabled: bool
    email_publish_enabled: bool
    email_worker_enabled: bool
    observability_metrics_enabled: bool


# =============================================================================
# security.yaml
# =============================================================================


class JwtSchema(_StrictBase):
    algorithm: str
    access_token_expire_minutes: int
    audience: str


class RolesSchema(_StrictBase):
    claim: str
    admin: str
    user: str


class SecuritySchema(_StrictBase):
    jwt: JwtSchema
    roles: RolesSchema


# =============================================================================
# observability.yaml
# =============================================================================


class MetricsSchema(_StrictBase):
    enabled: bool
    namespace: str


class HealthChecksSchema(_StrictBase):
    ready_timeout_seconds: int
    detailed_auth_required: bool


class ObservabilitySchema(_StrictBase):
    metrics: MetricsSchema
    health_checks: HealthChecksSchema


# =============================================================================
# concurrency.yaml
# =============================================================================


class ThreadPoolSchema(_StrictBase):
    max_workers: int = Field(gt=0)


class ShutdownSchema(_StrictBase):
    drain_seconds: int


class ConcurrencySchema(_StrictBase):
    thread_pool: ThreadPoolSchema
    shutdown: ShutdownSchema


# =============================================================================
# events.yaml
# =============================================================================


class EventKeysSchema(_StrictBase):
    user_prefix: str
    admin: str


class EventStoreSchema(_StrictBase):
    max_page_size: int = Field(gt=0)
    default_ttl_seconds: int = Field(gt=0)


class LongPollSchema(_StrictBase):
    timeout_seconds: float = Field(ge=0)
    interval_seconds: float = Field(gt=0)
    short_poll_hint_ms: int
    long_poll_hint_ms: int


class EventsSchema(_StrictBase):
    keys: EventKeysSchema
    store: EventStoreSchema
    long_poll: LongPollSchema


# =============================================================================
# email.yaml
# =============================================================================


class EmailQueueKeysSchema(_StrictBase):
    queue: str
    processing_prefix: str
    delayed: str
    inflight: str


class EmailRetrySchema(_StrictBase):
    max_retries: int = Field(ge=0)
    backoff_base_seconds: int = Field(gt=0)


class EmailWorkerSchema(_StrictBase):
    poll_interval_seconds: float


class EmailBreakerSchema(_StrictBase):
    fail_max: int = Field(gt=0)
    timeout_duration: int


class CompanySchema(_StrictBase):
    name: str
    tagline: str
    address: str
    phone: str
    email: str
    website: str


class EmailSchema(_StrictBase):
    from_email: str
    admin_email: str
    visibility_timeout_seconds: int
    keys: EmailQueueKeysSchema
    retry: EmailRetrySchema
    worker: EmailWorkerSchema
    circuit_breaker: EmailBreakerSchema
    company: CompanySchema
