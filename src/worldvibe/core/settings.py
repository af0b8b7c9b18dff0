"""Application settings and configuration.

This module defines all configuration options for the WorldVibe admission
service. Settings are loaded from environment variables with sensible defaults.
"""

import secrets

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BANNED_WORDS: list[str] = [
    # Common profanity
    "fuck", "shit", "ass", "bitch", "cunt", "dick", "pussy", "cock", "whore", "slut",
    # Slurs
    "nigger", "faggot", "retard", "spic", "chink", "kike", "wetback", "towelhead",
]

DEFAULT_PII_PATTERNS: list[str] = [
    # Phone numbers
    r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b",
    # Email addresses
    r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    # Government ID (SSN-like)
    r"\b\d{3}-?\d{2}-?\d{4}\b",
    # Payment cards
    r"\b(?:\d{4}[-\s]?){3}\d{4}\b",
    # URLs
    r"https?://[^\s]+",
]

# (min_lat, max_lat, min_lon, max_lon); min_lon > max_lon wraps the antimeridian.
DEFAULT_BANNED_COORDINATE_BOXES: list[tuple[float, float, float, float]] = [
    (-40.0, 40.0, 160.0, -140.0),  # central Pacific
]


def _generate_salt() -> SecretStr:
    return SecretStr(secrets.token_hex(16))


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets that are not supplied (token and identity salts) are generated once
    per ``Settings`` instance, so the module-level ``settings`` object holds a
    stable process-wide value.
    """

    # Application metadata
    app_name: str = Field(default="WorldVibe Admission", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration (check-in storage)
    database_url: str = Field(default="sqlite:///./worldvibe.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Ephemeral store for rate-limit windows and admission tokens
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    ephemeral_store_backend: str = Field(default="redis", alias="EPHEMERAL_STORE_BACKEND")
    store_timeout_ms: int = Field(default=250, ge=1, alias="STORE_TIMEOUT_MS")
    store_breaker_failure_threshold: int = Field(
        default=3, ge=1, alias="STORE_BREAKER_FAILURE_THRESHOLD"
    )
    store_breaker_recovery_seconds: float = Field(
        default=30.0, gt=0, alias="STORE_BREAKER_RECOVERY_SECONDS"
    )
    store_breaker_success_threshold: int = Field(
        default=2, ge=1, alias="STORE_BREAKER_SUCCESS_THRESHOLD"
    )

    # Admission limiter
    rate_limit_window_seconds: int = Field(default=86_400, ge=1, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_key_prefix: str = Field(default="anonymous-checkin:", alias="RATE_LIMIT_KEY_PREFIX")

    # Ephemeral admission tokens
    token_expiry_hours: int = Field(default=24, ge=1, alias="TOKEN_EXPIRY_HOURS")
    token_random_bytes: int = Field(default=16, ge=8, alias="TOKEN_RANDOM_BYTES")
    token_key_prefix: str = Field(default="token:", alias="TOKEN_KEY_PREFIX")
    token_salt: SecretStr = Field(default_factory=_generate_salt, alias="TOKEN_SALT")
    single_use_tokens: bool = Field(default=True, alias="SINGLE_USE_TOKENS")
    require_admission_token: bool = Field(default=False, alias="REQUIRE_ADMISSION_TOKEN")

    # Identity resolution
    identity_salt: SecretStr = Field(default_factory=_generate_salt, alias="IDENTITY_SALT")
    identity_use_fingerprint: bool = Field(default=False, alias="IDENTITY_USE_FINGERPRINT")
    trusted_proxy_header: str | None = Field(default=None, alias="TRUSTED_PROXY_HEADER")

    # Content rules
    max_request_bytes: int = Field(default=10 * 1024, ge=1, alias="MAX_REQUEST_BYTES")
    note_max_length: int = Field(default=200, ge=1, alias="NOTE_MAX_LENGTH")
    spam_min_length: int = Field(default=10, ge=0, alias="SPAM_MIN_LENGTH")
    banned_words: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BANNED_WORDS), alias="BANNED_WORDS"
    )
    pii_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PII_PATTERNS), alias="PII_PATTERNS"
    )
    region_pattern: str = Field(
        default=r"^([A-Z]{2}(-[A-Z0-9]{1,3})?|GLOBAL)$", alias="REGION_PATTERN"
    )
    banned_coordinate_boxes: list[tuple[float, float, float, float]] = Field(
        default_factory=lambda: list(DEFAULT_BANNED_COORDINATE_BOXES),
        alias="BANNED_COORDINATE_BOXES",
    )
    timestamp_max_future_seconds: int = Field(default=300, ge=0, alias="TIMESTAMP_MAX_FUTURE_SECONDS")
    timestamp_max_age_seconds: int = Field(default=7 * 86_400, ge=0, alias="TIMESTAMP_MAX_AGE_SECONDS")
    min_latitude: float = Field(default=-60.0, alias="MIN_LATITUDE")
    max_latitude: float = Field(default=80.0, alias="MAX_LATITUDE")
    coordinate_precision: int = Field(default=2, ge=0, le=6, alias="COORDINATE_PRECISION")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "X-Admission-Token", "X-Fingerprint"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def token_ttl_seconds(self) -> int:
        """Default token lifetime in seconds."""
        return int(self.token_expiry_hours) * 3600

    @property
    def store_timeout_seconds(self) -> float:
        """Per-call ephemeral store timeout in seconds."""
        return self.store_timeout_ms / 1000.0


settings = Settings()  # type: ignore[call-arg]
