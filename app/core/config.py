"""
Application configuration.
All settings are loaded from environment variables.
Required variables (no defaults): DATABASE_URL, REDIS_URL, SESSION_SECRET,
CASHFREE_APP_ID, CASHFREE_SECRET_KEY, FAL_API_KEY, KIE_API_KEY.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma separated (e.g. http://localhost:3000,https://app.example.com). Empty = default list in code.
    cors_origins: str = ""
    # Public URL of the frontend: payment return page and callback redirects point here.
    frontend_base_url: str = "http://localhost:3000"
    # Public URL of this API: the gateway posts notifications to {api_base_url}/payment/callback.
    api_base_url: str = "http://localhost:8000"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    # Create missing tables on startup (local/dev). Production runs migrations.
    database_auto_create: bool = True

    # ===========================================
    # REDIS
    # ===========================================
    redis_url: str  # Required, no default

    # ===========================================
    # USER SESSIONS (issued by the auth service, read here)
    # ===========================================
    session_secret: str  # Required, no default
    session_ttl: int = 30 * 24 * 3600  # 30 days
    session_cookie_name: str = "session"
    session_cookie_secure: bool = False  # Set True in production (HTTPS)
    session_cookie_samesite: str = "lax"

    # ===========================================
    # PAYMENT GATEWAY (Cashfree payment links)
    # ===========================================
    cashfree_app_id: str  # Required, no default
    cashfree_secret_key: str  # Required, no default
    cashfree_environment: str = "sandbox"  # sandbox | production
    cashfree_api_version: str = "2025-01-01"
    cashfree_timeout: float = 15.0
    # Gateway requires a phone number for link customers; used when the user has none.
    cashfree_default_customer_phone: str = "9999999999"

    # ===========================================
    # SETTLEMENT
    # ===========================================
    # Webhook statuses without a valid gateway signature are re-confirmed with the gateway
    # unless this is enabled.
    callback_trust_unsigned_status: bool = False
    # False: an indeterminate gateway verdict leaves the order pending (client may retry verify).
    # True: an indeterminate verdict finalizes the order as failed.
    settlement_finalize_pending_as_failed: bool = False
    # Orders per user per window; 0 disables the throttle.
    purchase_rate_limit: int = 3
    purchase_rate_window_seconds: int = 60

    # ===========================================
    # IMAGE GENERATION (FAL nano-banana)
    # ===========================================
    fal_api_key: str  # Required, no default
    fal_api_url: str = "https://fal.run"
    fal_image_model: str = "fal-ai/nano-banana"
    fal_edit_model: str = "fal-ai/nano-banana/edit"
    fal_timeout: float = 120.0

    # ===========================================
    # VIDEO GENERATION (Kie Veo 3)
    # ===========================================
    kie_api_key: str  # Required, no default
    kie_api_url: str = "https://api.kie.ai/api/v1"
    kie_default_model: str = "veo3_fast"
    kie_timeout: float = 30.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30
    circuit_breaker_storage: str = "redis"  # redis | memory

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        """Ensure session secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("session_secret must be at least 16 characters")
        if v in ("changeme", "secret", "password", "admin"):
            raise ValueError("session_secret is too weak, please change it")
        return v

    @field_validator("cashfree_environment")
    @classmethod
    def validate_cashfree_environment(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("sandbox", "production"):
            raise ValueError("cashfree_environment must be 'sandbox' or 'production'")
        return v

    @field_validator("circuit_breaker_storage")
    @classmethod
    def validate_circuit_breaker_storage(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("redis", "memory"):
            raise ValueError("circuit_breaker_storage must be 'redis' or 'memory'")
        return v

    @property
    def cashfree_base_url(self) -> str:
        if self.cashfree_environment == "production":
            return "https://api.cashfree.com"
        return "https://sandbox.cashfree.com"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
