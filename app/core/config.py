import os
import logging
from pydantic import BaseModel, Field, ValidationError, model_validator
from typing import List, Optional
from dotenv import load_dotenv

from app.schemas.escalation import EscalationConfig

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class EscalationDefaults(BaseModel):
    """Fallback escalation settings for organizations without a settings row."""
    enabled: bool = Field(default=_env_bool("ESCALATION_ENABLED", "true"))
    escalation_timeout_hours: int = Field(default=int(os.getenv("ESCALATION_TIMEOUT_HOURS", "48")))
    max_escalation_levels: int = Field(default=int(os.getenv("MAX_ESCALATION_LEVELS", "3")))
    auto_approve_after_max: bool = Field(default=_env_bool("AUTO_APPROVE_AFTER_MAX", "true"))
    reminder_hours: int = Field(default=int(os.getenv("REMINDER_HOURS", "24")))
    send_reminders: bool = True
    skip_absent_approvers: bool = True
    skip_if_delegated: bool = True

    @model_validator(mode="after")
    def same_rules_as_settings_endpoint(self):
        # Defaults must pass the checks applied to per-organization rows
        try:
            EscalationConfig(**self.model_dump())
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise ValueError(f"Invalid escalation defaults: {messages}")
        return self


class Config(BaseModel):
    app_name: str = "Leave Workflow API"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Auth (tokens are issued by the identity provider, we only verify them)
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Escalation
    escalation: EscalationDefaults = EscalationDefaults()
    cron_secret: Optional[str] = Field(default=os.getenv("CRON_SECRET"))
    sweep_lock_ttl_minutes: int = int(os.getenv("SWEEP_LOCK_TTL_MINUTES", "30"))

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001,"
                "http://127.0.0.1:3000,http://127.0.0.1:3001",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    _critical_missing = []
    if "dev-only" in settings.secret_key or "change-it" in settings.secret_key:
        _critical_missing.append("SECRET_KEY")
    if not settings.cron_secret:
        _critical_missing.append("CRON_SECRET")
    if _critical_missing:
        raise RuntimeError(
            f"FATAL: The following secrets must be set for non-development environments: "
            f"{', '.join(_critical_missing)}. Set them as environment variables."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("⚠ Using insecure default SECRET_KEY; only acceptable in development.")
