from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import List


REVOCATION_BACKENDS = {"redis", "database", "memory", "disabled"}
PLACEHOLDER_SECRETS = ("your-secret-key-here", "changeme", "change-me")


class Settings(BaseSettings):
    # Project Info
    PROJECT_NAME: str = "Aloha Admin API"
    API_V1_STR: str = "/api/v1"

    # Database
    DATABASE_URL: str = "sqlite:///./aloha.db"

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    JWT_ISSUER: str = "https://api.aloha.com"
    JWT_AUDIENCE: str = "aloha-api"
    BCRYPT_ROUNDS: int = 12

    # Revocation store
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = True
    REVOCATION_BACKEND: str = "redis"
    REVOCATION_FAIL_CLOSED: bool = False
    REVOCATION_KEY_PREFIX: str = "revoked:"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
    ]

    # Environment
    ENVIRONMENT: str = "development"

    DEBUG: bool = False
    RATE_LIMIT_ENABLED: bool = True

    # Monitoring (Optional - Add to .env for production)
    SENTRY_DSN: str = ""

    # Celery (periodic blacklist cleanup)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Admin bootstrap
    DEFAULT_ADMIN_EMAIL: str = "admin@aloha.com"
    DEFAULT_ADMIN_PASSWORD: str = ""

    @field_validator("ENVIRONMENT", "REVOCATION_BACKEND")
    @classmethod
    def normalize_lowercase(cls, value: str) -> str:
        return value.lower().strip()

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        normalized = (value or "").strip()
        if len(normalized) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters")
        if any(placeholder in normalized.lower() for placeholder in PLACEHOLDER_SECRETS):
            raise ValueError("SECRET_KEY must not use a placeholder value")
        return normalized

    @field_validator("ALGORITHM")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        # Tokens are signed and verified with one shared secret.
        if value not in {"HS256", "HS384", "HS512"}:
            raise ValueError("ALGORITHM must be one of HS256, HS384, HS512")
        return value

    @field_validator("ACCESS_TOKEN_EXPIRE_MINUTES", "REFRESH_TOKEN_EXPIRE_DAYS")
    @classmethod
    def validate_positive_lifetime(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token lifetimes must be positive")
        return value

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @model_validator(mode="after")
    def validate_revocation_settings(self):
        if self.REVOCATION_BACKEND not in REVOCATION_BACKENDS:
            raise ValueError(
                f"REVOCATION_BACKEND must be one of {', '.join(sorted(REVOCATION_BACKENDS))}"
            )
        if self.ENVIRONMENT == "production" and self.REVOCATION_BACKEND == "memory":
            raise ValueError("REVOCATION_BACKEND=memory is not supported in production")
        return self

    @property
    def access_token_lifetime_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_lifetime_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 86400

    @property
    def effective_revocation_backend(self) -> str:
        if self.REVOCATION_BACKEND == "redis" and not self.REDIS_ENABLED:
            return "disabled"
        return self.REVOCATION_BACKEND

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()
