from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "PolicySign"
    app_version: str = "1.0.0"
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://policysign:policysign@db:5432/policysign"

    # Staff auth
    secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 15

    # Redis / Celery
    redis_url: str = "redis://redis:6379/0"

    # Encryption of captured signature payloads
    field_encryption_key: str = "CHANGE_ME"

    # Signer access tokens
    access_token_bytes: int = 32
    signer_token_ttl_days: int = 30

    # Reminders
    reminder_interval_hours: int = 24
    expiring_soon_hours: int = 24
    auto_reminders_enabled: bool = False
    reminder_task_interval_seconds: float = 3600.0

    # Expiration sweep
    sweep_interval_seconds: float = 300.0

    # Public signing link, used in notification messages
    signing_base_url: str = "http://localhost/sign"

    # CORS
    backend_cors_origins: list[str] = ["http://localhost", "http://localhost:5173"]

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
