from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SchoolFee API"
    app_version: str = "0.1.0"
    frontend_url: str = "http://localhost:5173"
    database_url: str = "sqlite:///./local.db"
    redis_url: str = "redis://localhost:6379/0"

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    log_level: str = "info"
    log_json: bool = False

    billing_lock_ttl_seconds: int = 15
    billing_lock_wait_seconds: float = 3.0

    mpesa_consumer_key: str | None = None
    mpesa_consumer_secret: str | None = None
    mpesa_passkey: str | None = None
    mpesa_shortcode: str | None = None
    mpesa_env: str = "sandbox"
    mpesa_callback_base_url: str = "http://localhost:8000"
    mpesa_timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
