import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration class for environment variables and service settings.
    """

    # Service settings
    service_name: str = os.getenv("SERVICE_NAME", "annotation_hub")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "True").lower() == "true"

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "DEBUG")
    json_logs: bool = os.getenv("JSON_LOGS", "True").lower() == "true"
    log_retention: str = os.getenv("LOG_RETENTION", "7 days")
    log_file: str | None = os.getenv("LOG_FILE", None)

    # MongoDB settings
    mongodb: str = os.getenv("MONGODB", "mongodb://localhost:27017")
    mongodb_database: str = os.getenv("MONGODB_DATABASE", "annotation_hub")

    # MongoDB connection pool settings
    mongo_max_pool_size: int = int(os.getenv("MONGO_MAX_POOL_SIZE", "100"))
    mongo_min_pool_size: int = int(os.getenv("MONGO_MIN_POOL_SIZE", "10"))
    mongo_max_idle_time_ms: int = int(os.getenv("MONGO_MAX_IDLE_TIME_MS", "30000"))
    mongo_connect_timeout_ms: int = int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "5000"))
    mongo_server_selection_timeout_ms: int = int(
        os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")
    )
    mongo_socket_timeout_ms: int = int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "30000"))

    # Authentication settings
    secret_key: str = os.getenv("SECRET_KEY", "your-secret-key-here")
    algorithm: str = os.getenv("ALGORITHM", "HS256")

    # Email settings (Brevo transactional API)
    email_enabled: bool = os.getenv("EMAIL_ENABLED", "True").lower() == "true"
    brevo_api_url: str = os.getenv("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")
    brevo_api_key: str | None = os.getenv("BREVO_API_KEY", None)
    email_sender_address: str = os.getenv("EMAIL_SENDER_ADDRESS", "no-reply@mydeeptech.ng")
    email_sender_name: str = os.getenv("EMAIL_SENDER_NAME", "MyDeeptech")
    email_timeout_seconds: int = int(os.getenv("EMAIL_TIMEOUT_SECONDS", "15"))
    email_max_concurrency: int = int(os.getenv("EMAIL_MAX_CONCURRENCY", "10"))
    frontend_base_url: str = os.getenv("FRONTEND_BASE_URL", "https://mydeeptech.ng")

    # Project deletion settings
    projects_officer_email: str = os.getenv("PROJECTS_OFFICER_EMAIL", "projects@mydeeptech.ng")
    deletion_otp_ttl_minutes: int = int(os.getenv("DELETION_OTP_TTL_MINUTES", "15"))
    deletion_otp_max_attempts: int = int(os.getenv("DELETION_OTP_MAX_ATTEMPTS", "5"))

    # Invoice settings
    invoice_deletion_window_hours: int = int(os.getenv("INVOICE_DELETION_WINDOW_HOURS", "24"))

    # Exchange rate settings
    exchange_rate_api_url: str = os.getenv(
        "EXCHANGE_RATE_API_URL", "https://api.exchangerate-api.com/v4/latest/USD"
    )
    exchange_rate_cache_ttl: int = int(os.getenv("EXCHANGE_RATE_CACHE_TTL", "3600"))
    exchange_rate_timeout_seconds: int = int(os.getenv("EXCHANGE_RATE_TIMEOUT_SECONDS", "10"))

    # Scheduler settings
    scheduler_enabled: bool = os.getenv("SCHEDULER_ENABLED", "True").lower() == "true"
    scheduler_timezone: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")
    overdue_sweep_interval_minutes: int = int(os.getenv("OVERDUE_SWEEP_INTERVAL_MINUTES", "60"))
    otp_purge_interval_minutes: int = int(os.getenv("OTP_PURGE_INTERVAL_MINUTES", "30"))

    # Environment-specific logging configuration
    @property
    def logging_config(self) -> dict:
        """
        Returns logging configuration based on environment.
        """
        base_config = {
            "app_name": self.service_name,
            "log_level": self.log_level,
            "json_logs": self.json_logs,
            "log_file": self.log_file,
            "log_retention": self.log_retention,
        }

        if self.environment == "development":
            base_config.update({"json_logs": False, "log_level": "DEBUG" if self.debug else "INFO"})

        return base_config

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
