from datetime import timedelta
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings (persistence store)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT: float = 10.0

    # Backend the queued actions are delivered to
    BACKEND_BASE_URL: str = "http://localhost:8080"
    BACKEND_REQUEST_TIMEOUT: float = 30.0
    BACKEND_AUTH_TOKEN: str | None = None

    # Dispatcher circuit breaker
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_OPEN_TIMEOUT_SECONDS: float = 60.0

    # =================================================================
    # OFFLINE QUEUE SETTINGS
    # =================================================================
    QUEUE_KEY_PREFIX: str = "priority_offline_queue"
    QUEUE_EXPIRY_DAYS: int = 7
    QUEUE_DEFAULT_MAX_RETRIES: int = 3

    # =================================================================
    # NETWORK MONITOR SETTINGS
    # =================================================================
    NETWORK_PROBE_HOST: str = "google.com"
    NETWORK_PROBE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0, le=5.0)
    NETWORK_RECHECK_INTERVAL_SECONDS: float = 30.0
    NETWORK_SETTLE_DELAY_SECONDS: float = 2.0
    NETWORK_INITIAL_MEDIUM: str = "ethernet"  # until the host reports a link change

    # =================================================================
    # SYNC COORDINATOR SETTINGS
    # =================================================================
    SYNC_AUTO_ENABLED: bool = True
    SYNC_AUTO_INTERVAL_SECONDS: float = 300.0  # 5 minutes
    SYNC_RETRY_BASE_DELAY_SECONDS: float = 30.0
    SYNC_RETRY_MAX_DELAY_SECONDS: float = 300.0  # 5 minutes
    SYNC_MAX_CONSECUTIVE_FAILURES: int = 5
    SYNC_ONLY_ON_WIFI: bool = False
    SYNC_ITEM_DELAY_SECONDS: float = 0.1
    SYNC_METADATA_KEY: str = "sync_metadata"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def backend_base_url(self) -> str:
        """Backend base URL without a trailing slash."""
        return self.BACKEND_BASE_URL.rstrip("/")

    def queue_config(self) -> dict:
        """Keyword arguments for OfflineQueue."""
        return {
            "key_prefix": self.QUEUE_KEY_PREFIX,
            "expiry": timedelta(days=self.QUEUE_EXPIRY_DAYS),
            "default_max_retries": self.QUEUE_DEFAULT_MAX_RETRIES,
        }

    def monitor_config(self) -> dict:
        """Keyword arguments for NetworkMonitor."""
        return {
            "probe_host": self.NETWORK_PROBE_HOST,
            "probe_timeout": self.NETWORK_PROBE_TIMEOUT_SECONDS,
            "recheck_interval": self.NETWORK_RECHECK_INTERVAL_SECONDS,
            "settle_delay": self.NETWORK_SETTLE_DELAY_SECONDS,
        }

    def dispatcher_config(self) -> dict:
        """Keyword arguments for RequestDispatcher."""
        return {
            "base_url": self.backend_base_url(),
            "timeout": self.BACKEND_REQUEST_TIMEOUT,
        }

    def sync_policy_config(self) -> dict:
        """
        Keyword arguments for SyncPolicy.
        Development runs retry sooner so failures surface quickly.
        """
        config = {
            "auto_sync_enabled": self.SYNC_AUTO_ENABLED,
            "auto_sync_interval": self.SYNC_AUTO_INTERVAL_SECONDS,
            "retry_base_delay": self.SYNC_RETRY_BASE_DELAY_SECONDS,
            "max_retry_delay": self.SYNC_RETRY_MAX_DELAY_SECONDS,
            "max_consecutive_failures": self.SYNC_MAX_CONSECUTIVE_FAILURES,
            "sync_only_on_wifi": self.SYNC_ONLY_ON_WIFI,
            "item_delay": self.SYNC_ITEM_DELAY_SECONDS,
            "settle_delay": self.NETWORK_SETTLE_DELAY_SECONDS,
        }

        if self.environment == "development":
            config["retry_base_delay"] = min(self.SYNC_RETRY_BASE_DELAY_SECONDS, 10.0)

        return config


settings = Settings()
