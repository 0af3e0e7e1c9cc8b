# orderflow/shared/config.py
from enum import Enum
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnv(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class StorageBackend(str, Enum):
    FAKE = "fake"
    S3 = "s3"


class Settings(BaseSettings):
    """
    Central Configuration Registry.
    Strictly typed and validated via Pydantic.
    """

    # --- Application Meta ---
    APP_NAME: str = "orderflow"
    APP_ENV: AppEnv = AppEnv.DEVELOPMENT
    DEBUG: bool = False
    CORS_ORIGINS: str = "*"

    # --- Security ---
    # Comma separated list allowed for key rotation. Empty disables operator access.
    ADMIN_API_KEY: Optional[str] = None

    # --- Logging & Observability ---
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    OTEL_SERVICE_NAME: str = "orderflow-api"
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None

    # --- Persistence ---
    DATABASE_URL: str = "sqlite:///./orderflow.db"
    DATABASE_ECHO: bool = False

    # --- Object Storage ---
    STORAGE_BACKEND: StorageBackend = StorageBackend.FAKE
    STORAGE_FOLDER: str = "cb-kare-food-portal"

    # S3 Config
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_BUCKET_NAME: str = "orderflow-uploads"
    AWS_ENDPOINT_URL: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None

    # --- Uploads ---
    UPLOAD_MAX_PARALLEL: int = 8
    UPLOAD_TIMEOUT_SEC: int = 60
    UPLOAD_MAX_BYTES: int = 10 * 1024 * 1024
    UPLOAD_STALE_AFTER_SEC: int = 900

    # --- Mail ---
    MAIL_ENABLED: bool = False
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_SSL: bool = False
    SMTP_STARTTLS: bool = True
    MAIL_FROM: str = "CB Food Portal <no-reply@localhost>"
    MAIL_TIMEOUT_SEC: int = 20

    # --- Decision Email Dispatcher ---
    DISPATCH_INTERVAL_SEC: float = 30.0
    DISPATCH_BATCH_SIZE: int = 10
    DISPATCH_RECLAIM_AFTER_SEC: int = 600

    # --- Ordering Rules ---
    ORDER_MAX_TOTAL_ITEMS: int = 10
    ORDER_EMAIL_DOMAIN: str = "@klu.ac.in"

    # --- Read Side ---
    ORDERS_PAGE_LIMIT: int = 200
    CATALOG_CACHE_TTL_SEC: float = 5.0
    BESTSELLER_TOP_N: int = 6

    # --- Realtime (SSE) ---
    SSE_HEARTBEAT_SEC: float = 25.0
    SSE_RETRY_MS: int = 5000
    SSE_QUEUE_SIZE: int = 100

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
