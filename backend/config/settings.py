# backend/config/settings.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Settings
    APP_NAME: str = "Sales Document Workflow Engine"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Settings
    DATABASE_URL: str = "sqlite:///./salesflow.db"
    DATABASE_ECHO: bool = False
    PERSISTENCE: str = "memory"  # memory | database

    # Clock Settings
    TIMEZONE: str = "UTC"

    # Document Numbering
    QUOTATION_PREFIX: str = "QT"
    SALES_ORDER_PREFIX: str = "SO"
    PURCHASE_ORDER_PREFIX: str = "PO"
    INVOICE_PREFIX: str = "INV"
    DELIVERY_PREFIX: str = "DEL"
    SEQUENCE_MODULO: int = 10000
    USE_TIMESTAMP_SEQUENCE: bool = False  # legacy numbering, collides within one second

    # Document Defaults
    DEFAULT_EXPIRY_MONTHS: int = 1
    DEFAULT_PAYMENT_TERM_DAYS: int = 30
    DEFAULT_EXPECTED_DAYS: int = 30

    # Workflow Rules
    QUOTATION_CONVERTIBLE_STATUSES: List[str] = ["draft", "sent"]
    ACCEPT_QUOTATION_ON_CONVERSION: bool = True
    STRICT_DELIVERY_RECEIPTS: bool = True
    ALLOW_OVERPAYMENT: bool = False

    # Statistics Settings
    TOP_CONTACTS_LIMIT: int = 5
    STATS_BATCH_SIZE: int = Field(1000, ge=1)

    # Pagination Settings
    DEFAULT_PAGE_SIZE: int = Field(20, ge=1)
    MAX_PAGE_SIZE: int = Field(100, ge=1)

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    LOG_FILE: Optional[str] = None
    LOG_JSON: bool = False

@lru_cache()
def get_settings() -> Settings:
    return Settings()

# Environment-specific settings
class DevelopmentSettings(Settings):
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

class ProductionSettings(Settings):
    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"
    LOG_JSON: bool = True

class TestingSettings(Settings):
    DATABASE_URL: str = "sqlite:///:memory:"
    LOG_LEVEL: str = "WARNING"

def get_settings_by_env(env: str = "development") -> Settings:
    if env == "development":
        return DevelopmentSettings()
    elif env == "production":
        return ProductionSettings()
    elif env == "testing":
        return TestingSettings()
    else:
        return Settings()
