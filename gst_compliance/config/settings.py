from decimal import Decimal
from typing import Literal

from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read env from container + optionally from files
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.docker"),
        extra="ignore",
        case_sensitive=False,
    )

    # App
    ENVIRONMENT: str = Field(default="dev", validation_alias=AliasChoices("ENVIRONMENT", "environment"))
    APP_NAME: str = Field(default="gst_compliance", validation_alias=AliasChoices("APP_NAME", "app_name"))
    LOG_LEVEL: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    DEBUG: bool = Field(default=False, validation_alias=AliasChoices("DEBUG", "debug"))

    # Infrastructure
    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/gst_compliance",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
    )
    # "postgres" uses number_sequences; "memory" keeps counters in the process record
    # store and restarts from 1 with the process, so it is for tests and sandbox only
    SEQUENCE_BACKEND: Literal["postgres", "memory"] = Field(default="postgres", validation_alias=AliasChoices("SEQUENCE_BACKEND", "sequence_backend"))

    # Seller (store) defaults used when mapping documents to e-way bill payloads
    STORE_GSTIN: str = Field(default="", validation_alias=AliasChoices("STORE_GSTIN", "store_gstin"))
    STORE_STATE_CODE: str = Field(default="", validation_alias=AliasChoices("STORE_STATE_CODE", "store_state_code"))
    STORE_NAME: str = Field(default="", validation_alias=AliasChoices("STORE_NAME", "store_name"))
    STORE_ADDRESS: str = Field(default="", validation_alias=AliasChoices("STORE_ADDRESS", "store_address"))
    STORE_PLACE: str = Field(default="", validation_alias=AliasChoices("STORE_PLACE", "store_place"))
    STORE_PINCODE: str = Field(default="", validation_alias=AliasChoices("STORE_PINCODE", "store_pincode"))

    # NIC e-way bill API
    EWAYBILL_CLIENT_ID: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_CLIENT_ID", "ewaybill_client_id"))
    EWAYBILL_CLIENT_SECRET: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_CLIENT_SECRET", "ewaybill_client_secret"))
    EWAYBILL_USERNAME: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_USERNAME", "ewaybill_username"))
    EWAYBILL_PASSWORD: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_PASSWORD", "ewaybill_password"))
    EWAYBILL_GSTIN: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_GSTIN", "ewaybill_gstin"))
    EWAYBILL_PUBLIC_KEY: str = Field(default="", validation_alias=AliasChoices("EWAYBILL_PUBLIC_KEY", "ewaybill_public_key"))
    EWAYBILL_PRODUCTION: bool = Field(default=False, validation_alias=AliasChoices("EWAYBILL_PRODUCTION", "ewaybill_production"))
    EWAYBILL_TIMEOUT_SECONDS: float = Field(default=30.0, validation_alias=AliasChoices("EWAYBILL_TIMEOUT_SECONDS", "ewaybill_timeout_seconds"))
    EWAYBILL_MAX_RETRIES: int = Field(default=2, validation_alias=AliasChoices("EWAYBILL_MAX_RETRIES", "ewaybill_max_retries"))
    EWAYBILL_BACKOFF_SECONDS: float = Field(default=0.5, validation_alias=AliasChoices("EWAYBILL_BACKOFF_SECONDS", "ewaybill_backoff_seconds"))

    # Statutory thresholds (INR)
    B2CL_THRESHOLD: Decimal = Field(default=Decimal("250000"), validation_alias=AliasChoices("B2CL_THRESHOLD", "b2cl_threshold"))
    EWAYBILL_THRESHOLD: Decimal = Field(default=Decimal("50000"), validation_alias=AliasChoices("EWAYBILL_THRESHOLD", "ewaybill_threshold"))


settings = Settings()
