# config.py
from typing import Annotated, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv()


class StorageSettings(BaseSettings):
    # Table naming
    table_prefix: str = Field(default="zipkin-", description="Prefix applied to every table name")

    # Trace id handling: strict keys on the 128-bit id, lenient on its lower 64 bits
    strict_trace_id: bool = True

    # Feature flag for every search/read-side listing operation
    search_enabled: bool = True

    # Tag keys whose values are indexed for autocomplete
    autocomplete_keys: Annotated[list[str], NoDecode] = Field(default_factory=list)

    data_ttl_days: int = Field(default=7, gt=0)

    # Concurrency and cost bounds
    max_concurrency: int = Field(default=8, gt=0)
    max_scan_pages: int = Field(default=10, gt=0)
    max_query_pages: int = Field(default=100, gt=0)

    # DynamoDB client settings
    aws_region: Optional[str] = None
    dynamodb_endpoint: Optional[str] = Field(
        default=None,
        description="Override endpoint, e.g. http://localhost:8000 for DynamoDB Local"
    )

    #Logging settings
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TRACE_STORAGE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("autocomplete_keys", mode="before")
    @classmethod
    def split_keys(cls, v):
        if isinstance(v, str):
            return [key.strip() for key in v.split(",") if key.strip()]
        return v

    @property
    def data_ttl_seconds(self) -> int:
        return self.data_ttl_days * 24 * 3600
