from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SENTIMENT_MODEL = "distilbert/distilbert-base-uncased-finetuned-sst-2-english"
DEFAULT_HELPER_RESPONSE = "I'm here to assist you with any questions or concerns you might have."


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    database_url: str = ""

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    enable_sentiment: bool = Field(
        default=True,
        validation_alias=AliasChoices("ENABLE_SENTIMENT", "ENABLE_SENTIMENT_ANALYSIS"),
    )
    sentiment_model: str = DEFAULT_SENTIMENT_MODEL

    # "supabase" | "mock"
    answer_provider: str = "supabase"
    answer_function_name: str = "generate-ai-response"
    answer_timeout_seconds: float = 30.0

    # "sql" | "supabase"
    interactions_backend: str = "sql"

    helper_canned_response: str = DEFAULT_HELPER_RESPONSE
    search_classify_queries: bool = False
    max_widgets: int = 1000

    rate_limit_ask_enabled: bool = True
    rate_limit_ask_per_min: int = 30
    trusted_proxy_cidrs: Annotated[list[str], NoDecode] = Field(default_factory=list)

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=list)
    cors_allow_methods: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "trusted_proxy_cidrs",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("answer_provider", "interactions_backend", mode="before")
    @classmethod
    def _lower(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and (self.supabase_key or self.supabase_service_role_key))


@lru_cache
def get_settings() -> Settings:
    return Settings()
