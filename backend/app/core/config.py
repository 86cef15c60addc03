
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

API_VERSION_PREFIXES = {
    "root": "",
    "v1": "/api/v1",
    "v2": "/api/v2",
}


class Settings(BaseSettings):
    app_name: str = "outbound-call-monitor"
    environment: str = "dev"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))


    happyrobot_base_url: str = Field(
        default="https://platform.happyrobot.ai",
        validation_alias=AliasChoices("HAPPYROBOT_BASE_URL", "happyrobot_base_url"),
    )
    happyrobot_api_version: str = Field(
        default="root", validation_alias=AliasChoices("HAPPYROBOT_API_VERSION", "happyrobot_api_version")
    )
    happyrobot_api_key: str = Field(
        default="", validation_alias=AliasChoices("HAPPYROBOT_API_KEY", "happyrobot_api_key")
    )
    happyrobot_org_id: str = Field(
        default="", validation_alias=AliasChoices("HAPPYROBOT_ORG_ID", "happyrobot_org_id")
    )
    happyrobot_use_case_id: str = Field(
        default="", validation_alias=AliasChoices("HAPPYROBOT_USE_CASE_ID", "happyrobot_use_case_id")
    )
    happyrobot_timeout_secs: float = Field(
        default=20.0, validation_alias=AliasChoices("HAPPYROBOT_TIMEOUT_SECS", "happyrobot_timeout_secs")
    )
    happyrobot_page_size: int = Field(
        default=50, validation_alias=AliasChoices("HAPPYROBOT_PAGE_SIZE", "happyrobot_page_size")
    )
    happyrobot_detail_fetch_limit: int = Field(
        default=20,
        validation_alias=AliasChoices("HAPPYROBOT_DETAIL_FETCH_LIMIT", "happyrobot_detail_fetch_limit"),
    )


    pending_contact_ttl_secs: float = Field(
        default=120.0, validation_alias=AliasChoices("PENDING_CONTACT_TTL_SECS", "pending_contact_ttl_secs")
    )
    pending_contact_capacity: int = Field(
        default=20, validation_alias=AliasChoices("PENDING_CONTACT_CAPACITY", "pending_contact_capacity")
    )
    # 0 keeps every record for the lifetime of the process
    call_store_max_records: int = Field(
        default=0, validation_alias=AliasChoices("CALL_STORE_MAX_RECORDS", "call_store_max_records")
    )


    cors_origins: str = Field(default="*", validation_alias=AliasChoices("CORS_ORIGINS", "cors_origins"))

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @property
    def happyrobot_api_root(self) -> str:
        """Base URL plus the path prefix of the configured API version."""
        version = (self.happyrobot_api_version or "root").lower()
        if version not in API_VERSION_PREFIXES:
            raise ValueError(f"Unknown HappyRobot API version: {version}")
        return self.happyrobot_base_url.rstrip("/") + API_VERSION_PREFIXES[version]

    @property
    def upstream_enabled(self) -> bool:
        return bool(self.happyrobot_api_key and self.happyrobot_use_case_id)

settings = Settings()
