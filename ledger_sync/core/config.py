from pydantic_settings import BaseSettings
from pydantic import Field
import os


class Config(BaseSettings):
    # Local durable store (SQLite via aiosqlite)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./ledger_offline.db", alias="LOCAL_DB_URL"
    )

    # Remote store (Supabase REST)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_key: str = Field(default="", alias="SUPABASE_ANON_KEY")
    supabase_access_token: str = Field(default="", alias="SUPABASE_ACCESS_TOKEN")
    remote_timeout_seconds: float = Field(default=10.0, alias="REMOTE_TIMEOUT_SECONDS")

    # Sync engine
    sync_batch_size: int = Field(default=10, alias="SYNC_BATCH_SIZE")
    sync_max_retries: int = Field(default=5, alias="SYNC_MAX_RETRIES")
    sync_debounce_seconds: float = Field(default=2.0, alias="SYNC_DEBOUNCE_SECONDS")

    # Notifications, cache and auto-save
    notify_throttle_seconds: float = Field(default=5.0, alias="NOTIFY_THROTTLE_SECONDS")
    cache_ttl_seconds: float = Field(default=300.0, alias="CACHE_TTL_SECONDS")
    autosave_debounce_seconds: float = Field(
        default=1.0, alias="AUTOSAVE_DEBOUNCE_SECONDS"
    )

    # Connectivity (0 disables the background probe)
    connectivity_probe_seconds: float = Field(
        default=0.0, alias="CONNECTIVITY_PROBE_SECONDS"
    )
    start_online: bool = Field(default=True, alias="START_ONLINE")

    is_production: bool = (
        os.getenv("ENVIRONMENT", "development").lower() == "production"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Instantiate the settings
config = Config()
