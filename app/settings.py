from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DWD_COMMUNEUNION_DIR = (
    "https://opendata.dwd.de/weather/alerts/cap/COMMUNEUNION_DWD_STAT/"
)
DWD_LATEST_URL = (
    DWD_COMMUNEUNION_DIR
    + "Z_CAP_C_EDZW_LATEST_PVW_STATUS_PREMIUMDWD_COMMUNEUNION_DE.zip"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(
        default=Path("data/cap-warnings.db"), validation_alias="DB_PATH"
    )
    user_agent: str = Field(default="cap-warnings/0.1", validation_alias="USER_AGENT")
    instances_dir: Path = Field(
        default=Path("instances"), validation_alias="INSTANCES_DIR"
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    region_id: str = Field(default="", validation_alias="WARN_REGION_ID")
    derive_parent: bool = Field(default=False, validation_alias="WARN_DERIVE_PARENT")
    allow_name_fallback: bool = Field(
        default=False, validation_alias="WARN_ALLOW_NAME_FALLBACK"
    )
    extra_area_names: str = Field(default="", validation_alias="WARN_EXTRA_AREA_NAMES")
    only_active_future: bool = Field(
        default=True, validation_alias="WARN_ONLY_ACTIVE_FUTURE"
    )
    allow_stale: bool = Field(default=True, validation_alias="WARN_ALLOW_STALE")
    immediate_fetch: bool = Field(default=True, validation_alias="WARN_IMMEDIATE_FETCH")
    auto_refresh_seconds: int = Field(
        default=300, validation_alias="WARN_AUTO_REFRESH_SECONDS"
    )
    timeout_ms: int = Field(default=15000, validation_alias="WARN_TIMEOUT_MS")
    feed_url: str = Field(default=DWD_LATEST_URL, validation_alias="WARN_FEED_URL")
    index_url: str = Field(default=DWD_COMMUNEUNION_DIR, validation_alias="WARN_INDEX_URL")
    language: str = Field(default="de", validation_alias="WARN_LANGUAGE")
