from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "TrackerContext"

    # Preamble line placed before every historical context block
    context_preamble: str = "Context for that moment:"

    # Where historical context lands when the host doesn't say otherwise
    injection_position: Literal["assistant_message_end", "user_message_end"] = "assistant_message_end"

    # Number of most recent transcript turns sent with a separate tracker update
    update_depth: int = 4

    # Include every enabled field (not only persistInHistory ones) on refresh
    send_all_enabled_on_refresh: bool = False

    # Substituted for ``{userName}`` when the host has no persona name
    default_user_name: str = "User"

    # Logging: no file handler unless a path is configured
    log_file: Optional[str] = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="TRACKER_", env_file=".env", extra="ignore")


@lru_cache
def get_settings():
    return Settings()
