"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Listener
    host: str = "0.0.0.0"
    port: int = 48080

    # Virtual keys handed out to clients, one per line
    virtual_keys_file: str = "virtual-api-keys.txt"

    # Real upstream key, substituted for recognized virtual keys
    openai_api_key: str = ""

    # Total access count limit (-1 = no limit)
    access_count_limit: int = -1

    # Upstream transport
    upstream_timeout: float = 60.0
    upstream_connect_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def access_limit(self) -> int | None:
        """The access count limit, or None when unlimited."""
        return None if self.access_count_limit == -1 else self.access_count_limit


@lru_cache
def get_settings() -> Settings:
    return Settings()
