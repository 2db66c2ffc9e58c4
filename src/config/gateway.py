"""Immutable gateway configuration assembled once at startup."""

from dataclasses import dataclass, field

from src.config.settings import Settings
from src.keys.store import VirtualKeyStore, load_virtual_keys

UPSTREAM_HOST = "api.openai.com"
UPSTREAM_KEY_ENV = "OPENAI_API_KEY"


class ConfigurationError(Exception):
    """Raised when the gateway cannot start with the given configuration."""


@dataclass(frozen=True)
class GatewayConfig:
    virtual_keys: VirtualKeyStore
    upstream_api_key: str = field(repr=False)
    access_count_limit: int | None = None  # None = unlimited
    upstream_host: str = UPSTREAM_HOST


def load_gateway_config(settings: Settings) -> GatewayConfig:
    """Build the gateway configuration from settings.

    Reads the virtual key file and validates the upstream key and the
    access count limit.

    Raises:
        ConfigurationError: the upstream key is missing, the key file
            cannot be read, or the limit is below -1.
    """
    if not settings.openai_api_key:
        raise ConfigurationError(
            f"{UPSTREAM_KEY_ENV} environment variable is not defined. "
            "Please set a real OpenAI API key for this gateway"
        )

    if settings.access_count_limit < -1:
        raise ConfigurationError(
            f"Invalid access count limit {settings.access_count_limit}: "
            "use a non-negative number, or -1 for no limit"
        )

    try:
        keys = load_virtual_keys(settings.virtual_keys_file)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(
            f"Cannot read virtual keys file {settings.virtual_keys_file}: {e}. "
            "Provide virtual API keys in this file, one key per line"
        ) from e

    return GatewayConfig(
        virtual_keys=keys,
        upstream_api_key=settings.openai_api_key,
        access_count_limit=settings.access_limit,
    )
