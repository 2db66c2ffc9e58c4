"""Virtual key substitution for gateway clients.

Reads the bearer token from the Authorization header. Recognized virtual
keys are swapped for the real upstream key; anything else is passed on
unchanged and the upstream makes the authentication decision.
"""

from dataclasses import dataclass

from src.config.gateway import GatewayConfig

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class KeyResolution:
    upstream_key: str = ""
    substituted: bool = False

    def __repr__(self) -> str:
        return f"KeyResolution(substituted={self.substituted})"


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token after "Bearer ", or "" for a missing header or other scheme."""
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):]
    return ""


def resolve_upstream_key(authorization: str | None, config: GatewayConfig) -> KeyResolution:
    """Decide which credential goes upstream for this Authorization header."""
    presented = extract_bearer_token(authorization)
    if presented in config.virtual_keys:
        return KeyResolution(upstream_key=config.upstream_api_key, substituted=True)
    return KeyResolution(upstream_key=presented, substituted=False)


def bearer_header(key: str) -> str:
    """Authorization value for the outbound request.

    An empty key yields a bare "Bearer" since HTTP header values cannot end
    in whitespace.
    """
    return f"{BEARER_PREFIX}{key}" if key else BEARER_PREFIX.strip()
