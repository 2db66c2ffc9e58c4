"""Command line entry point: parse flags, load configuration, start uvicorn.

Usage:
    python -m src.run --port 48080 --access-count-limit 1000
    virtual-key-gateway --virtual-keys-file keys.txt
"""

import argparse

import uvicorn

from src.config.gateway import UPSTREAM_KEY_ENV, ConfigurationError, load_gateway_config
from src.config.settings import Settings
from src.logging.audit import get_audit_logger, resolve_log_level, setup_logging
from src.main import create_app

DESCRIPTION = """\
Reverse proxy to the OpenAI API server with additional features:
  1. Abuse protection through a total access count limit.
  2. Enhanced security by using virtual API keys instead of exposing the real API key.
"""

EPILOG = f"""\
Note:
  * Set your real OpenAI API key as the environment variable: {UPSTREAM_KEY_ENV}.
  * Configure your app's OpenAI API access to use http://<ip-or-hostname-of-this-machine>:<port>/v1.
    Ensure the path includes "/v1".
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="virtual-key-gateway",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # Defaults of None defer to environment settings
    parser.add_argument("--host", help="Interface to listen on. (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port number to listen on. (default: 48080)")
    parser.add_argument(
        "--access-count-limit",
        type=int,
        help="Total access count limit. Use -1 for no limit. (default: -1)",
    )
    parser.add_argument(
        "--virtual-keys-file",
        help="Path to the file containing virtual OpenAI API keys. "
             "Each key should be specified on a separate line. (default: virtual-api-keys.txt)",
    )
    parser.add_argument("--log-level", help="Audit log level. (default: INFO)")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment, overridden by any flags given."""
    overrides = {key: value for key, value in vars(args).items() if value is not None}
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = build_settings(args)
    setup_logging(settings)
    logger = get_audit_logger()

    logger.info(
        "Loading virtual keys",
        extra={"audit_data": {"virtual_keys_file": settings.virtual_keys_file}},
    )
    try:
        gateway_config = load_gateway_config(settings)
    except ConfigurationError as e:
        logger.error("Gateway failed to start", extra={"audit_data": {"error": str(e)}})
        raise SystemExit(1) from e

    app = create_app(gateway_config=gateway_config, settings=settings)

    logger.info("Starting server", extra={"audit_data": {"host": settings.host, "port": settings.port}})
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=resolve_log_level(settings.log_level),
    )


if __name__ == "__main__":
    main()
