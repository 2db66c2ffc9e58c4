"""Virtual Key Gateway — FastAPI application entry point.

A reverse proxy in front of the OpenAI API. Clients authenticate with
virtual keys which are swapped for the real API key before forwarding,
and a global access count limit protects the real key from abuse.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.config.gateway import GatewayConfig, load_gateway_config
from src.config.settings import Settings, get_settings
from src.logging.audit import get_audit_logger, request_ordinal_var, setup_logging
from src.proxy.handler import forward_request
from src.proxy.upstream import UpstreamClient
from src.security.admission import AdmissionGate
from src.security.auth import resolve_upstream_key

VERSION = "0.1.0"


async def proxy(request: Request):
    """Catch-all endpoint: every method and path is forwarded upstream.

    Pipeline: Admission -> Key substitution -> Forward -> Relay
    """
    logger = get_audit_logger()
    state = request.app.state

    # 1. Admission (consumes an ordinal even when rejected)
    admission = state.admission.admit()
    request_ordinal_var.set(admission.ordinal)

    client_ip = request.client.host if request.client else "unknown"
    client_port = request.client.port if request.client else None
    logger.info(
        "Request received",
        extra={"audit_data": {
            "client_ip": client_ip,
            "client_port": client_port,
            "method": request.method,
            "path": request.url.path,
        }},
    )

    if not admission.admitted:
        logger.warning(
            "Access count limit exceeded",
            extra={"audit_data": {
                "client_ip": client_ip,
                "access_count_limit": admission.limit,
            }},
        )
        return JSONResponse(
            status_code=422,
            content={"error": "Total access count limit exceeded"},
        )

    # 2. Virtual key substitution
    config: GatewayConfig = state.config
    resolution = resolve_upstream_key(request.headers.get("authorization"), config)
    if not resolution.substituted:
        logger.warning("No virtual key found", extra={"audit_data": {"client_ip": client_ip}})

    # 3. Forward and relay
    return await forward_request(
        request,
        upstream_key=resolution.upstream_key,
        upstream=state.upstream,
        host=config.upstream_host,
        substituted=resolution.substituted,
    )


def _install(
    app: FastAPI,
    gateway_config: GatewayConfig,
    settings: Settings | None,
    upstream: UpstreamClient | None,
) -> None:
    app.state.config = gateway_config
    app.state.admission = AdmissionGate(gateway_config.access_count_limit)
    app.state.upstream = upstream or UpstreamClient.from_settings(settings or get_settings())


def create_app(
    gateway_config: GatewayConfig | None = None,
    settings: Settings | None = None,
    upstream: UpstreamClient | None = None,
) -> FastAPI:
    """Build the gateway app.

    With no gateway_config, the configuration is loaded from settings at
    startup and a ConfigurationError aborts the lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle hooks."""
        setup_logging(settings)
        logger = get_audit_logger()
        if app.state.config is None:
            _install(app, load_gateway_config(settings or get_settings()), settings, upstream)
        logger.info(
            "Gateway started",
            extra={"audit_data": {
                "version": VERSION,
                "upstream_host": app.state.config.upstream_host,
                "virtual_key_count": len(app.state.config.virtual_keys),
                "access_count_limit": app.state.config.access_count_limit,
            }},
        )
        yield
        await app.state.upstream.close()
        logger.info("Gateway stopped")

    # No docs or openapi routes: every path belongs to the upstream
    app = FastAPI(
        title="Virtual Key Gateway",
        description="Reverse proxy to the OpenAI API with virtual keys",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = None
    if gateway_config is not None:
        _install(app, gateway_config, settings, upstream)

    # Plain route without a methods list: matches any method, extensions included
    app.add_route("/{path:path}", proxy, include_in_schema=False)
    return app


app = create_app()
