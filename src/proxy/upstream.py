"""Pooled HTTP client for the upstream API."""

import httpx
from fastapi import HTTPException

from src.config.settings import Settings
from src.logging.audit import get_audit_logger


class UpstreamClient:
    """Sends prepared requests upstream and returns streaming responses.

    Requests are sent as built, so the client's default headers and cookies
    are never merged into them. Redirects are not followed.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpstreamClient":
        return cls(
            timeout=settings.upstream_timeout,
            connect_timeout=settings.upstream_connect_timeout,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send the request and return the response with its body still unread.

        The caller must close the response. Transport failures become 502/504.
        """
        client = await self._get_client()
        try:
            return await client.send(request, stream=True)
        except httpx.ConnectError as e:
            self._log_failure(request, e)
            raise HTTPException(status_code=502, detail="Cannot reach upstream")
        except httpx.TimeoutException as e:
            self._log_failure(request, e)
            raise HTTPException(status_code=504, detail="Upstream timed out")
        except httpx.HTTPError as e:
            self._log_failure(request, e)
            raise HTTPException(status_code=502, detail=f"Upstream error: {type(e).__name__}")

    @staticmethod
    def _log_failure(request: httpx.Request, error: Exception) -> None:
        get_audit_logger().error(
            "Upstream request failed",
            extra={"audit_data": {
                "method": request.method,
                "upstream_host": request.url.host,
                "error_type": type(error).__name__,
                "error": str(error),
            }},
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
