"""
Shared async HTTP plumbing for the cart and catalog API clients.

Maps transport failures and error responses onto the ``teashop.errors``
hierarchy so callers only ever deal with ``ShopError`` subclasses.
"""
from typing import Any, Optional

import httpx

from teashop.config import get_settings
from teashop.errors import ERRORS_BY_CODE, ProductNotFound, RemoteUnavailable, ShopError, Unauthorized
from teashop.logging import get_logger

logger = get_logger(__name__)


class ApiClient:
    """Base class for JSON-over-HTTP clients with bearer-token auth.

    The underlying ``httpx.AsyncClient`` is created lazily on first use or by
    ``connect()`` and released by ``disconnect()``. ``transport`` lets tests
    plug in ``httpx.MockTransport`` or ``httpx.ASGITransport``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        if self._http_client is not None:
            return
        self._http_client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            transport=self._transport,
        )

    async def disconnect(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, mapping transport-level failures.

        Raises:
            RemoteUnavailable: Network error, timeout or 5xx
            Unauthorized: 401 from the server
        """
        await self.connect()
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await self._http_client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise RemoteUnavailable(f"Request timed out: {method} {path}")
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise RemoteUnavailable(f"Request failed: {method} {path}")

        if response.status_code >= 500:
            raise RemoteUnavailable(f"Server error {response.status_code} on {method} {path}")
        if response.status_code == 401:
            raise Unauthorized(error_body(response)[1])
        return response

    @staticmethod
    def _raise_for_error(response: httpx.Response, not_found: type[ShopError] = ProductNotFound) -> None:
        """Rebuild the server's ShopError from an error response."""
        if response.is_success:
            return
        code, message = error_body(response)
        error_cls = ERRORS_BY_CODE.get(code or "")
        if error_cls is not None:
            raise error_cls(message)
        if response.status_code == 404:
            raise not_found(message)
        raise ShopError(message or f"Unexpected response {response.status_code}")


def error_body(response: httpx.Response) -> tuple[Optional[str], Optional[str]]:
    """Extract ``(code, message)`` from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text or None
    if not isinstance(body, dict):
        return None, None
    detail = body.get("detail")
    if isinstance(detail, str) and "message" not in body:
        return None, detail
    return body.get("error"), body.get("message")
