"""Request pipeline - an explicit middleware chain around one httpx client.

Each middleware is an async callable taking the outgoing request and a
`call_next` coroutine function; it may modify the request, inspect or replace
the response, or raise. The innermost handler sends the request on the
client and turns transport failures into NetworkError.

Chain built for authenticated calls (outermost first):

    RequestLoggingMiddleware
    ErrorStatusMiddleware          403 -> AccessDenied, other non-2xx -> ServerError
    SessionInvalidationMiddleware  401 -> logout, then SessionExpired
    BearerTokenMiddleware          Authorization: Bearer <token>
    JsonContentTypeMiddleware      Content-Type / Accept: application/json
"""
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence

import httpx

from ..exceptions import AccessDenied, NetworkError, ServerError, SessionExpired

logger = logging.getLogger(__name__)

CallNext = Callable[[httpx.Request], Awaitable[httpx.Response]]
Middleware = Callable[[httpx.Request, CallNext], Awaitable[httpx.Response]]


class CredentialSource(Protocol):
    """What the pipeline needs from the session manager."""

    def get_token(self) -> Optional[str]: ...

    async def reload_token(self) -> Optional[str]: ...

    async def logout(self) -> None: ...


class BaseUrlSource(Protocol):
    """What the pipeline needs from server discovery."""

    async def get_base_url(self) -> str: ...


def error_message(response: httpx.Response) -> str:
    """Server-supplied message from a JSON error body, or the reason phrase."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if message:
            return str(message)
    return response.reason_phrase or f"HTTP {response.status_code}"


class JsonContentTypeMiddleware:
    """Declare JSON for both the request body and the expected response."""

    async def __call__(self, request: httpx.Request, call_next: CallNext) -> httpx.Response:
        request.headers["Content-Type"] = "application/json"
        request.headers.setdefault("Accept", "application/json")
        return await call_next(request)


class BearerTokenMiddleware:
    """Attach the session's bearer token when there is one.

    If the in-memory session is empty, persisted storage is re-read once for
    this request before giving up.
    """

    def __init__(self, credentials: CredentialSource):
        self._credentials = credentials

    async def __call__(self, request: httpx.Request, call_next: CallNext) -> httpx.Response:
        token = self._credentials.get_token()
        if not token:
            token = await self._credentials.reload_token()

        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            logger.debug(f"No token for {request.method} {request.url.path}")
        return await call_next(request)


class SessionInvalidationMiddleware:
    """Treat 401 as a dead session: clear it, then tell the caller."""

    def __init__(self, credentials: CredentialSource):
        self._credentials = credentials

    async def __call__(self, request: httpx.Request, call_next: CallNext) -> httpx.Response:
        response = await call_next(request)
        if response.status_code == 401:
            logger.warning(f"401 Unauthorized for {request.method} {request.url.path} - clearing session")
            await self._credentials.logout()
            raise SessionExpired()
        return response


class ErrorStatusMiddleware:
    """Map non-2xx responses onto client exceptions."""

    async def __call__(self, request: httpx.Request, call_next: CallNext) -> httpx.Response:
        response = await call_next(request)
        if response.is_success:
            return response

        message = error_message(response)
        if response.status_code == 403:
            logger.warning(f"403 Forbidden for {request.method} {request.url.path}")
            raise AccessDenied()
        raise ServerError(response.status_code, message)


class RequestLoggingMiddleware:
    """Log every request with its status and duration."""

    async def __call__(self, request: httpx.Request, call_next: CallNext) -> httpx.Response:
        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                f"✗ {request.method} {request.url.path} failed after {duration_ms}ms: {type(e).__name__}"
            )
            raise

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"✓ {request.method} {request.url.path} → {response.status_code} ({duration_ms}ms)")
        return response


class RequestPipeline:
    """Sends API calls through a middleware chain on a shared client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url_source: BaseUrlSource,
        middleware: Sequence[Middleware] = (),
        api_prefix: str = "/api",
    ):
        self._client = client
        self._base_url_source = base_url_source
        self._middleware: List[Middleware] = list(middleware)
        self._api_prefix = api_prefix

    @property
    def middleware(self) -> List[Middleware]:
        return list(self._middleware)

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TransportError as e:
            logger.warning(f"Network error on {request.method} {request.url}: {type(e).__name__}: {e}")
            raise NetworkError() from e

    def _build_handler(self) -> CallNext:
        handler: CallNext = self._send
        for middleware in reversed(self._middleware):
            handler = self._wrap(middleware, handler)
        return handler

    @staticmethod
    def _wrap(middleware: Middleware, call_next: CallNext) -> CallNext:
        async def handler(request: httpx.Request) -> httpx.Response:
            return await middleware(request, call_next)
        return handler

    async def build_url(self, path: str) -> str:
        base_url = await self._base_url_source.get_base_url()
        if not path.startswith("/"):
            path = f"/{path}"
        if self._api_prefix and not (path == self._api_prefix or path.startswith(f"{self._api_prefix}/")):
            path = f"{self._api_prefix}{path}"
        return f"{base_url}{path}"

    async def send(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Run one request through the chain and return the raw response."""
        url = await self.build_url(path)
        extra = {} if timeout is None else {"timeout": timeout}
        request = self._client.build_request(method, url, json=json, params=params, **extra)
        return await self._build_handler()(request)

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Run one request through the chain and return the decoded JSON body."""
        response = await self.send(method, path, json=json, params=params, timeout=timeout)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(response.status_code, "Invalid JSON in response body") from e

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json if json is not None else {})

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json if json is not None else {})

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)


def build_authenticated_chain(credentials: CredentialSource) -> List[Middleware]:
    """Middleware for calls made on behalf of the signed-in user."""
    return [
        RequestLoggingMiddleware(),
        ErrorStatusMiddleware(),
        SessionInvalidationMiddleware(credentials),
        BearerTokenMiddleware(credentials),
        JsonContentTypeMiddleware(),
    ]


def build_public_chain() -> List[Middleware]:
    """Middleware for credential-free calls (login, register)."""
    return [
        RequestLoggingMiddleware(),
        ErrorStatusMiddleware(),
        JsonContentTypeMiddleware(),
    ]
