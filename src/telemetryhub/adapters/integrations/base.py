"""Shared plumbing for integrations: status bookkeeping and a lazy HTTP client."""

import logging
import threading
import time
from typing import Any

import httpx

from telemetryhub.core.errors import TransportError
from telemetryhub.core.models import IntegrationStatus

logger = logging.getLogger(__name__)

# Response bodies are truncated to this many characters in errors.
MAX_ERROR_BODY = 512


class BaseIntegration:
    """Status bookkeeping and an ``httpx.AsyncClient`` for one backend.

    The client is created lazily from ``_client_options`` and released by
    ``close``. Every non-2xx response and every transport failure surfaces
    as ``TransportError``.

    Args:
        name: Integration name.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in
            tests.
    """

    def __init__(
        self, name: str, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._name = name
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._closed = False
        self._status = IntegrationStatus(name=name)
        self._status_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def is_enabled(self) -> bool:
        with self._status_lock:
            return self._status.enabled

    def get_status(self) -> IntegrationStatus:
        with self._status_lock:
            return self._status.copy()

    def _update_status(self, **changes: Any) -> None:
        with self._status_lock:
            for key, value in changes.items():
                setattr(self._status, key, value)

    def _set_metadata(self, key: str, value: object) -> None:
        with self._status_lock:
            self._status.metadata[key] = str(value)

    def _mark_connected(self) -> None:
        self._update_status(connected=True, last_connect_time=time.time(), last_error="")

    def _record_failure(self, exc: Exception) -> None:
        self._update_status(last_error=str(exc))

    def _client_options(self) -> dict[str, Any]:
        """Keyword arguments for ``httpx.AsyncClient`` (base_url, auth, ...)."""
        raise NotImplementedError

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport, **self._client_options()
            )
        return self._client

    async def _request(
        self,
        method: str,
        url: str,
        *,
        error_status: int = 400,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, mapping failures to ``TransportError``.

        Args:
            method: HTTP method.
            url: Path relative to the client's base URL, or an absolute URL.
            error_status: Lowest status code treated as a failure.
            **kwargs: Passed through to ``httpx.AsyncClient.request``.

        Raises:
            TransportError: On connection errors, timeouts, or a status code
                at or above ``error_status``.
        """
        try:
            response = await self._http().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{self._name}: {method} {url} failed: {exc}") from exc
        if response.status_code >= error_status:
            body = response.text[:MAX_ERROR_BODY]
            raise TransportError(
                f"{self._name}: {method} {url} returned {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )
        return response

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body.

        Raises:
            TransportError: As ``_request``, or when the body is not JSON.
        """
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            body = response.text[:MAX_ERROR_BODY]
            raise TransportError(
                f"{self._name}: {method} {url} returned invalid JSON: {body}",
                status_code=response.status_code,
                body=body,
            ) from exc

    async def _reset_client(self) -> None:
        """Drop the current client so the next request picks up new options."""
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _on_close(self) -> None:
        """Hook for flushing backend state before the client is released."""

    async def close(self) -> None:
        """Flush pending state and release the HTTP client.

        Safe to call more than once; later calls return immediately. The
        first error from the flush hook is raised after cleanup.
        """
        if self._closed:
            return
        self._closed = True
        try:
            await self._on_close()
        finally:
            await self._reset_client()
            self._update_status(enabled=False, connected=False)
            logger.debug("Integration closed", extra={"integration": self._name})
