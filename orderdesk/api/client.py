"""Thin aiohttp client for the queue endpoints a scanner host talks to.

The backend owns validation and retries; this client only shapes requests
and turns non-2xx responses into ``OrderDeskAPIError``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import aiohttp

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger

LOCAL_TOKEN_KEY = "labalaba_auth_token"
LOCAL_REFRESH_TOKEN_KEY = "labalaba_refresh_token"

DEFAULT_TIMEOUT_S = 10.0


class OrderDeskAPIError(Exception):
    """Raised for transport failures and non-2xx responses."""

    def __init__(self, message: str, *, status: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


class OrderDeskClient:
    """Async REST client; use as ``async with OrderDeskClient(url) as client``."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        session: Optional[aiohttp.ClientSession] = None,
        logger: LoggerLike = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._logger = ensure_structured_logger(logger, component="OrderDeskClient", fallback_name=__name__)

    @classmethod
    def from_token_store(cls, base_url: str, store: Dict[str, str], **kwargs: Any) -> "OrderDeskClient":
        """Build a client from a key/value token store using the frontend's key names."""
        return cls(base_url, token=store.get(LOCAL_TOKEN_KEY), **kwargs)

    async def __aenter__(self) -> "OrderDeskClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        self._logger.debug("%s %s", method, url)
        try:
            async with self._get_session().request(
                method, url, json=json, params=params, headers=self._headers()
            ) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                if response.status >= 400:
                    message = payload.get("message") if isinstance(payload, dict) else None
                    raise OrderDeskAPIError(
                        message or f"{method} {path} failed with HTTP {response.status}",
                        status=response.status,
                        payload=payload,
                    )
                return payload
        except aiohttp.ClientError as exc:
            raise OrderDeskAPIError(f"{method} {path} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Queue

    async def scan_barcode(self, barcode: str) -> Any:
        """Register a scanned order barcode with the loading queue."""
        result = await self._request("POST", "/queue/scan", json={"barcode": barcode})
        self._logger.info("Barcode forwarded to queue")
        return result

    async def list_queue(self, status: Optional[str] = None) -> Any:
        params = {"status": status} if status else None
        return await self._request("GET", "/queue", params=params)

    async def queue_estimate(self) -> Any:
        return await self._request("GET", "/queue/estimate")

    async def current_loading(self) -> Any:
        return await self._request("GET", "/queue/current")

    async def call_next(self) -> Any:
        return await self._request("POST", "/queue/call-next")

    async def finish_loading(self, order_id: str) -> Any:
        return await self._request("POST", f"/orders/{order_id}/finish-loading")


__all__ = [
    "LOCAL_REFRESH_TOKEN_KEY",
    "LOCAL_TOKEN_KEY",
    "OrderDeskAPIError",
    "OrderDeskClient",
]
