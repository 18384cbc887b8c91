"""Module: backend_client.

Thin async wrapper around the MedTrack REST backend. Attaches the bearer
token, maps HTTP failures onto the error taxonomy and nothing else: no
retries, no caching.
"""

import logging
from typing import Any, Callable, Optional

import httpx

from medtrack.core.errors import (
    ApiConflict,
    Forbidden,
    MedTrackError,
    NetworkError,
    NotFound,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _error_message(response: httpx.Response) -> tuple[str, dict]:
    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason_phrase or "Backend error"), {}
    if not isinstance(body, dict):
        return str(body), {}
    message = body.get("detail") or body.get("message") or body.get("error") or "Backend error"
    return str(message), body


class MedTrackClient:
    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "MedTrackClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        authenticated: bool = True,
    ) -> Any:
        headers = {}
        if authenticated and self._token_provider is not None:
            # The provider re-checks expiry and raises before anything is sent.
            token = self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._http.request(
                method, path, params=_clean_params(params), json=json, headers=headers
            )
        except httpx.TransportError as exc:
            logger.warning("Backend unreachable: %s %s (%s)", method, path, exc)
            raise NetworkError("MedTrack backend is unreachable, please retry")

        if response.status_code >= 400:
            raise self._map_error(method, path, response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _map_error(self, method: str, path: str, response: httpx.Response) -> MedTrackError:
        status = response.status_code
        message, body = _error_message(response)
        if status == 401:
            logger.info("Backend rejected session on %s %s", method, path)
            return Unauthorized(message)
        if status == 403:
            logger.info("Backend denied %s %s: %s", method, path, message)
            return Forbidden(message)
        if status == 404:
            return NotFound(message)
        if status == 409:
            logger.info("Backend conflict on %s %s: %s", method, path, message)
            return ApiConflict(message, body)
        if status in (400, 422):
            return ValidationError(message)
        logger.error("Backend error %s on %s %s: %s", status, method, path, message)
        return NetworkError(f"MedTrack backend error ({status})")

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)
