"""HTTP implementation of the RemoteApiClient interface.

Talks to the CRM REST API with httpx:

    POST   /api/{resource}        create
    PUT    /api/{resource}/{id}   update
    DELETE /api/{resource}/{id}   delete
    GET    {path}                 make_request (delta queries)

Bearer credentials come from an injected CredentialProvider on every
request, so token refresh stays outside this module. Idempotent GETs are
retried with tenacity on transport errors; mutations are not retried
here (the sync engine decides what happens to a failed mutation).
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.leadsync.config import Settings, get_settings
from src.leadsync.sync.adapter import CredentialProvider, RemoteApiClient

logger = structlog.get_logger(__name__)


class ApiRequestError(Exception):
    """The API answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the server.
        method: HTTP method of the failed request.
        path: Request path.
    """

    def __init__(self, status_code: int, message: str, method: str = "", path: str = "") -> None:
        self.status_code = status_code
        self.method = method
        self.path = path
        super().__init__(message)


class StaticTokenProvider(CredentialProvider):
    """Credential provider holding a fixed token (service accounts, tests)."""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    async def get_token(self) -> str | None:
        return self._token


def _error_message(response: httpx.Response) -> str:
    """Prefer the server's JSON ``message``, fall back to the raw body."""
    message = f"API request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        text = response.text
        return f"{message}: {text}" if text else message
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return message


class HttpApiClient(RemoteApiClient):
    """httpx-based CRM API client.

    Args:
        base_url: Server root, e.g. ``http://localhost:5000``.
        credentials: Source of bearer tokens; None for anonymous access.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts for idempotent GETs on transport errors.
        retry_wait: tenacity wait strategy between GET attempts.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._max_retries = max(1, max_retries)
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> HttpApiClient:
        settings = settings or get_settings()
        return cls(
            base_url=settings.API_BASE_URL,
            credentials=StaticTokenProvider(settings.API_TOKEN),
            timeout=settings.API_TIMEOUT,
            max_retries=settings.API_MAX_RETRIES,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Transport ───────────────────────────────────────────────────────

    async def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._credentials is not None:
            token = await self._credentials.get_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        if not path.startswith("/"):
            path = f"/{path}"

        response = await self._client.request(
            method, path, json=json, headers=await self._headers()
        )
        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "api.request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise ApiRequestError(response.status_code, message, method=method, path=path)

        if not response.content:
            return None
        return response.json()

    async def make_request(self, path: str) -> Any:
        """GET path, retrying transport errors with exponential backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=self._retry_wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._request("GET", path)

    # ── Resources ───────────────────────────────────────────────────────

    async def _create(self, resource: str, data: dict[str, Any]) -> Any:
        return await self._request("POST", f"/api/{resource}", json=data)

    async def _update(self, resource: str, entity_id: Any, data: dict[str, Any]) -> Any:
        return await self._request("PUT", f"/api/{resource}/{entity_id}", json=data)

    async def _delete(self, resource: str, entity_id: Any) -> Any:
        return await self._request("DELETE", f"/api/{resource}/{entity_id}")

    async def create_lead(self, data: dict[str, Any]) -> Any:
        return await self._create("leads", data)

    async def update_lead(self, entity_id: Any, data: dict[str, Any]) -> Any:
        return await self._update("leads", entity_id, data)

    async def delete_lead(self, entity_id: Any) -> Any:
        return await self._delete("leads", entity_id)

    async def create_call(self, data: dict[str, Any]) -> Any:
        # The calls endpoint keys on userLeadId; clients often send leadId
        payload = dict(data)
        if "userLeadId" not in payload and "leadId" in payload:
            payload["userLeadId"] = payload["leadId"]
        return await self._create("calls", payload)

    async def update_call(self, entity_id: Any, data: dict[str, Any]) -> Any:
        return await self._update("calls", entity_id, data)

    async def delete_call(self, entity_id: Any) -> Any:
        return await self._delete("calls", entity_id)

    async def create_note(self, data: dict[str, Any]) -> Any:
        return await self._create("notes", data)

    async def update_note(self, entity_id: Any, data: dict[str, Any]) -> Any:
        return await self._update("notes", entity_id, data)

    async def delete_note(self, entity_id: Any) -> Any:
        return await self._delete("notes", entity_id)
