"""Graph bridge — async client for the device-management API.

Only the operations the publishing pipeline touches are modelled: create,
get, patch and delete an app; create and get a content version; create
and get a content file; commit a content file.  Every call asks the
injected ``TokenSupplier`` for a bearer token first.

Status mapping
--------------
- 2xx          -> parsed JSON body (``None`` for empty bodies)
- 401          -> ``AuthFailedError``
- other non-2xx-> ``RemoteApiError`` carrying status, OData error code and
                  message
- no response  -> ``RemoteApiError`` with ``status_code == 0``
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from intuneforge.bridge.credentials import TokenSupplier
from intuneforge.config import DEFAULT_GRAPH_BASE_URL
from intuneforge.core.errors import AuthFailedError, RemoteApiError
from intuneforge.models.apps import (
    ApplicationRecord,
    ContentFile,
    ContentFileRequest,
    ContentVersion,
)
from intuneforge.models.metadata import EncryptionInfo

logger = logging.getLogger(__name__)

_APPS = "/deviceAppManagement/mobileApps"
_WIN32_CAST = "microsoft.graph.win32LobApp"


def _odata_error(response: httpx.Response) -> tuple[str, str]:
    """Pull ``(code, message)`` out of an OData error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return "", response.text[:500]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        err = body["error"]
        return str(err.get("code", "")), str(err.get("message", ""))
    return "", response.text[:500]


class GraphClient:
    """Async client for the management API.

    Parameters
    ----------
    token_supplier:
        Produces the bearer token for each request.
    base_url:
        API root, e.g. ``https://graph.microsoft.com/beta``.
    http_client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one with a
        ``MockTransport``).  A client passed in is not closed by ``close()``.
    timeout_seconds:
        Per-request timeout for the client this class builds itself.
    """

    def __init__(
        self,
        token_supplier: TokenSupplier,
        *,
        base_url: str = DEFAULT_GRAPH_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 100.0,
    ) -> None:
        self._tokens = token_supplier
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds)
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def create_app(self, app: ApplicationRecord) -> ApplicationRecord:
        body = await self._request("POST", _APPS, json=app.to_graph())
        return ApplicationRecord.model_validate(body)

    async def get_app(self, app_id: str) -> ApplicationRecord:
        body = await self._request("GET", f"{_APPS}/{app_id}")
        return ApplicationRecord.model_validate(body)

    async def patch_app(self, app_id: str, fields: dict[str, Any]) -> None:
        body = {"@odata.type": "#microsoft.graph.win32LobApp", **fields}
        await self._request("PATCH", f"{_APPS}/{app_id}", json=body)

    async def delete_app(self, app_id: str) -> None:
        await self._request("DELETE", f"{_APPS}/{app_id}")

    # ------------------------------------------------------------------
    # Content versions and files
    # ------------------------------------------------------------------

    async def create_content_version(self, app_id: str) -> ContentVersion:
        body = await self._request("POST", self._versions(app_id), json={})
        return ContentVersion.model_validate(body)

    async def get_content_version(self, app_id: str, version_id: str) -> ContentVersion:
        body = await self._request("GET", f"{self._versions(app_id)}/{version_id}")
        return ContentVersion.model_validate(body)

    async def create_content_file(
        self, app_id: str, version_id: str, request: ContentFileRequest
    ) -> ContentFile:
        body = await self._request(
            "POST", self._files(app_id, version_id), json=request.to_graph()
        )
        return ContentFile.model_validate(body)

    async def get_content_file(
        self, app_id: str, version_id: str, file_id: str
    ) -> ContentFile:
        body = await self._request("GET", f"{self._files(app_id, version_id)}/{file_id}")
        return ContentFile.model_validate(body)

    async def commit_content_file(
        self,
        app_id: str,
        version_id: str,
        file_id: str,
        encryption_info: EncryptionInfo,
    ) -> None:
        await self._request(
            "POST",
            f"{self._files(app_id, version_id)}/{file_id}/commit",
            json={"fileEncryptionInfo": encryption_info.to_graph()},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> GraphClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"GraphClient(base_url={self._base_url!r})"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _versions(app_id: str) -> str:
        return f"{_APPS}/{app_id}/{_WIN32_CAST}/contentVersions"

    def _files(self, app_id: str, version_id: str) -> str:
        return f"{self._versions(app_id)}/{version_id}/files"

    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> Any:
        url = f"{self._base_url}{path}"
        token = await self._tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            response = await self._http.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed without a response: %s", method, url, exc)
            raise RemoteApiError(
                f"{method} {path} failed: {exc}", method=method, url=url
            ) from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)

        if response.status_code == 401:
            code, message = _odata_error(response)
            raise AuthFailedError(
                f"{method} {path} was rejected as unauthenticated: {message or code or 'HTTP 401'}"
            )

        if not response.is_success:
            code, message = _odata_error(response)
            raise RemoteApiError(
                message or f"{method} {path} failed",
                status_code=response.status_code,
                error_code=code,
                method=method,
                url=url,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteApiError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                method=method,
                url=url,
            ) from exc
