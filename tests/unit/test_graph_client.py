"""Tests for GraphClient — request shapes and status mapping."""

from __future__ import annotations

import json

import httpx
import pytest

from fakes import GRAPH_BASE, FakeIntune
from intuneforge.bridge.credentials import CallableTokenSupplier, StaticTokenSupplier
from intuneforge.bridge.graph_client import GraphClient
from intuneforge.core.errors import AuthFailedError, RemoteApiError
from intuneforge.models.apps import ApplicationRecord, ContentFileRequest, UploadState
from intuneforge.models.metadata import EncryptionInfo


def _client_for(handler) -> GraphClient:
    return GraphClient(
        StaticTokenSupplier("t0k3n"),
        base_url=GRAPH_BASE,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestRequests:
    async def test_create_app(self, graph: GraphClient, fake: FakeIntune):
        app = await graph.create_app(ApplicationRecord(display_name="7-Zip", publisher="Igor"))
        assert app.id == "app-1"
        request = fake.calls("create_app")[0]
        assert request.headers["authorization"] == "Bearer test-token"
        body = json.loads(request.content)
        assert body["@odata.type"] == "#microsoft.graph.win32LobApp"
        assert body["displayName"] == "7-Zip"

    async def test_patch_app_adds_type(self, graph: GraphClient, fake: FakeIntune):
        app = await graph.create_app(ApplicationRecord(display_name="x"))
        await graph.patch_app(app.id, {"committedContentVersion": "1"})
        assert fake.patches == [
            {"@odata.type": "#microsoft.graph.win32LobApp", "committedContentVersion": "1"}
        ]
        assert (await graph.get_app(app.id)).committed_content_version == "1"

    async def test_delete_app(self, graph: GraphClient, fake: FakeIntune):
        app = await graph.create_app(ApplicationRecord(display_name="x"))
        await graph.delete_app(app.id)
        assert fake.deleted == [app.id]

    async def test_content_version_and_file(self, graph: GraphClient, fake: FakeIntune):
        app = await graph.create_app(ApplicationRecord(display_name="x"))
        version = await graph.create_content_version(app.id)
        assert version.id == "1"
        assert fake.calls("create_version")[0].url.path.endswith(
            "/microsoft.graph.win32LobApp/contentVersions"
        )

        created = await graph.create_content_file(
            app.id, version.id, ContentFileRequest(name="p.intunewin", size=10, size_encrypted=48)
        )
        assert created.upload_state == UploadState.URI_REQUEST_PENDING
        assert fake.file_requests[0]["sizeEncrypted"] == 48

        first = await graph.get_content_file(app.id, version.id, created.id)
        second = await graph.get_content_file(app.id, version.id, created.id)
        assert not first.has_storage_uri
        assert second.has_storage_uri

    async def test_commit_body(self, graph: GraphClient, fake: FakeIntune):
        app = await graph.create_app(ApplicationRecord(display_name="x"))
        version = await graph.create_content_version(app.id)
        created = await graph.create_content_file(
            app.id, version.id, ContentFileRequest(name="p", size=1, size_encrypted=1)
        )
        info = EncryptionInfo(
            encryption_key="ek", mac_key="mk", initialization_vector="iv", mac="m", file_digest="d"
        )
        assert await graph.commit_content_file(app.id, version.id, created.id, info) is None
        assert fake.commit_bodies == [{"fileEncryptionInfo": info.to_graph()}]


class TestStatusMapping:
    async def test_401_is_auth_failure(self, graph: GraphClient, fake: FakeIntune):
        fake.fail("create_app", status=401, code="InvalidAuthenticationToken", message="expired")
        with pytest.raises(AuthFailedError, match="expired"):
            await graph.create_app(ApplicationRecord(display_name="x"))

    async def test_403_is_remote_error(self, graph: GraphClient, fake: FakeIntune):
        fake.fail("create_app", status=403, code="Forbidden", message="no rights")
        with pytest.raises(RemoteApiError) as excinfo:
            await graph.create_app(ApplicationRecord(display_name="x"))
        assert not isinstance(excinfo.value, AuthFailedError)
        assert excinfo.value.status_code == 403

    async def test_odata_error_details(self, graph: GraphClient, fake: FakeIntune):
        fake.fail("get_app", status=404, code="ResourceNotFound", message="gone")
        with pytest.raises(RemoteApiError) as excinfo:
            await graph.get_app("app-9")
        err = excinfo.value
        assert (err.status_code, err.error_code, err.method) == (404, "ResourceNotFound", "GET")
        assert "gone" in str(err)
        assert "HTTP 404" in str(err)

    async def test_plain_text_error(self):
        graph = _client_for(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(RemoteApiError) as excinfo:
            await graph.get_app("a")
        assert excinfo.value.status_code == 502
        assert "Bad Gateway" in str(excinfo.value)

    async def test_no_response(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(RemoteApiError) as excinfo:
            await _client_for(refuse).get_app("a")
        assert excinfo.value.status_code == 0

    async def test_non_json_success_body(self):
        graph = _client_for(lambda request: httpx.Response(200, text="<html/>"))
        with pytest.raises(RemoteApiError):
            await graph.get_app("a")


class TestTokens:
    async def test_token_fetched_per_request(self, fake: FakeIntune):
        issued = []

        def issue(scope: str) -> str:
            issued.append(scope)
            return f"tok-{len(issued)}"

        graph = GraphClient(
            CallableTokenSupplier(issue), base_url=GRAPH_BASE, http_client=fake.client()
        )
        app = await graph.create_app(ApplicationRecord(display_name="x"))
        await graph.get_app(app.id)
        assert [r.headers["authorization"] for r in fake.requests] == [
            "Bearer tok-1",
            "Bearer tok-2",
        ]
        assert issued[0] == "https://graph.microsoft.com/.default"

    async def test_supplier_failure_sends_nothing(self, fake: FakeIntune):
        def broken(scope: str) -> str:
            raise RuntimeError("no cached account")

        graph = GraphClient(
            CallableTokenSupplier(broken), base_url=GRAPH_BASE, http_client=fake.client()
        )
        with pytest.raises(AuthFailedError):
            await graph.get_app("a")
        assert fake.requests == []


class TestLifecycle:
    async def test_injected_client_not_closed(self, fake: FakeIntune):
        http = fake.client()
        async with GraphClient(StaticTokenSupplier("t"), base_url=GRAPH_BASE, http_client=http):
            pass
        assert not http.is_closed

    async def test_owned_client_closed(self):
        graph = GraphClient(StaticTokenSupplier("t"))
        await graph.close()
        assert graph._http.is_closed
