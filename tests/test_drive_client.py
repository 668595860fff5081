"""
Tests for the Google Drive client.

Requests are served by httpx.MockTransport, so no network is used.

These tests verify:
- transfer_ownership grants writer then promotes to owner
- An existing grant is reused; an existing owner grant is a no-op
- HTTP errors map to APIError with the status code
- list_files parses Drive's string sizes and paging token
"""

import json

import httpx
import pytest

from app.environments.base import APIError
from app.environments.google.drive import GoogleDriveClient
from app.environments.google.drive.client import (
    ERROR_NETWORK,
    ERROR_NO_PERMISSION,
    ERROR_RATE_LIMITED,
    ERROR_REQUEST_FAILED,
)


class DriveStub:
    """Records requests and answers from a (method, path) -> response table."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"message": "File not found"}})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def client(self) -> GoogleDriveClient:
        return GoogleDriveClient("ya29.test", transport=httpx.MockTransport(self))


PERMISSIONS = "/drive/v3/files/f1/permissions"


class TestTransferOwnership:

    @pytest.mark.asyncio
    async def test_grants_writer_then_promotes(self):
        stub = DriveStub({
            ("GET", PERMISSIONS): (200, {"permissions": [
                {"id": "p0", "type": "user", "role": "owner", "emailAddress": "alice@example.com"},
            ]}),
            ("POST", PERMISSIONS): (200, {"id": "p1", "type": "user", "role": "writer", "emailAddress": "bob@example.com"}),
            ("PATCH", f"{PERMISSIONS}/p1"): (200, {"id": "p1", "type": "user", "role": "owner", "emailAddress": "bob@example.com"}),
        })

        permission = await stub.client().transfer_ownership("f1", "bob@example.com")

        assert permission.role == "owner"
        assert [r.method for r in stub.requests] == ["GET", "POST", "PATCH"]

        create = stub.requests[1]
        assert json.loads(create.content) == {"role": "writer", "type": "user", "emailAddress": "bob@example.com"}
        assert create.url.params["sendNotificationEmail"] == "false"

        promote = stub.requests[2]
        assert promote.url.params["transferOwnership"] == "true"
        assert json.loads(promote.content) == {"role": "owner"}
        assert promote.headers["Authorization"] == "Bearer ya29.test"

    @pytest.mark.asyncio
    async def test_reuses_existing_grant(self):
        stub = DriveStub({
            ("GET", PERMISSIONS): (200, {"permissions": [
                {"id": "p7", "type": "user", "role": "reader", "emailAddress": "Bob@Example.com"},
            ]}),
            ("PATCH", f"{PERMISSIONS}/p7"): (200, {"id": "p7", "type": "user", "role": "owner"}),
        })

        await stub.client().transfer_ownership("f1", "bob@example.com")

        assert [r.method for r in stub.requests] == ["GET", "PATCH"]

    @pytest.mark.asyncio
    async def test_already_owner_is_noop(self):
        stub = DriveStub({
            ("GET", PERMISSIONS): (200, {"permissions": [
                {"id": "p7", "type": "user", "role": "owner", "emailAddress": "bob@example.com"},
            ]}),
        })

        permission = await stub.client().transfer_ownership("f1", "bob@example.com")

        assert permission.id == "p7"
        assert len(stub.requests) == 1

    @pytest.mark.asyncio
    async def test_permission_denied(self):
        stub = DriveStub({
            ("GET", PERMISSIONS): (200, {"permissions": []}),
            ("POST", PERMISSIONS): (403, {"error": {"message": "insufficientFilePermissions"}}),
        })

        with pytest.raises(APIError) as exc_info:
            await stub.client().transfer_ownership("f1", "bob@example.com")

        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == ERROR_NO_PERMISSION

    @pytest.mark.asyncio
    async def test_missing_file(self):
        stub = DriveStub({})

        with pytest.raises(APIError) as exc_info:
            await stub.client().transfer_ownership("f1", "bob@example.com")

        assert exc_info.value.status_code == 404


class TestErrors:

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        stub = DriveStub({("GET", "/drive/v3/files"): (403, {"error": {"message": "User Rate Limit Exceeded"}})})

        with pytest.raises(APIError) as exc_info:
            await stub.client().list_files()

        assert str(exc_info.value) == ERROR_RATE_LIMITED

    @pytest.mark.asyncio
    async def test_network_error(self):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = GoogleDriveClient("ya29.test", transport=httpx.MockTransport(fail))

        with pytest.raises(APIError) as exc_info:
            await client.get_file("f1")

        assert exc_info.value.status_code is None
        assert str(exc_info.value) == ERROR_NETWORK

    @pytest.mark.asyncio
    async def test_server_error_body_stays_out_of_message(self):
        stub = DriveStub({("GET", "/drive/v3/files/f1"): (500, {"error": {"message": "backend shard 17 unavailable"}})})

        with pytest.raises(APIError) as exc_info:
            await stub.client().get_file("f1")

        assert exc_info.value.status_code == 500
        assert str(exc_info.value) == f"{ERROR_REQUEST_FAILED} (HTTP 500)"
        assert "shard 17" in exc_info.value.response


class TestListFiles:

    @pytest.mark.asyncio
    async def test_parses_files(self):
        stub = DriveStub({
            ("GET", "/drive/v3/files"): (200, {
                "nextPageToken": "next",
                "files": [
                    {"id": "f1", "name": "report.pdf", "mimeType": "application/pdf", "size": "2048",
                     "owners": [{"me": True, "emailAddress": "alice@example.com"}]},
                    {"id": "f2", "name": "Notes", "mimeType": "application/vnd.google-apps.document"},
                ],
            }),
        })

        page = await stub.client().list_files(page_size=10, query="mimeType != 'application/vnd.google-apps.folder'")

        assert page.next_page_token == "next"
        assert [f.size for f in page.files] == [2048, None]
        assert page.files[0].is_owned_by_me()
        params = stub.requests[0].url.params
        assert params["pageSize"] == "10"
        assert params["q"].startswith("'me' in owners and trashed = false and (")

    @pytest.mark.asyncio
    async def test_validate_access(self):
        stub = DriveStub({("GET", "/drive/v3/about"): (200, {"user": {}})})

        assert await stub.client().validate_access("ya29.other") is True
        assert stub.requests[0].headers["Authorization"] == "Bearer ya29.other"
