"""
Tests for sign-in, /users/me, /drive and /health.

These tests verify:
- The Google callback creates the user, stores tokens and returns a JWT
- A bad state is rejected
- /users/me reports whether Google is connected and the user's transfer totals
- /drive/files lists the sender's files through the fake Drive client
- Disconnecting removes the stored credential
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.environments.base import APIError, OAuthTokens, UserInfo
from app.environments.google.drive import DriveFile
from app.main import app
from app.models.oauth_credential import OAuthCredential
from app.models.user import User
from app.routers import google_auth
from tests.helpers import manifest, wait_for_status


@pytest.fixture
def auth_client():
    """Mocked GoogleAuthClient installed as the router dependency."""
    client = MagicMock()
    client.client_id = "client-id"
    client.generate_state.return_value = "state-123"
    client.get_authorization_url.return_value = "https://accounts.google.com/o/oauth2/v2/auth?state=state-123"
    client.exchange_code_for_tokens = AsyncMock(
        return_value=OAuthTokens(
            access_token="ya29.new",
            refresh_token="1//new",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            scopes=["https://www.googleapis.com/auth/drive"],
        )
    )
    client.get_user_info = AsyncMock(
        return_value=UserInfo(provider_user_id="google-dan", email="dan@example.com", name="Dan")
    )
    client.revoke_token = AsyncMock(return_value=True)

    app.dependency_overrides[google_auth.get_auth_client] = lambda: client
    yield client
    app.dependency_overrides.pop(google_auth.get_auth_client, None)


class TestGoogleSignIn:

    def test_login_redirects_to_google(self, client, auth_client):
        response = client.get("/auth/google/login", follow_redirects=False)

        assert response.status_code in (302, 307)
        assert response.headers["location"].startswith("https://accounts.google.com/")
        assert "state-123" in google_auth._oauth_states
        google_auth._oauth_states.clear()

    def test_callback_creates_user_and_returns_jwt(self, client, db, auth_client):
        google_auth._store_state("state-abc", {})

        response = client.get("/auth/google/callback", params={"code": "4/code", "state": "state-abc"})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "dan@example.com"
        assert body["user"]["google_connected"] is True

        user = db.query(User).filter(User.email == "dan@example.com").one()
        cred = db.query(OAuthCredential).filter(OAuthCredential.user_id == user.id).one()
        assert cred.refresh_token == "1//new"

        me = client.get("/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["id"] == str(user.id)

    def test_callback_updates_existing_user(self, client, db, sender, auth_client):
        auth_client.get_user_info.return_value = UserInfo(
            provider_user_id="google-alice@example.com", email="alice@example.com", name="Alice B."
        )
        google_auth._store_state("state-abc", {})

        response = client.get("/auth/google/callback", params={"code": "4/code", "state": "state-abc"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(sender.id)
        assert db.query(User).count() == 1

    def test_callback_rejects_unknown_state(self, client, auth_client):
        response = client.get("/auth/google/callback", params={"code": "4/code", "state": "forged"})

        assert response.status_code == 400
        auth_client.exchange_code_for_tokens.assert_not_called()

    def test_callback_with_google_error(self, client, auth_client):
        response = client.get("/auth/google/callback", params={"error": "access_denied"})

        assert response.status_code == 400

    def test_disconnect(self, client, db, sender, sender_headers, auth_client):
        response = client.delete("/auth/google", headers=sender_headers)

        assert response.status_code == 200
        auth_client.revoke_token.assert_awaited_once_with("1//refresh")
        assert db.query(OAuthCredential).filter(OAuthCredential.user_id == sender.id).count() == 0

        status = client.get("/auth/google/status", headers=sender_headers).json()
        assert status == {"connected": False, "scopes": []}


class TestUsers:

    def test_me(self, client, sender, sender_headers):
        response = client.get("/users/me", headers=sender_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "alice@example.com"
        assert body["google_connected"] is True
        assert body["stats"] == {"total_transfers": 0, "completed_transfers": 0, "failed_transfers": 0}

    def test_me_counts_transfers_on_both_sides(self, client, fake_drive, sender_headers, receiver_headers):
        fake_drive.failures["f2"] = APIError("Permission denied", status_code=403)
        created = client.post(
            "/transfers",
            json={"receiver": "bob@example.com", "files": manifest("f1", "f2")},
            headers=sender_headers,
        ).json()
        token = created["session_token"]
        client.post(f"/transfers/{token}/accept", headers=receiver_headers)
        client.post(f"/transfers/{token}/start", headers=sender_headers)
        wait_for_status(client, token, sender_headers, "completed")

        sender_stats = client.get("/users/me", headers=sender_headers).json()["stats"]
        receiver_stats = client.get("/users/me", headers=receiver_headers).json()["stats"]

        expected = {"total_transfers": 2, "completed_transfers": 1, "failed_transfers": 1}
        assert sender_stats == expected
        assert receiver_stats == expected

    def test_me_with_bad_token(self, client):
        response = client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


class TestDrive:

    def test_list_files(self, client, fake_drive, sender_headers):
        fake_drive.files = [
            DriveFile(id="f1", name="report.pdf", mime_type="application/pdf", size=2048),
            DriveFile(id="f2", name="notes.txt"),
        ]

        response = client.get("/drive/files", headers=sender_headers)

        assert response.status_code == 200
        body = response.json()
        assert [f["id"] for f in body["files"]] == ["f1", "f2"]
        assert body["files"][0]["mime_type"] == "application/pdf"
        assert fake_drive.tokens == ["ya29.alice@example.com"]

    def test_missing_file(self, client, fake_drive, sender_headers):
        response = client.get("/drive/files/missing", headers=sender_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
