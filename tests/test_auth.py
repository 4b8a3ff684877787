"""Tests for Supabase Auth backed registration, login and token checks."""

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from app.modules.auth.service import AuthService


def auth_user(user_id="user-a", email="alice@example.com", full_name=None):
    metadata = {"full_name": full_name} if full_name else {}
    return SimpleNamespace(id=user_id, email=email, user_metadata=metadata, app_metadata={})


class TestRegister:
    def test_register_creates_profile(self, client, db):
        db.auth.sign_up.return_value = SimpleNamespace(
            user=auth_user(),
            session=SimpleNamespace(access_token="jwt-token"),
        )

        response = client.post("/api/auth/register", json={"email": "alice@example.com", "password": "secret123"})

        assert response.status_code == 201
        data = response.json()
        assert data["access_token"] == "jwt-token"
        assert data["user"]["name"] == "alice"
        assert db.rows("users")[0]["email"] == "alice@example.com"

    def test_existing_user(self, client, db):
        db.auth.sign_up.side_effect = Exception("User already registered")

        response = client.post("/api/auth/register", json={"email": "alice@example.com", "password": "secret123"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "User already exists"}

    def test_invalid_email(self, client):
        response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "x"})

        assert response.status_code == 422


class TestLogin:
    def test_login_returns_token(self, client, db):
        db.auth.sign_in_with_password.return_value = SimpleNamespace(
            user=auth_user(full_name="Alice Liddell"),
            session=SimpleNamespace(access_token="jwt-token"),
        )

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret123"})

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"
        assert response.json()["user"]["name"] == "Alice Liddell"

    def test_bad_credentials(self, client, db):
        db.auth.sign_in_with_password.side_effect = Exception("Invalid login credentials")

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"


class TestProfile:
    def test_me_falls_back_to_email_name(self, client):
        response = client.get("/api/auth/me")

        assert response.json() == {"id": "user-a", "email": "alice@example.com", "name": "alice"}

    def test_me_prefers_profile_row(self, client, db):
        db.add_row("users", {"id": "user-a", "email": "alice@example.com", "name": "Alice"})

        assert client.get("/api/auth/me").json()["name"] == "Alice"


class TestCurrentUser:
    def test_identity_is_cached_per_token(self, db):
        db.auth.get_user.return_value = SimpleNamespace(user=auth_user())
        service = AuthService(db)

        first = service.get_current_user("cached-token")
        second = service.get_current_user("cached-token")

        assert first == second
        assert first["id"] == "user-a"
        assert db.auth.get_user.call_count == 1

    def test_expired_token(self, db):
        db.auth.get_user.side_effect = Exception("JWT expired")

        with pytest.raises(HTTPException) as exc:
            AuthService(db).get_current_user("expired-token")

        assert exc.value.status_code == 401

    def test_logout_forgets_cached_identity(self, db):
        db.auth.get_user.return_value = SimpleNamespace(user=auth_user())
        service = AuthService(db)
        service.get_current_user("logout-token")

        assert service.logout("logout-token") is True
        service.get_current_user("logout-token")

        assert db.auth.get_user.call_count == 2
