"""
Authentication tests: login, token handling and the current user endpoint.
"""
from datetime import timedelta

from fastapi import status

from timesheets_api.auth.jwt_handler import JWTHandler, PasswordHandler

from .conftest import PASSWORD, auth_headers_for
from .test_base import BaseAPITest


class TestAuthentication(BaseAPITest):
    """Test cases for user authentication."""

    def test_login_success(self, client, user):
        response = client.post("/api/auth/login", json={"username": user.username, "password": PASSWORD})

        self.assert_success_response(response)
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["id"] == user.id
        assert data["user"]["role"] == "user"

        payload = JWTHandler.verify_token(data["access_token"])
        assert payload["sub"] == str(user.id)
        assert payload["type"] == "access"

    def test_login_token_grants_access(self, client, user):
        token = client.post(
            "/api/auth/login", json={"username": user.username, "password": PASSWORD}
        ).json()["access_token"]

        response = client.get("/api/timesheets", headers={"Authorization": f"Bearer {token}"})
        self.assert_success_response(response)

    def test_login_wrong_password(self, client, user):
        response = client.post("/api/auth/login", json={"username": user.username, "password": "wrong"})
        self.assert_error_response(response, status.HTTP_401_UNAUTHORIZED, "Invalid credentials")

    def test_login_unknown_user(self, client):
        response = client.post("/api/auth/login", json={"username": "nobody", "password": PASSWORD})
        self.assert_unauthorized(response)

    def test_login_inactive_user(self, client, make_user):
        inactive = make_user("sleepy", active=False)
        response = client.post("/api/auth/login", json={"username": inactive.username, "password": PASSWORD})
        self.assert_unauthorized(response)

    def test_login_missing_fields(self, client):
        response = client.post("/api/auth/login", json={"username": "john_user"})
        self.assert_validation_error(response, "password")

    def test_me(self, client, teamlead, teamlead_headers):
        response = client.get("/api/auth/me", headers=teamlead_headers)

        self.assert_success_response(response)
        assert response.json()["username"] == teamlead.username
        assert response.json()["role"] == "teamlead"
        assert response.json()["timezone"] == "UTC"

    def test_me_without_token(self, client):
        response = client.get("/api/auth/me")
        self.assert_error_response(response, status.HTTP_401_UNAUTHORIZED, "Could not validate credentials")
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_expired_token(self, client, user):
        token = JWTHandler.create_access_token(
            {"sub": str(user.id), "type": "access"}, expires_delta=timedelta(minutes=-1)
        )
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assert_unauthorized(response)

    def test_token_of_deactivated_user(self, client, db_session, user):
        headers = auth_headers_for(user)
        user.active = False
        db_session.commit()

        self.assert_unauthorized(client.get("/api/auth/me", headers=headers))


class TestPasswordHandler:

    def test_hash_and_verify(self, password_hash):
        assert PasswordHandler.verify_password(PASSWORD, password_hash)
        assert not PasswordHandler.verify_password("other", password_hash)
