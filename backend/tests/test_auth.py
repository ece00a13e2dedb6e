"""
Authentication and session tests.

Verifies:
- Login issues a bearer token, logout revokes it
- Unauthenticated and wrong-role calls are rejected (401/403)
- Deactivating a user kills their sessions
"""

from datetime import timedelta

import pytest

from conftest import PASSWORD, auth_headers
from enbic.models import SessionToken
from enbic.services import auth_service, session_service
from enbic.time_utils import utcnow


class TestPasswords:
    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(auth_service.PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password(PASSWORD, rounds=4)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("wrong", hashed)


class TestLogin:
    def test_login_returns_token(self, client, operator_user):
        response = client.post('/api/auth/login', json={"username": "operator", "password": PASSWORD})
        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["role"] == "operator"

        me = client.get('/api/auth/me', headers=auth_headers(data["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "operator"

    def test_wrong_password(self, client, operator_user):
        response = client.post('/api/auth/login', json={"username": "operator", "password": "nope"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Unauthenticated"

    def test_inactive_user_cannot_login(self, client, db_session, operator_user):
        operator_user.is_active = False
        db_session.commit()
        response = client.post('/api/auth/login', json={"username": "operator", "password": PASSWORD})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, operator_headers):
        assert client.post('/api/auth/logout', headers=operator_headers).status_code == 200
        assert client.get('/api/auth/me', headers=operator_headers).status_code == 401


class TestSessionValidation:
    def test_missing_and_bogus_tokens(self, client):
        assert client.get('/api/arns').status_code == 401
        assert client.get('/api/arns', headers=auth_headers("bogus")).status_code == 401

    def test_idle_session_is_revoked(self, db_session, operator_user):
        session, token = session_service.create_session(operator_user)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_valid_session_builds_actor(self, db_session, officer_user):
        _, token = session_service.create_session(officer_user)
        db_session.commit()

        context = session_service.validate_session(token)
        assert context.actor.role == "officer"
        assert context.actor.partition == officer_user.id


class TestUserAdmin:
    def test_admin_creates_user(self, client, admin_headers):
        response = client.post('/api/users', headers=admin_headers, json={
            "username": "newop", "password": PASSWORD, "role": "operator", "full_name": "New Op",
        })
        assert response.status_code == 201
        assert response.get_json()["user"]["username"] == "newop"

    def test_duplicate_username(self, client, admin_headers, operator_user):
        response = client.post('/api/users', headers=admin_headers, json={
            "username": "operator", "password": PASSWORD, "role": "operator",
        })
        assert response.status_code == 409

    def test_operator_cannot_manage_users(self, client, operator_headers):
        assert client.get('/api/users', headers=operator_headers).status_code == 403

    def test_deactivation_revokes_sessions(self, client, admin_headers, operator_user, operator_headers):
        response = client.patch(f'/api/users/{operator_user.id}', headers=admin_headers, json={"is_active": False})
        assert response.status_code == 200
        assert client.get('/api/auth/me', headers=operator_headers).status_code == 401
