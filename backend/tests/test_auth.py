import threading

import jwt
import pytest

from app.config import settings
from app.services import auth_service as auth_module
from app.services.auth_service import auth_service
from app.utils import security


class TestAuth:
    def _register(self, client, email="alice@example.com", password="secret-password"):
        return client.post("/api/auth/register", json={
            "email": email,
            "password": password,
            "firstName": "Alice",
            "lastName": "Jones",
        })

    def test_register(self, client):
        r = self._register(client)
        assert r.status_code == 201
        data = r.json()
        assert data["user"]["email"] == "alice@example.com"
        assert data["user"]["firstName"] == "Alice"
        assert data["user"]["lastName"] == "Jones"
        assert "passwordHash" not in data["user"]

        claims = jwt.decode(data["token"], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        assert claims["userId"] == data["user"]["id"]
        assert claims["email"] == "alice@example.com"

    def test_register_duplicate_email(self, client):
        self._register(client)
        r = self._register(client, email="Alice@Example.com")
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "USER_EXISTS"

    def test_register_short_password(self, client):
        r = self._register(client, password="123")
        assert r.status_code == 400
        error = r.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"][0]["field"] == "password"

    def test_login(self, client):
        self._register(client)
        r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret-password"})
        assert r.status_code == 200
        assert r.json()["user"]["email"] == "alice@example.com"
        assert r.json()["token"]

    def test_login_wrong_password(self, client):
        self._register(client)
        r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_login_unknown_user(self, client):
        r = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "whatever"})
        assert r.status_code == 401

    def test_expired_token_rejected(self, client):
        token = jwt.encode({"userId": 1, "email": "a@b.c", "exp": 0}, settings.jwt_secret, algorithm="HS256")
        r = client.get("/api/documents", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "INVALID_TOKEN"

    def test_bearer_scheme_is_case_insensitive(self, client):
        token = self._register(client).json()["token"]
        for scheme in ("bearer", "BEARER", "Bearer"):
            r = client.get("/api/documents", headers={"Authorization": f"{scheme} {token}"})
            assert r.status_code == 200, scheme

    def test_other_schemes_rejected(self, client):
        token = self._register(client).json()["token"]
        r = client.get("/api/documents", headers={"Authorization": f"Basic {token}"})
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "NO_TOKEN"

    def test_health(self, client):
        r = client.get("/health")
        assert r.json()["status"] == "ok"


class TestPasswordHashingOffLoop:
    @pytest.mark.asyncio
    async def test_hash_and_verify_run_in_worker_threads(self, test_db, monkeypatch):
        loop_thread = threading.get_ident()
        seen = []

        def recording_hash(password):
            seen.append(("hash", threading.get_ident()))
            return security.hash_password(password)

        def recording_verify(stored_hash, password):
            seen.append(("verify", threading.get_ident()))
            return security.verify_password(stored_hash, password)

        monkeypatch.setattr(auth_module, "hash_password", recording_hash)
        monkeypatch.setattr(auth_module, "verify_password", recording_verify)

        async with test_db() as db:
            await auth_service.register(db, "frank@example.com", "secret-password", "Frank", "Moss")
            result = await auth_service.login(db, "frank@example.com", "secret-password")

        assert result["user"]["email"] == "frank@example.com"
        assert [name for name, _ in seen] == ["hash", "verify"]
        assert all(ident != loop_thread for _, ident in seen)
