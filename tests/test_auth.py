import asyncio
import hashlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clinic import auth, login_guard, store, users
from clinic.app import create_app
from clinic.models import ErrorKind
from clinic.settings import get_settings


@pytest.fixture()
def isolated_store(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DB_PATH", tmp_path / "test.db")
    monkeypatch.setattr(get_settings(), "login_delay_seconds", 0.0)
    store.initialize()


@pytest.fixture()
def client(isolated_store):
    with TestClient(create_app()) as test_client:
        yield test_client


def _register(username: str = "alice", password: str = "Secret123", confirm: str = "Secret123"):
    return asyncio.run(auth.register(username, password, confirm))


def _login(username: str, password: str):
    return asyncio.run(auth.login(username, password))


def test_register_stores_only_a_hash_and_does_not_log_in(isolated_store):
    result = _register()

    assert result.success
    assert "password" not in result.data
    stored = users.get_user_by_username("alice")
    assert stored["password"] != "Secret123"
    assert stored["password"] == hashlib.sha256(b"Secret123").hexdigest()
    assert stored["createdAt"]
    assert auth.current_session() is None


def test_register_rejections(isolated_store):
    assert _register(confirm="Secret124").message == "Passwords do not match"

    short = _register(username="al", password="abc", confirm="abc")
    assert short.error == ErrorKind.VALIDATION
    assert "Username must contain at least 3 characters" in short.errors
    assert "Password must contain at least 6 characters" in short.errors

    assert _register(password="abcdefg", confirm="abcdefg").error == ErrorKind.VALIDATION

    assert _register().success
    duplicate = _register()
    assert duplicate.error == ErrorKind.CONFLICT
    assert len(users.list_users()) == 1


def test_login_creates_a_session_and_logout_destroys_it(isolated_store):
    _register()

    result = _login("alice", "Secret123")

    assert result.success
    session = auth.current_session()
    assert session is not None
    assert session.username == "alice"
    assert result.data["id"] == session.id
    assert result.data["loginTime"] == session.login_time

    auth.logout()
    assert auth.current_session() is None
    auth.logout()


def test_bad_credentials_do_not_reveal_which_field_was_wrong(isolated_store):
    _register()

    wrong_password = _login("alice", "NotTheOne")
    unknown_user = _login("mallory", "Secret123")

    assert wrong_password.error == ErrorKind.AUTHENTICATION
    assert wrong_password.message == unknown_user.message == auth.BAD_CREDENTIALS_MSG
    assert auth.current_session() is None


def test_invalid_login_input_counts_as_a_failure(isolated_store):
    result = _login("alice", "short")

    assert result.error == ErrorKind.VALIDATION
    assert login_guard.failed_attempts("alice") == 1


def test_lockout_scenario_rejects_the_correct_password(isolated_store):
    assert _register().success
    assert auth.current_session() is None

    for _ in range(3):
        assert not _login("alice", "wrong").success
    assert login_guard.is_locked("alice")

    locked = _login("alice", "Secret123")

    assert locked.error == ErrorKind.LOCKOUT
    assert auth.current_session() is None
    assert login_guard.failed_attempts("alice") == 3


def test_concurrent_wrong_logins_are_capped_by_the_lockout(isolated_store):
    assert _register().success

    async def burst():
        return await asyncio.gather(*(auth.login("alice", f"wrong{n:04d}") for n in range(10)))

    results = asyncio.run(burst())

    kinds = [result.error for result in results]
    assert kinds.count(ErrorKind.AUTHENTICATION) == login_guard.MAX_FAILED_ATTEMPTS
    assert kinds.count(ErrorKind.LOCKOUT) == 10 - login_guard.MAX_FAILED_ATTEMPTS
    assert login_guard.failed_attempts("alice") == login_guard.MAX_FAILED_ATTEMPTS
    assert _login("alice", "Secret123").error == ErrorKind.LOCKOUT


def test_successful_login_clears_earlier_failures(isolated_store):
    _register()
    _login("alice", "wrong-password")
    _login("alice", "wrong-password")

    assert _login("alice", "Secret123").success
    assert login_guard.failed_attempts("alice") == 0


def test_http_session_cookie_lifecycle(client: TestClient):
    registered = client.post(
        "/auth/register",
        json={"username": "alice", "password": "Secret123", "confirmPassword": "Secret123"},
    )
    assert registered.status_code == 201
    assert client.get("/auth/me").status_code == 401

    login = client.post("/auth/login", json={"username": "alice", "password": "Secret123"})
    assert login.status_code == 200
    assert login.json()["username"] == "alice"

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == login.json()["id"]
    assert [u["username"] for u in client.get("/auth/users").json()] == ["alice"]

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_http_login_failures_and_lockout(client: TestClient):
    client.post(
        "/auth/register",
        json={"username": "alice", "password": "Secret123", "confirmPassword": "Secret123"},
    )

    bad = client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == auth.BAD_CREDENTIALS_MSG

    client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})
    client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})

    locked = client.post("/auth/login", json={"username": "alice", "password": "Secret123"})
    assert locked.status_code == 429
    assert int(locked.headers["Retry-After"]) > 0
