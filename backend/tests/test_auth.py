import logging
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import PASSWORD
from household_budget.auth_utils import hash_password, issue_token, verify_password
from household_budget.config import settings
from household_budget.errors import ApiError
from household_budget.services.auth import LOCKOUT, RESET_TOKEN_TTL, AuthService, password_errors

NEW_PASSWORD = "another long passphrase here"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def _reset_token(caplog: pytest.LogCaptureFixture) -> str:
    records = [r for r in caplog.records if r.msg.startswith("password reset token")]
    assert records
    return records[-1].args[1]


def test_password_hash_roundtrip() -> None:
    stored = hash_password(PASSWORD)
    assert PASSWORD not in stored
    assert verify_password(PASSWORD, stored)
    assert not verify_password("wrong password entirely", stored)
    assert not verify_password(PASSWORD, "not-a-hash")


def test_password_rules() -> None:
    assert password_errors(PASSWORD) == []
    assert password_errors("short") == ["Password must be at least 15 characters long"]
    assert "Password is too common or weak" in password_errors("123456789012345")
    assert password_errors("abababababababab") == ["Password must contain more variety"]


def test_register_login_and_me(client: TestClient) -> None:
    reg = client.post("/api/v1/auth/register", json={"username": "Alice", "password": PASSWORD})
    assert reg.status_code == 201
    assert reg.json()["user"]["username"] == "alice"

    login = client.post("/api/v1/auth/login", json={"username": "ALICE", "password": PASSWORD})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['token']}"}

    me = client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "alice"
    assert me.json()["user"]["lastLogin"] is not None
    assert "passwordHash" not in me.json()["user"]


def test_register_rejects_duplicates_and_weak_passwords(client: TestClient) -> None:
    assert client.post("/api/v1/auth/register", json={"username": "bob", "password": PASSWORD}).status_code == 201
    dup = client.post("/api/v1/auth/register", json={"username": "BOB", "password": PASSWORD})
    assert dup.status_code == 400
    assert dup.json() == {"success": False, "error": "Username already exists"}

    weak = client.post("/api/v1/auth/register", json={"username": "carol", "password": "short"})
    assert weak.status_code == 400
    assert weak.json()["error"] == "Password must be at least 15 characters long"

    bad_name = client.post("/api/v1/auth/register", json={"username": "no spaces", "password": PASSWORD})
    assert bad_name.status_code == 400
    assert bad_name.json()["error"] == "Invalid request data"


def test_login_with_wrong_password(client: TestClient, auth_headers: dict[str, str]) -> None:
    res = client.post("/api/v1/auth/login", json={"username": "tester", "password": "definitely not it"})
    assert res.status_code == 401
    assert res.json()["error"] == "Invalid username or password"
    unknown = client.post("/api/v1/auth/login", json={"username": "ghost", "password": PASSWORD})
    assert unknown.status_code == 401
    assert unknown.json()["error"] == "Invalid username or password"


def test_lockout_after_repeated_failures(store) -> None:
    clock = FakeClock()
    auth = AuthService(store, clock=clock)
    auth.register("dave", PASSWORD)
    for _ in range(5):
        with pytest.raises(ApiError) as exc:
            auth.login("dave", "wrong wrong wrong")
        assert exc.value.status_code == 401
    assert auth.failed_attempts("dave") == 5

    with pytest.raises(ApiError) as exc:
        auth.login("dave", PASSWORD)
    assert exc.value.status_code == 429

    clock.advance(LOCKOUT + timedelta(seconds=1))
    assert auth.login("dave", PASSWORD)["user"]["username"] == "dave"
    assert auth.failed_attempts("dave") == 0


def test_successful_login_clears_failures(store) -> None:
    auth = AuthService(store, clock=FakeClock())
    auth.register("erin", PASSWORD)
    for _ in range(3):
        with pytest.raises(ApiError):
            auth.login("erin", "wrong wrong wrong")
    auth.login("erin", PASSWORD)
    assert auth.failed_attempts("erin") == 0
    auth.reset_rate_limiting()


def test_missing_and_invalid_tokens(client: TestClient) -> None:
    res = client.get("/api/v1/auth/me")
    assert res.status_code == 401
    assert res.json()["error"] == "No token provided"

    res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 401
    assert res.json()["error"] == "Invalid token"

    expired = issue_token("u1", "someone", settings.jwt_secret, -1)
    res = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401
    assert res.json()["error"] == "Token expired"

    forged = issue_token("u1", "someone", "some-other-secret", 1)
    res = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {forged}"})
    assert res.status_code == 401


def test_refresh_verify_and_logout(client: TestClient, auth_headers: dict[str, str]) -> None:
    refreshed = client.post("/api/v1/auth/refresh", headers=auth_headers)
    assert refreshed.status_code == 200
    new_headers = {"Authorization": f"Bearer {refreshed.json()['token']}"}

    verify = client.get("/api/v1/auth/verify", headers=new_headers)
    assert verify.status_code == 200
    assert verify.json()["valid"] is True
    assert verify.json()["user"]["username"] == "tester"

    logout = client.post("/api/v1/auth/logout", headers=new_headers)
    assert logout.json() == {"success": True, "message": "Logged out successfully"}


def test_change_password(client: TestClient, auth_headers: dict[str, str]) -> None:
    wrong = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": "not my password", "newPassword": NEW_PASSWORD},
        headers=auth_headers,
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"] == "Current password is incorrect"

    weak = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "tiny"},
        headers=auth_headers,
    )
    assert weak.status_code == 400

    ok = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": NEW_PASSWORD},
        headers=auth_headers,
    )
    assert ok.status_code == 200
    assert client.post("/api/v1/auth/login", json={"username": "tester", "password": PASSWORD}).status_code == 401
    assert client.post("/api/v1/auth/login", json={"username": "tester", "password": NEW_PASSWORD}).status_code == 200


def test_password_reset_flow(
    client: TestClient, auth_headers: dict[str, str], caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="household_budget.services.auth"):
        res = client.post("/api/v1/auth/request-reset", json={"username": "tester"})
    assert res.status_code == 200
    token = _reset_token(caplog)

    bad = client.post(
        "/api/v1/auth/reset-password",
        json={"username": "tester", "token": "wrong-token", "newPassword": NEW_PASSWORD},
    )
    assert bad.status_code == 400
    assert bad.json()["error"] == "Invalid or expired reset token"

    ok = client.post(
        "/api/v1/auth/reset-password",
        json={"username": "tester", "token": token, "newPassword": NEW_PASSWORD},
    )
    assert ok.status_code == 200
    assert client.post("/api/v1/auth/login", json={"username": "tester", "password": NEW_PASSWORD}).status_code == 200

    reused = client.post(
        "/api/v1/auth/reset-password",
        json={"username": "tester", "token": token, "newPassword": PASSWORD},
    )
    assert reused.status_code == 400


def test_reset_for_unknown_user_looks_successful(client: TestClient) -> None:
    res = client.post("/api/v1/auth/request-reset", json={"username": "nobody"})
    assert res.status_code == 200
    assert res.json()["success"] is True


def test_reset_token_expires(store, caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    auth = AuthService(store, clock=clock)
    auth.register("frank", PASSWORD)
    with caplog.at_level(logging.WARNING, logger="household_budget.services.auth"):
        auth.request_reset("frank")
    token = _reset_token(caplog)
    clock.advance(RESET_TOKEN_TTL + timedelta(minutes=1))
    with pytest.raises(ApiError) as exc:
        auth.reset_password("frank", token, NEW_PASSWORD)
    assert exc.value.message == "Invalid or expired reset token"


def test_stale_failure_counters_are_pruned(store) -> None:
    clock = FakeClock()
    auth = AuthService(store, clock=clock)
    for name in ("ghost1", "ghost2", "ghost3"):
        with pytest.raises(ApiError):
            auth.login(name, "whatever whatever")
    assert auth.tracked_usernames() == ["ghost1", "ghost2", "ghost3"]

    clock.advance(LOCKOUT + timedelta(seconds=1))
    with pytest.raises(ApiError):
        auth.login("ghost4", "whatever whatever")
    assert auth.tracked_usernames() == ["ghost4"]


def test_failures_outside_window_do_not_lock(store) -> None:
    clock = FakeClock()
    auth = AuthService(store, clock=clock)
    auth.register("gina", PASSWORD)
    for _ in range(4):
        with pytest.raises(ApiError):
            auth.login("gina", "wrong wrong wrong")
    clock.advance(LOCKOUT + timedelta(minutes=1))
    with pytest.raises(ApiError) as exc:
        auth.login("gina", "wrong wrong wrong")
    assert exc.value.status_code == 401
    assert auth.failed_attempts("gina") == 1
    assert auth.login("gina", PASSWORD)["user"]["username"] == "gina"
