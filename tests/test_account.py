from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAuth, make_user
from webtoon_studio.routes.account.route import safe_next_path


def _signed_in(user_id: str = "user-1") -> SimpleNamespace:
    user = make_user(user_id, full_name="Hana Kim", avatar_url="https://img.test/hana.png")
    session = SimpleNamespace(access_token="access-123", expires_in=3600, user=user)
    return SimpleNamespace(session=session, user=user)


def test_profile_created_on_first_read(client: TestClient, auth_header: dict[str, str]) -> None:
    response = client.get("/api/profile", headers=auth_header)

    data = response.json()
    assert data["profile"]["user_id"] == "user-1"
    assert data["profile"]["plan"] == "free"
    assert data["credits"]["remaining"] == 50


def test_profile_upsert_keeps_usage(client: TestClient, auth_header: dict[str, str]) -> None:
    client.post("/api/usage", headers=auth_header)

    response = client.post("/api/profile", headers=auth_header)

    assert response.json()["profile"]["email"] == "user-1@example.com"
    assert response.json()["credits"]["used"] == 1


def test_auth_callback_sets_cookie_and_profile(
    client: TestClient, fake_auth: FakeAuth, auth_header: dict[str, str]
) -> None:
    fake_auth.session_response = _signed_in()

    response = client.get(
        "/auth/callback",
        params={"code": "good-code", "next": "/dashboard"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "http://testserver/dashboard"
    assert "sb-access-token=access-123" in response.headers["set-cookie"]
    profile = client.get("/api/profile", headers=auth_header).json()["profile"]
    assert profile["full_name"] == "Hana Kim"


def test_auth_callback_failure(client: TestClient) -> None:
    response = client.get("/auth/callback", params={"code": "bad-code"}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "http://testserver/auth/auth-code-error"


def test_auth_callback_ignores_offsite_next(client: TestClient, fake_auth: FakeAuth) -> None:
    fake_auth.session_response = _signed_in()

    response = client.get(
        "/auth/callback",
        params={"code": "good-code", "next": "//evil.test"},
        follow_redirects=False,
    )

    assert response.headers["location"] == "http://testserver/"


def test_auth_confirm(client: TestClient, fake_auth: FakeAuth) -> None:
    fake_auth.session_response = _signed_in()

    ok = client.get(
        "/auth/confirm",
        params={"token_hash": "good-hash", "type": "email", "next": "/projects"},
        follow_redirects=False,
    )
    failed = client.get("/auth/confirm", params={"token_hash": "nope", "type": "email"}, follow_redirects=False)

    assert ok.headers["location"] == "/projects"
    assert failed.headers["location"] == "/error"


def test_session_cookie_authenticates(client: TestClient) -> None:
    client.cookies.set("sb-access-token", "token-user-3")

    response = client.get("/api/projects")

    assert response.status_code == 200


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "/"),
        ("/dashboard", "/dashboard"),
        ("https://evil.test", "/"),
        ("//evil.test", "/"),
        ("/\\evil.test", "/"),
    ],
)
def test_safe_next_path(value: str | None, expected: str) -> None:
    assert safe_next_path(value) == expected


def test_auth_callback_passes_code_verifier_cookie(
    client: TestClient, fake_auth: FakeAuth, config  # noqa: ANN001
) -> None:
    config.auth_storage_key = "sb-abcd-auth-token"
    fake_auth.session_response = _signed_in()
    client.cookies.set("sb-abcd-auth-token-code-verifier", "base64-InZlcmlmaWVyLTEyMyI")

    response = client.get("/auth/callback", params={"code": "good-code"}, follow_redirects=False)

    assert response.status_code == 303
    assert fake_auth.code_verifiers == ["verifier-123"]
