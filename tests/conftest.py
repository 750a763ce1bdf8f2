import base64
import io
from collections.abc import Iterator
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from webtoon_studio.auth import get_auth_client
from webtoon_studio.config import WebtoonConfig
from webtoon_studio.db import get_session_factory, init_db
from webtoon_studio.main import create_app
from webtoon_studio.storage import LocalStorage


class UpstreamError(Exception):
    """Stands in for a GenAI SDK APIError carrying an HTTP status."""

    def __init__(self, code: int, message: str = "upstream failure") -> None:
        super().__init__(message)
        self.code = code


class _FakeModels:
    def __init__(self) -> None:
        self.outcomes: list[Any] = []
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, *, model: str, contents, config) -> Any:  # noqa: ANN001
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.outcomes:
            raise AssertionError("unexpected model call")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeGenAI:
    def __init__(self) -> None:
        self.models = _FakeModels()
        self.api_keys: list[str] = []

    def queue(self, *outcomes: Any) -> None:
        self.models.outcomes.extend(outcomes)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.models.calls

    def module(self) -> SimpleNamespace:
        def _client(*, api_key: str) -> SimpleNamespace:
            self.api_keys.append(api_key)
            return SimpleNamespace(models=self.models)

        return SimpleNamespace(
            Client=_client,
            types=SimpleNamespace(GenerateContentConfig=lambda **kwargs: kwargs),
        )


class FakeAuth:
    """Accepts bearer tokens of the form ``token-<user id>``."""

    def __init__(self) -> None:
        self.session_response: Any = None
        self.code_verifiers: list[str | None] = []

    def get_user(self, token: str) -> SimpleNamespace:
        if not token.startswith("token-"):
            raise ValueError("invalid token")
        user_id = token[len("token-"):]
        return SimpleNamespace(user=make_user(user_id))

    def exchange_code_for_session(self, code: str, code_verifier: str | None = None) -> Any:
        self.code_verifiers.append(code_verifier)
        if code != "good-code":
            raise ValueError("invalid code")
        return self.session_response

    def verify_otp(self, token_hash: str, otp_type: str) -> Any:
        if token_hash != "good-hash":
            raise ValueError("invalid token hash")
        return self.session_response


def make_user(user_id: str, **metadata: Any) -> SimpleNamespace:
    return SimpleNamespace(id=user_id, email=f"{user_id}@example.com", user_metadata=metadata)


def text_response(text: str) -> SimpleNamespace:
    part = SimpleNamespace(text=text)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def image_response(data: bytes, mime_type: str = "image/png", text: str | None = None) -> SimpleNamespace:
    parts = []
    if text:
        parts.append(SimpleNamespace(text=text, inline_data=None))
    parts.append(SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type)))
    return SimpleNamespace(parts=parts)


def png_bytes(color: str = "red", size: tuple[int, int] = (4, 4)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


@pytest.fixture
def config(tmp_path) -> WebtoonConfig:  # noqa: ANN001
    return WebtoonConfig(
        environment="test",
        database_url="sqlite://",
        storage_backend="local",
        media_dir=str(tmp_path / "media"),
        gemini_api_key="test-gemini-key",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        cron_secret="cron-secret",
        image_retry_base_delay=0,
    )


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def app(config: WebtoonConfig, fake_auth: FakeAuth):  # noqa: ANN201
    init_db(config.database_url, poolclass=StaticPool)
    application = create_app(config, initialise_db=False)
    application.dependency_overrides[get_auth_client] = lambda: fake_auth
    return application


@pytest.fixture
def client(app) -> Iterator[TestClient]:  # noqa: ANN001
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_factory(app) -> sessionmaker[Session]:  # noqa: ANN001
    return get_session_factory()


@pytest.fixture
def storage(config: WebtoonConfig) -> LocalStorage:
    return LocalStorage(config.media_dir)


@pytest.fixture
def auth_header() -> dict[str, str]:
    return {"Authorization": "Bearer token-user-1"}


@pytest.fixture
def other_auth_header() -> dict[str, str]:
    return {"Authorization": "Bearer token-user-2"}


@pytest.fixture
def genai_stub(monkeypatch) -> FakeGenAI:  # noqa: ANN001
    from webtoon_studio.routes.webtoon import genai_helper

    fake = FakeGenAI()
    monkeypatch.setattr(genai_helper, "genai", fake.module())
    return fake


@pytest.fixture
def project_id(client: TestClient, auth_header: dict[str, str]) -> str:
    response = client.post("/api/projects", json={"title": "Moon Rabbit"}, headers=auth_header)
    assert response.status_code == 200
    return response.json()["project"]["id"]
