import asyncio
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from conftest import UpstreamError, data_url, image_response, png_bytes
from webtoon_studio.routes.webtoon.genai_helper import (
    extract_image_and_text,
    generate_image_with_retry,
    is_retryable,
    upstream_status_code,
)
from webtoon_studio.routes.webtoon.image_helper import normalize_to_png, select_reference_images


class _StatusError(Exception):
    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


class _SequenceModels:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = outcomes
        self.calls = 0

    def generate_content(self, *, model: str, contents, config):  # noqa: ANN001, ANN201
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def _plain_config(monkeypatch) -> None:  # noqa: ANN001
    from webtoon_studio.routes.webtoon import genai_helper

    monkeypatch.setattr(
        genai_helper,
        "genai",
        SimpleNamespace(types=SimpleNamespace(GenerateContentConfig=lambda **kwargs: kwargs)),
    )


def test_normalize_jpeg_to_png() -> None:
    buffer = io.BytesIO()
    Image.new("RGB", (3, 3), "blue").save(buffer, format="JPEG")

    data, mime_type = normalize_to_png(buffer.getvalue())

    assert mime_type == "image/png"
    assert data.startswith(b"\x89PNG")


def test_normalize_passes_through_garbage() -> None:
    assert normalize_to_png(b"garbage") == (b"garbage", "image/png")


def test_select_reference_images_respects_budget() -> None:
    small = data_url(png_bytes(size=(2, 2)))
    large = data_url(png_bytes(size=(64, 64)) + b"\x00" * 4000)
    budget = len(small.split(",", 1)[1]) * 2

    selected = select_reference_images([large, small, "data:image/png;base64,", small], budget)

    assert len(selected) == 2
    assert all(mime_type == "image/png" for _, mime_type in selected)


def test_select_reference_images_caps_count() -> None:
    reference = data_url(png_bytes())

    assert len(select_reference_images([reference] * 10, 10_000_000)) == 6


def test_upstream_status_code_variants() -> None:
    assert upstream_status_code(UpstreamError(503)) == 503
    assert upstream_status_code(_StatusError("RESOURCE_EXHAUSTED")) == 429
    assert upstream_status_code(ValueError("boom")) is None
    assert is_retryable(UpstreamError(429))
    assert is_retryable(UpstreamError(500))
    assert not is_retryable(UpstreamError(404))
    assert not is_retryable(ValueError("boom"))


def test_extract_image_prefers_last_inline_image() -> None:
    first = image_response(b"first", text="hello").parts
    second = image_response(b"second", mime_type="image/jpeg").parts

    data, mime_type, text = extract_image_and_text([*first, *second])

    assert data == b"second"
    assert mime_type == "image/jpeg"
    assert text == "hello"


def test_retry_backoff_is_linear(monkeypatch) -> None:  # noqa: ANN001
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", _sleep)
    models = _SequenceModels([UpstreamError(429), UpstreamError(500), "done"])

    result = asyncio.run(
        generate_image_with_retry(
            SimpleNamespace(models=models),
            "image-model",
            [],
            max_attempts=3,
            base_delay=2.0,
            label="test",
        )
    )

    assert result == "done"
    assert models.calls == 3
    assert delays == [2.0, 4.0]


def test_retry_stops_on_client_error() -> None:
    models = _SequenceModels([UpstreamError(400), "unused"])

    with pytest.raises(UpstreamError):
        asyncio.run(
            generate_image_with_retry(
                SimpleNamespace(models=models),
                "image-model",
                [],
                max_attempts=3,
                base_delay=0,
                label="test",
            )
        )

    assert models.calls == 1
