from fastapi.testclient import TestClient
from sqlalchemy import select

from conftest import FakeGenAI, UpstreamError, data_url, image_response, png_bytes
from webtoon_studio.credits import get_or_create_profile
from webtoon_studio.db import Character, SceneImage
from webtoon_studio.storage import LocalStorage

SCENE_REQUEST = {
    "sceneDescription": "Hana runs across a rooftop at dusk",
    "storyText": "She was late again.",
    "artStyle": "soft watercolor",
    "addSoundEffects": False,
}


def _used(client: TestClient, headers: dict[str, str]) -> int:
    return client.get("/api/usage", headers=headers).json()["used"]


def test_scene_image_requires_auth(client: TestClient) -> None:
    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST)

    assert response.status_code == 401


def test_scene_image_requires_text(client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI) -> None:
    response = client.post(
        "/api/generate-scene-image",
        json={"sceneDescription": "x"},
        headers=auth_header,
    )

    assert response.status_code == 400
    assert genai_stub.calls == []


def test_scene_image_returns_data_url(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    image = png_bytes()
    genai_stub.queue(image_response(image, text="caption"))

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["image"] == data_url(image)
    assert data["effectsApplied"] is False
    assert "path" not in data
    assert response.headers["cache-control"] == "no-store"
    assert genai_stub.calls[0]["config"]["response_modalities"] == ["Text", "Image"]
    assert _used(client, auth_header) == 1


def test_scene_image_retries_quota_errors(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    genai_stub.queue(UpstreamError(429), UpstreamError(503), image_response(png_bytes()))

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 200
    assert len(genai_stub.calls) == 3
    assert _used(client, auth_header) == 1


def test_scene_image_gives_up_after_max_attempts(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    genai_stub.queue(UpstreamError(429), UpstreamError(429), UpstreamError(429))

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 429
    assert response.json()["error"] == "Model quota exceeded"
    assert len(genai_stub.calls) == 3
    assert _used(client, auth_header) == 0


def test_scene_image_does_not_retry_client_errors(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    genai_stub.queue(UpstreamError(400, "prompt blocked"))

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 502
    assert response.json()["details"]["upstreamStatus"] == 400
    assert len(genai_stub.calls) == 1
    assert _used(client, auth_header) == 0


def test_scene_image_without_image_is_refunded(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    genai_stub.queue(image_response(b"", text="I cannot draw that"))

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 502
    assert response.json()["error"] == "No image returned from model"
    assert response.json()["details"] == {"text": "I cannot draw that"}
    assert _used(client, auth_header) == 0


def test_scene_image_rejected_when_credits_exhausted(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI, session_factory
) -> None:  # noqa: ANN001
    with session_factory() as db:
        profile = get_or_create_profile(db, "user-1")
        profile.monthly_used = profile.monthly_base_limit
        db.commit()

    response = client.post("/api/generate-scene-image", json=SCENE_REQUEST, headers=auth_header)

    assert response.status_code == 429
    assert response.json() == {"error": "Monthly image limit reached", "details": {"remaining": 0}}
    assert genai_stub.calls == []


def test_scene_image_saved_to_project_scene(
    client: TestClient,
    auth_header: dict[str, str],
    genai_stub: FakeGenAI,
    project_id: str,
    storage: LocalStorage,
    session_factory,  # noqa: ANN001
) -> None:
    genai_stub.queue(image_response(png_bytes("blue")))
    reference = data_url(png_bytes("green"))

    response = client.post(
        "/api/generate-scene-image",
        json={
            **SCENE_REQUEST,
            "projectId": project_id,
            "sceneNo": 2,
            "characterImages": [{"name": "Hana", "dataUrl": reference}, "not-a-data-url"],
        },
        headers=auth_header,
    )

    assert response.status_code == 200
    path = response.json()["path"]
    assert path == f"users/user-1/projects/{project_id}/scenes/scene_2.png"
    assert storage.exists(path)
    parts = genai_stub.calls[0]["contents"][0]["parts"]
    assert len(parts) == 2
    assert parts[1]["inline_data"]["mime_type"] == "image/png"
    with session_factory() as db:
        row = db.execute(select(SceneImage).where(SceneImage.project_id == project_id)).scalar_one()
        assert row.scene_no == 2
        assert row.image_path == path


def test_scene_image_target_needs_both_fields(
    client: TestClient, auth_header: dict[str, str], project_id: str, genai_stub: FakeGenAI
) -> None:
    response = client.post(
        "/api/generate-scene-image",
        json={**SCENE_REQUEST, "projectId": project_id},
        headers=auth_header,
    )

    assert response.status_code == 400
    assert genai_stub.calls == []


def test_scene_image_applies_sound_effects(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    with_effects = png_bytes("yellow")
    genai_stub.queue(image_response(png_bytes()), image_response(with_effects))

    response = client.post(
        "/api/generate-scene-image",
        json={**SCENE_REQUEST, "addSoundEffects": True},
        headers=auth_header,
    )

    assert response.status_code == 200
    assert response.json()["effectsApplied"] is True
    assert response.json()["image"] == data_url(with_effects)
    assert _used(client, auth_header) == 1


def test_scene_image_sound_effects_failure_keeps_render(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    base = png_bytes()
    genai_stub.queue(image_response(base), UpstreamError(500))

    response = client.post(
        "/api/generate-scene-image",
        json={**SCENE_REQUEST, "addSoundEffects": True},
        headers=auth_header,
    )

    assert response.status_code == 200
    assert response.json()["effectsApplied"] is False
    assert response.json()["image"] == data_url(base)


def test_character_image_saved_to_project(
    client: TestClient,
    auth_header: dict[str, str],
    genai_stub: FakeGenAI,
    project_id: str,
    storage: LocalStorage,
    session_factory,  # noqa: ANN001
) -> None:
    genai_stub.queue(image_response(png_bytes()))

    response = client.post(
        "/api/generate-character-image",
        json={"name": "Hana Kim", "description": "A tall courier", "projectId": project_id},
        headers=auth_header,
    )

    assert response.status_code == 200
    path = response.json()["path"]
    assert path == f"users/user-1/projects/{project_id}/characters/hana-kim.png"
    assert storage.exists(path)
    with session_factory() as db:
        character = db.execute(select(Character).where(Character.project_id == project_id)).scalar_one()
        assert character.name == "Hana Kim"
        assert character.image_path == path


def test_character_with_new_art_without_project(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    image = png_bytes()
    genai_stub.queue(image_response(image, mime_type="image/png"))

    response = client.post(
        "/api/generate-character-with-newArt",
        json={"description": "A tall courier", "artStyle": "cel shaded"},
        headers=auth_header,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "image": data_url(image)}
    prompt = genai_stub.calls[0]["contents"][0]["parts"][0]["text"]
    assert "cel shaded" in prompt


def test_character_image_requires_description(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    response = client.post("/api/generate-character-image", json={"name": "Hana"}, headers=auth_header)

    assert response.status_code == 400
    assert genai_stub.calls == []


def test_edit_scene_image(
    client: TestClient,
    auth_header: dict[str, str],
    genai_stub: FakeGenAI,
    project_id: str,
    storage: LocalStorage,
) -> None:
    edited = png_bytes("purple")
    genai_stub.queue(image_response(edited))

    response = client.post(
        "/api/edit-scene-image",
        json={
            "imageDataUrl": data_url(png_bytes()),
            "instruction": "make it night",
            "projectId": project_id,
            "sceneNo": 1,
        },
        headers=auth_header,
    )

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert response.json()["image"] == data_url(edited)
    assert storage.exists(response.json()["path"])
    parts = genai_stub.calls[0]["contents"][0]["parts"]
    assert "make it night" in parts[0]["text"]
    assert parts[1]["inline_data"]["data"] == png_bytes()


def test_edit_scene_image_rejects_bad_data_url(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    response = client.post(
        "/api/edit-scene-image",
        json={"imageDataUrl": "data:image/png;base64,***", "instruction": "x"},
        headers=auth_header,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid imageDataUrl"
    assert genai_stub.calls == []


def test_remove_background_and_sound_effects(
    client: TestClient, auth_header: dict[str, str], genai_stub: FakeGenAI
) -> None:
    genai_stub.queue(image_response(png_bytes("white")), image_response(png_bytes("black")))
    source = data_url(png_bytes())

    removed = client.post("/api/remove-background", json={"imageDataUrl": source}, headers=auth_header)
    effects = client.post(
        "/api/add-sound-effects",
        json={"imageDataUrl": source, "storyText": "The door slammed."},
        headers=auth_header,
    )

    assert removed.status_code == 200
    assert effects.status_code == 200
    assert "The door slammed." in genai_stub.calls[1]["contents"][0]["parts"][0]["text"]
    assert _used(client, auth_header) == 2


def test_save_scene_image_manual(
    client: TestClient, auth_header: dict[str, str], project_id: str, storage: LocalStorage
) -> None:
    response = client.post(
        "/api/save-scene-image",
        json={"imageDataUrl": data_url(png_bytes()), "projectId": project_id, "sceneNo": 3},
        headers=auth_header,
    )

    assert response.status_code == 200
    path = response.json()["path"]
    assert path.endswith("scene_3_manual.png")
    assert storage.exists(path)


def test_delete_scene_removes_image(
    client: TestClient, auth_header: dict[str, str], project_id: str, storage: LocalStorage
) -> None:
    saved = client.post(
        "/api/save-scene-image",
        json={"imageDataUrl": data_url(png_bytes()), "projectId": project_id, "sceneNo": 1},
        headers=auth_header,
    )
    path = saved.json()["path"]

    response = client.post(
        "/api/delete-scene",
        json={"projectId": project_id, "sceneNo": 1},
        headers=auth_header,
    )

    assert response.json() == {"success": True}
    assert not storage.exists(path)
