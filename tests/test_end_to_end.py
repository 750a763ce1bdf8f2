import json

from fastapi.testclient import TestClient

from conftest import FakeGenAI, data_url, image_response, png_bytes, text_response
from webtoon_studio.storage import LocalStorage

STORY = "Hana delivers parcels across a floating city. One night a parcel starts talking."


def test_story_to_panels(
    client: TestClient,
    auth_header: dict[str, str],
    genai_stub: FakeGenAI,
    storage: LocalStorage,
) -> None:
    project = client.post("/api/projects", json={"title": "Talking Parcel"}, headers=auth_header).json()["project"]
    project_id = project["id"]
    client.patch("/api/projects", json={"id": project_id, "story": STORY, "steps": 1}, headers=auth_header)

    genai_stub.queue(
        text_response(
            json.dumps(
                {
                    "story_title": "Talking Parcel",
                    "characters": [
                        {"id": "hana", "name": "Hana", "Character_Description": "Courier with a red scarf"},
                    ],
                }
            )
        )
    )
    analysis = client.post("/api/analyze-story", json={"story": STORY}, headers=auth_header).json()
    hana = analysis["characters"][0]

    genai_stub.queue(image_response(png_bytes("red")))
    sheet = client.post(
        "/api/generate-character-image",
        json={"name": hana["name"], "description": hana["description"], "projectId": project_id},
        headers=auth_header,
    ).json()
    assert storage.exists(sheet["path"])

    client.post(
        "/api/art-style",
        json={"projectId": project_id, "description": "soft watercolor"},
        headers=auth_header,
    )

    genai_stub.queue(
        text_response(
            json.dumps(
                {
                    "total_scenes": 2,
                    "scenes": {
                        "scene_1": {"Story_Text": "Hana flies.", "Scene_Description": "Skyline at night"},
                        "scene_2": {"Story_Text": "It talks.", "Scene_Description": "Close-up on parcel"},
                    },
                }
            )
        )
    )
    scenes = client.post("/api/generate-scenes", json={"story": STORY}, headers=auth_header).json()["scenes"]
    saved = client.post(
        "/api/generated-scenes",
        json={"projectId": project_id, "scenes": scenes},
        headers=auth_header,
    ).json()
    assert [row["scene_no"] for row in saved["scenes"]] == [1, 2]
    listed_scenes = client.get("/api/generated-scenes", params={"projectId": project_id}, headers=auth_header)
    assert [row["story_text"] for row in listed_scenes.json()["scenes"]] == ["Hana flies.", "It talks."]

    genai_stub.queue(image_response(png_bytes("navy")), image_response(png_bytes("orange")))
    panel = client.post(
        "/api/generate-scene-image",
        json={
            "sceneDescription": scenes["scene_1"]["Scene_Description"],
            "storyText": scenes["scene_1"]["Story_Text"],
            "characterImages": [{"name": "Hana", "dataUrl": sheet["image"]}],
            "artStyle": "soft watercolor",
            "projectId": project_id,
            "sceneNo": 1,
        },
        headers=auth_header,
    )
    assert panel.status_code == 200
    assert panel.json()["effectsApplied"] is True
    assert panel.json()["image"] == data_url(png_bytes("orange"))
    assert storage.exists(panel.json()["path"])

    usage = client.get("/api/usage", headers=auth_header).json()
    assert usage["used"] == 2
    assert usage["remaining"] == 48

    client.post("/api/publish", json={"projectId": project_id}, headers=auth_header)
    listed = client.get("/api/projects", headers=auth_header).json()["projects"]
    assert listed[0]["status"] == "published"

    client.delete("/api/projects", params={"id": project_id}, headers=auth_header)
    assert not storage.exists(panel.json()["path"])
    assert not storage.exists(sheet["path"])
