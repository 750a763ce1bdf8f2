from fastapi import APIRouter

from .account.route import router as account_router
from .art_style.route import router as art_style_router
from .billing.route import router as billing_router
from .characters.route import router as characters_router
from .extract_text.route import router as extract_text_router
from .projects.route import router as projects_router
from .scenes.route import router as scenes_router
from .webtoon.analyze_story.route import router as analyze_story_router
from .webtoon.character_image.route import router as character_image_router
from .webtoon.edit_image.route import router as edit_image_router
from .webtoon.generate_scenes.route import router as generate_scenes_router
from .webtoon.insert_scene.route import router as insert_scene_router
from .webtoon.scene_image.route import router as scene_image_router

ROUTERS: list[APIRouter] = [
    account_router,
    projects_router,
    characters_router,
    art_style_router,
    scenes_router,
    analyze_story_router,
    generate_scenes_router,
    insert_scene_router,
    character_image_router,
    scene_image_router,
    edit_image_router,
    billing_router,
    extract_text_router,
]

__all__ = ["ROUTERS"]
