"""Object storage for rendered images.

Two backends share one small interface: Supabase Storage for deployments and a
local directory for development and tests. Paths are bucket-relative, e.g.
``users/<uid>/projects/<pid>/scenes/scene_3.png``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from fastapi import Depends

from webtoon_studio.auth.supabase import create_service_client
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.log_config import logger


class ObjectStorage(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> str: ...

    def remove(self, paths: list[str]) -> None: ...


class StorageError(RuntimeError):
    """Raised when an upload fails or a path escapes the storage root."""


class SupabaseStorage:
    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    def _bucket_api(self) -> Any:
        return self._client.storage.from_(self._bucket)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self._bucket_api().upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true"},
            )
        except Exception as exc:
            raise StorageError(str(exc)) from exc
        return path

    def remove(self, paths: list[str]) -> None:
        if paths:
            self._bucket_api().remove(paths)


class LocalStorage:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        return path

    def remove(self, paths: list[str]) -> None:
        for path in paths:
            self._resolve(path).unlink(missing_ok=True)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()


def get_storage(config: WebtoonConfig = Depends(get_config)) -> ObjectStorage:
    if config.storage_backend == "supabase":
        client = create_service_client(config)
        return SupabaseStorage(client, config.storage_bucket)
    return LocalStorage(config.media_dir)


def remove_quietly(storage: ObjectStorage, paths: list[str]) -> None:
    """Delete superseded objects; failures are logged and not raised."""
    paths = [path for path in paths if path]
    if not paths:
        return
    try:
        storage.remove(paths)
    except Exception as exc:
        logger.warning("storage.remove failed paths=%s error=%s", paths, exc)


def scene_image_path(user_id: str, project_id: str, scene_no: int, *, manual: bool = False) -> str:
    suffix = "_manual" if manual else ""
    return f"users/{user_id}/projects/{project_id}/scenes/scene_{scene_no}{suffix}.png"


def character_image_path(user_id: str, project_id: str, slug: str) -> str:
    return f"users/{user_id}/projects/{project_id}/characters/{slug}.png"
