"""Append-only objects stored as plain files under a container directory.

Layout: {root}/{container}/{key} with a {key}.meta.json sidecar holding the
content metadata written when the object is created.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from storage.base import StorageError, normalize_name

T = TypeVar("T")

PUBLIC_MODE = 0o755
PRIVATE_MODE = 0o700
META_SUFFIX = ".meta.json"


class FileSystemAppendStore:
    def __init__(self, root: str | Path, container: str) -> None:
        self.root = Path(root)
        self.container = normalize_name(container)
        self.container_path = self.root / self.container

    def _object_path(self, key: str) -> Path:
        return self.container_path / normalize_name(key)

    def _meta_path(self, key: str) -> Path:
        return self.container_path / f"{normalize_name(key)}{META_SUFFIX}"

    async def _run(self, func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func)
        except OSError as exc:
            raise StorageError(f"{self.container}: {exc}") from exc

    async def ensure_container(self, public: bool = False) -> bool:
        def create() -> bool:
            if self.container_path.is_dir():
                return False
            self.container_path.mkdir(parents=True, exist_ok=True)
            self.container_path.chmod(PUBLIC_MODE if public else PRIVATE_MODE)
            return True

        return await self._run(create)

    async def exists(self, key: str) -> bool:
        return await self._run(self._object_path(key).is_file)

    async def create_if_absent(self, key: str, content_type: str, content_encoding: str) -> bool:
        path = self._object_path(key)
        meta_path = self._meta_path(key)

        def create() -> bool:
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                path.open("xb").close()
            except FileExistsError:
                return False
            meta = {"content_type": content_type, "content_encoding": content_encoding}
            try:
                with meta_path.open("x", encoding="utf-8") as fh:
                    json.dump(meta, fh)
            except FileExistsError:
                pass
            return True

        return await self._run(create)

    async def append(self, key: str, data: bytes) -> None:
        path = self._object_path(key)

        def write() -> None:
            if not path.is_file():
                raise FileNotFoundError(f"append target missing: {path}")
            with path.open("ab") as fh:
                fh.write(data)
                fh.flush()

        await self._run(write)

    def location(self, key: str) -> str:
        return str(self._object_path(key))

    async def close(self) -> None:
        return None
