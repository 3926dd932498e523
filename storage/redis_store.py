from __future__ import annotations

from collections.abc import Awaitable
from typing import cast

from redis.asyncio import Redis
from redis.exceptions import RedisError

from storage.base import StorageError, normalize_name


class RedisAppendStore:
    """Append-only objects kept as Redis strings grown with APPEND.

    Keys: ``{container}/{key}`` for the data, ``{container}/{key}:meta`` for the
    content metadata hash and ``{container}`` for the container marker.
    """

    def __init__(self, url: str, container: str, client: Redis | None = None) -> None:
        self._url = url
        self.container = normalize_name(container)
        self._client = client

    async def _get_client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self._url)
        return self._client

    def _data_key(self, key: str) -> str:
        return f"{self.container}/{normalize_name(key)}"

    async def ensure_container(self, public: bool = False) -> bool:
        client = await self._get_client()
        try:
            created = await cast(
                Awaitable[int], client.hsetnx(self.container, "public", "1" if public else "0")
            )
        except RedisError as exc:
            raise StorageError(f"{self.container}: {exc}") from exc
        return bool(created)

    async def exists(self, key: str) -> bool:
        client = await self._get_client()
        try:
            return bool(await client.exists(self._data_key(key)))
        except RedisError as exc:
            raise StorageError(f"{self._data_key(key)}: {exc}") from exc

    async def create_if_absent(self, key: str, content_type: str, content_encoding: str) -> bool:
        client = await self._get_client()
        data_key = self._data_key(key)
        meta_key = f"{data_key}:meta"
        try:
            created = await client.set(data_key, b"", nx=True)
            await cast(Awaitable[int], client.hsetnx(meta_key, "content_type", content_type))
            await cast(
                Awaitable[int], client.hsetnx(meta_key, "content_encoding", content_encoding)
            )
        except RedisError as exc:
            raise StorageError(f"{data_key}: {exc}") from exc
        return bool(created)

    async def append(self, key: str, data: bytes) -> None:
        client = await self._get_client()
        try:
            await client.append(self._data_key(key), data)
        except RedisError as exc:
            raise StorageError(f"{self._data_key(key)}: {exc}") from exc

    def location(self, key: str) -> str:
        return f"redis:{self._data_key(key)}"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
