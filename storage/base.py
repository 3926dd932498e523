from __future__ import annotations

from typing import Protocol


class StorageError(Exception):
    """Transient failure reported by an append store backend."""


def normalize_name(name: str) -> str:
    """Map a container or object name onto the characters backends accept."""

    return name.replace(".", "-").lower()


class AppendStore(Protocol):
    """Append-only object storage.

    Implementations raise ``StorageError`` for transport or backend failures
    and let programming errors propagate unchanged.
    """

    async def ensure_container(self, public: bool = False) -> bool:
        """Create the container if missing. Returns True if it was created."""
        ...

    async def exists(self, key: str) -> bool: ...

    async def create_if_absent(self, key: str, content_type: str, content_encoding: str) -> bool:
        """Create an empty object with content metadata.

        Returns False when another writer created it first.
        """
        ...

    async def append(self, key: str, data: bytes) -> None: ...

    def location(self, key: str) -> str: ...

    async def close(self) -> None: ...
