from __future__ import annotations

from core.config import StorageCfg
from storage.base import AppendStore
from storage.filesystem import FileSystemAppendStore
from storage.redis_store import RedisAppendStore


def build_store(cfg: StorageCfg) -> AppendStore:
    if cfg.backend == "filesystem":
        return FileSystemAppendStore(cfg.connection, cfg.container)
    if cfg.backend == "redis":
        return RedisAppendStore(cfg.connection, cfg.container)
    raise ValueError(f"Unsupported storage backend: {cfg.backend}")
