from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal, cast

from pydantic import BaseModel, Field, model_validator


class AppCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    name: str
    env: str


class LoggingCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    level: str = "INFO"
    log_dir: Path


class RedisCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    url: str
    channel: str


class StorageCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    backend: Literal["filesystem", "redis"] = "filesystem"
    # directory root for the filesystem backend, redis url for the redis backend
    connection: str
    container: str
    public_container: bool = False


class BatchingCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    use_hourly_partitioning: bool = False
    min_batch_count: int = 10
    max_batch_count: int = 1000
    warning_queue_count: int = 1000
    poll_interval_ms: int = 500
    max_batch_age_seconds: int = 3600
    lock_timeout_seconds: float = 1.0
    drain_poll_interval_seconds: float = 1.0


class Config(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    app: AppCfg
    logging: LoggingCfg
    redis: RedisCfg
    storage: StorageCfg
    batching: BatchingCfg = Field(default_factory=BatchingCfg)

    @model_validator(mode="after")
    def _redis_needs_hourly_partitions(self) -> Config:
        # a redis string caps at 512 MB; a busy daily object would outgrow it
        if self.storage.backend == "redis" and not self.batching.use_hourly_partitioning:
            raise ValueError("storage.backend 'redis' requires batching.use_hourly_partitioning")
        return self


def _read_yaml(path: Path) -> dict[str, Any]:
    """Safe YAML read; returns {} if file missing/empty."""
    import yaml  # lazy import

    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data or {}


def load_config(base_dir: str | Path) -> Config:
    """Load the service config from ./config/base.yaml."""

    base_yaml = Path(base_dir) / "config" / "base.yaml"
    data = _read_yaml(base_yaml)
    if not data:
        msg = f"Missing or empty config file: {base_yaml}"
        raise FileNotFoundError(msg)

    return cast(Config, Config.model_validate(data))
