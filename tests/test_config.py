from __future__ import annotations

from pathlib import Path

import pytest
import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.config import load_config


def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def write_base(tmp_path: Path, data: dict[str, object]) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "base.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def base_data() -> dict[str, object]:
    text = (repo_root() / "config" / "base.yaml").read_text(encoding="utf-8")
    return yaml.safe_load(text)


def test_load_config_from_repo() -> None:
    cfg = load_config(repo_root())

    assert cfg.app.name == "blob-uploader"
    assert cfg.redis.channel == "uploader.records"
    assert cfg.storage.backend == "filesystem"
    assert cfg.storage.container == "uploader.records"
    assert cfg.storage.public_container is False
    assert cfg.batching.min_batch_count == 10
    assert cfg.batching.max_batch_count == 1000
    assert cfg.batching.use_hourly_partitioning is False
    assert cfg.logging.log_dir == Path("./var/log/blob-uploader")


def test_batching_section_is_optional(tmp_path: Path) -> None:
    data = base_data()
    del data["batching"]
    write_base(tmp_path, data)

    cfg = load_config(tmp_path)

    assert cfg.batching.poll_interval_ms == 500
    assert cfg.batching.warning_queue_count == 1000
    assert cfg.batching.max_batch_age_seconds == 3600


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    data = base_data()
    data["batching"] = {"min_batch_count": 5, "turbo": True}
    write_base(tmp_path, data)

    with pytest.raises(ValidationError):
        load_config(tmp_path)


def test_unknown_backend_is_rejected(tmp_path: Path) -> None:
    data = base_data()
    storage = dict(data["storage"])  # type: ignore[call-overload]
    storage["backend"] = "tape"
    data["storage"] = storage
    write_base(tmp_path, data)

    with pytest.raises(ValidationError):
        load_config(tmp_path)


def test_redis_backend_requires_hourly_partitions(tmp_path: Path) -> None:
    data = base_data()
    storage = dict(data["storage"])  # type: ignore[call-overload]
    storage["backend"] = "redis"
    storage["connection"] = "redis://localhost:6379/0"
    data["storage"] = storage
    write_base(tmp_path, data)

    with pytest.raises(ValidationError, match="use_hourly_partitioning"):
        load_config(tmp_path)


def test_redis_backend_with_hourly_partitions(tmp_path: Path) -> None:
    data = base_data()
    storage = dict(data["storage"])  # type: ignore[call-overload]
    storage["backend"] = "redis"
    storage["connection"] = "redis://localhost:6379/0"
    data["storage"] = storage
    batching = dict(data["batching"])  # type: ignore[call-overload]
    batching["use_hourly_partitioning"] = True
    data["batching"] = batching
    write_base(tmp_path, data)

    cfg = load_config(tmp_path)

    assert cfg.storage.backend == "redis"
    assert cfg.batching.use_hourly_partitioning is True


def test_load_config_missing_base(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path)
