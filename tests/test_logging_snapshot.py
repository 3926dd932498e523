from __future__ import annotations

import json
import logging
from pathlib import Path

from core.logging import setup_json_logging


def read_last_line(path: Path) -> str:
    with path.open("r", encoding="utf-8") as fh:
        lines = fh.readlines()
    return lines[-1].strip()


def flush_handlers() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_json_logging_snapshot(tmp_path: Path) -> None:
    logger = setup_json_logging(str(tmp_path), service="uploader-test")

    logger.info("saver.start", pending=3)
    flush_handlers()

    payload = json.loads(read_last_line(tmp_path / "app.ndjson"))

    assert payload["event"] == "saver.start"
    assert payload["pending"] == 3
    assert payload["service"] == "uploader-test"
    assert payload["level"] == "info"
    assert "timestamp" in payload


def test_stdlib_records_are_rendered_as_json(tmp_path: Path) -> None:
    setup_json_logging(tmp_path)

    logging.getLogger("redis.test").warning("reconnecting")
    flush_handlers()

    payload = json.loads(read_last_line(tmp_path / "app.ndjson"))

    assert payload["event"] == "reconnecting"
    assert payload["logger"] == "redis.test"
    assert payload["level"] == "warning"
