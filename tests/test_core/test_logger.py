# tests/test_core/test_logger.py
import json
import logging

from loguru import logger

from media_resolver.core import logger as logger_module
from media_resolver.core.logger import INTERCEPTED_LOGGERS, InterceptHandler, setup_logging


def test_stdlib_records_are_routed_into_loguru(monkeypatch):
    monkeypatch.setenv("LOG_JSON", "0")
    monkeypatch.setenv("LOG_TO_FILE", "0")
    setup_logging(force=True)

    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    try:
        logging.getLogger("media_resolver.services.probe").warning("probe %s failed", "s3://b/k")
        logger.complete()
    finally:
        logger.remove(sink_id)

    assert any(r["message"] == "probe s3://b/k failed" for r in captured)
    for name in INTERCEPTED_LOGGERS:
        assert isinstance(logging.getLogger(name).handlers[0], InterceptHandler)


def test_json_serializer_includes_asset_id_and_extras():
    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    try:
        logger.bind(asset_id="a1", backend="CDN").info("found")
    finally:
        logger.remove(sink_id)

    payload = json.loads(logger_module._serialize(captured[-1]))
    assert payload["message"] == "found"
    assert payload["asset_id"] == "a1"
    assert payload["backend"] == "CDN"
    assert payload["level"] == "INFO"


def test_setup_logging_is_idempotent():
    setup_logging(force=True)
    handler = logging.getLogger("media_resolver").handlers[0]

    setup_logging()

    assert logging.getLogger("media_resolver").handlers[0] is handler
