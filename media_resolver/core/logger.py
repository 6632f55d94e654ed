from __future__ import annotations

"""
Media Resolver — Logging (Loguru)
---------------------------------
- Pretty console logs by default; optional JSON logs via `LOG_JSON=1`
- Correlation: every record carries an `asset_id` (bound by callers, "N/A" otherwise)
- Intercepts stdlib logging (SQLAlchemy, httpx, botocore, our own modules) into Loguru
- Optional file sink with rotation

Modules keep using `logging.getLogger(__name__)`; `setup_logging()` routes
those records through Loguru once, at process start.

Env
---
LOG_LEVEL=INFO|DEBUG|WARNING|ERROR (default: INFO)
LOG_JSON=1 (enable JSON logs; pretty logs otherwise)
LOG_TO_FILE=1 (write LOG_DIR/LOG_FILE with rotation; default: 0)
LOG_DIR=logs
LOG_FILE=media-resolver.log
LOG_ROTATION=10 MB
APP_DEBUG=1 (enables backtrace/diagnose in console sink)
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

_CONFIGURED = False

# Third-party loggers routed into Loguru alongside our own package.
INTERCEPTED_LOGGERS = ("media_resolver", "sqlalchemy.engine", "httpx", "botocore", "alembic")


def _truthy(value: str) -> bool:
    return value.lower() in {"1", "true", "yes"}


# ─────────────────────────────────────────────────────────────
# 🧾 Formatters
# ─────────────────────────────────────────────────────────────
def _fmt_pretty(record) -> str:
    """Colorized single-line formatter with asset_id support."""
    record["extra"]["asset_id"] = record["extra"].get("asset_id", "N/A")
    safe_name = record["name"].replace("<", "[").replace(">", "]")
    safe_func = record["function"].replace("<", "[").replace(">", "]")
    return (
        f"<green>{record['time']:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        f"<level>{record['level']:<8}</level> | "
        f"<cyan>{safe_name}</cyan>:<cyan>{safe_func}</cyan>:<cyan>{record['line']}</cyan> - "
        f"<level>{{message}}</level> | asset_id={record['extra']['asset_id']}\n"
    )


def _serialize(record) -> str:
    payload: Dict[str, Any] = {
        "ts": record["time"].timestamp(),
        "time": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f%z"),
        "level": record["level"].name,
        "logger": record["name"],
        "func": record["function"],
        "line": record["line"],
        "message": record["message"],
        "asset_id": record["extra"].get("asset_id", "N/A"),
    }
    for k, v in record["extra"].items():
        if k not in payload and k != "serialized":
            payload[k] = v
    return json.dumps(payload, ensure_ascii=False, default=str)


def _fmt_json(record) -> str:
    """Structured JSON logs, safe for ingestion (Datadog, Loki, ELK)."""
    record["extra"]["serialized"] = _serialize(record)
    return "{extra[serialized]}\n"


# ─────────────────────────────────────────────────────────────
# 🔁 Intercept stdlib logging → Loguru
# ─────────────────────────────────────────────────────────────
class InterceptHandler(logging.Handler):
    """Route standard logging records into Loguru with asset_id support."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        asset_id = getattr(record, "asset_id", "N/A")
        logger.bind(asset_id=asset_id).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_logging(*, force: bool = False) -> None:
    """
    Install Loguru sinks and stdlib interception (idempotent).

    Pass `force=True` to rebuild sinks after changing env (used in tests).
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    as_json = _truthy(os.getenv("LOG_JSON", "0"))
    debug = _truthy(os.getenv("APP_DEBUG", "0"))
    to_file = _truthy(os.getenv("LOG_TO_FILE", "0"))

    logger.remove()
    fmt = _fmt_json if as_json else _fmt_pretty

    # Console (application logs)
    logger.add(
        sys.stdout,
        level=level,
        format=fmt,
        enqueue=True,
        backtrace=debug,
        diagnose=debug,
    )

    # File sink (optional)
    if to_file:
        log_dir = Path(os.getenv("LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / os.getenv("LOG_FILE", "media-resolver.log")),
            rotation=os.getenv("LOG_ROTATION", "10 MB"),
            level=level,
            format=fmt,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(level)
        std_logger.propagate = False

    _CONFIGURED = True


__all__ = ["logger", "setup_logging", "InterceptHandler"]
