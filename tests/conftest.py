# tests/conftest.py
"""
Global test bootstrap
- Pins env so settings never reach real AWS / processor / database
- Keeps Loguru on stderr only (no file sink during tests)
- Pulls in shared fixtures (repositories, catalog, fakes, optional PostgreSQL)
"""

from __future__ import annotations

import os
import warnings

from sqlalchemy.exc import SAWarning

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing media_resolver so `settings` picks it up)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("ENV", "development")
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.pop("VIDEO_ASSET_REPOSITORY_IMPL", None)

warnings.filterwarnings("ignore", category=SAWarning)

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Shared fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.db import *      # noqa: F401,F403,E402
from tests.fixtures.assets import *  # noqa: F401,F403,E402
