"""Fixtures shared by the library and backend tests."""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

CONFIG_ENV_VARS = (
    "APP_ENV",
    "APP_VERSION",
    "HTTP_HOST",
    "HTTP_PORT",
    "HTTP_PATH_PREFIX",
    "HTTP_ENABLE_CORS",
    "SERVICE_NAME",
    "SHUTDOWN_TIMEOUT",
    "TELEMETRY_PORT",
    "LOG_LEVEL",
    "LOG_JSON_FORMAT",
    "POSTGRES_URL",
    "POSTGRES_DEBUG",
    "POSTGRES_MIGRATE",
)


@pytest.fixture(autouse=True)
def isolated_env() -> Iterator[None]:
    """Run every test without configuration leaking in or out of the process environment."""
    saved = dict(os.environ)
    for name in CONFIG_ENV_VARS:
        os.environ.pop(name, None)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(saved)
