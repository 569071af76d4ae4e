"""Fixtures for the backend tests."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.main import create_app
from common.core.config_service import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(HTTP_HOST="127.0.0.1", HTTP_PORT=0, TELEMETRY_PORT=0)


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
