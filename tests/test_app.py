from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import AppConfig
from main import create_context


@pytest.fixture
def config(config_env: pytest.MonkeyPatch) -> AppConfig:
    return AppConfig(_env_file=None, OPENAI_API_KEY="sk-test")


def test_health_endpoint(config: AppConfig) -> None:
    context = create_context(config)
    with TestClient(create_app(config, context.sweeper)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"status": "ok", "message": "SimplNews API is running"}


def test_lifespan_runs_sweeper(config: AppConfig) -> None:
    context = create_context(config)
    app = create_app(config, context.sweeper)

    with TestClient(app):
        assert context.sweeper.running
    assert not context.sweeper.running


def test_metrics_endpoint_exposes_cache_metrics(config: AppConfig) -> None:
    context = create_context(config)
    context.cache.set("stale", "a", 0)
    context.sweeper.sweep_once()

    with TestClient(create_app(config, context.sweeper)) as client:
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "simplnews_cache_sweeps_total" in response.text
    assert "simplnews_cache_entries" in response.text


def test_cors_headers_when_enabled(config: AppConfig) -> None:
    context = create_context(config)
    with TestClient(create_app(config, context.sweeper)) as client:
        response = client.get("/health", headers={"Origin": "https://example.com"})

    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_disabled(config: AppConfig) -> None:
    config = config.model_copy(update={"api_enable_cors": False})
    context = create_context(config)
    with TestClient(create_app(config, context.sweeper)) as client:
        response = client.get("/health", headers={"Origin": "https://example.com"})

    assert "access-control-allow-origin" not in response.headers
