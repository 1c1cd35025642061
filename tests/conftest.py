from __future__ import annotations

import pytest

from config import AppConfig


@pytest.fixture
def config_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Drop every prefixed and bare settings variable from the environment."""
    for field in AppConfig.model_fields.values():
        for name in field.validation_alias.choices:
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
