# tests/test_config.py

from __future__ import annotations

import pytest

from task_time.config import Config


def test_from_env(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("TT_JWT_EXPIRES_DAYS", "7")
    monkeypatch.setenv("FRONTEND_URL", "https://tasks.example.com")
    monkeypatch.setenv("PORT", "not-a-number")

    cfg = Config.from_env()

    assert cfg.jwt_secret == "s3cret"
    assert cfg.jwt_expires_days == 7
    assert cfg.port == 8000
    assert cfg.allowed_origins == ["http://localhost:3000", "https://tasks.example.com"]


def test_require_names_missing_settings() -> None:
    with pytest.raises(RuntimeError, match="jwt_secret"):
        Config(jwt_secret=None).require("jwt_secret", "database_path")
