"""Shared fixtures for the response engine tests."""

from __future__ import annotations

import os

import pytest

from response_engine.config import Settings


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Default settings, isolated from the caller's environment and ``.env``."""
    for name in list(os.environ):
        if name.startswith("RESPONSE_ENGINE_"):
            monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None)
