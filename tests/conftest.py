"""Shared pytest fixtures."""

import os

import pytest

from declara.core.config import reset_config


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Each test starts from defaults, without DECLARA_* overrides."""
    for key in list(os.environ):
        if key.startswith("DECLARA_"):
            monkeypatch.delenv(key, raising=False)
    config = reset_config()
    yield config
    reset_config()
