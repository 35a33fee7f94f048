"""Shared fixtures for the TADA test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from tada.config import get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Settings are lru_cached; keep env tweaks from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def write_config(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes a config file under tmp_path."""

    def _write(content: str, filename: str = "config.toml") -> Path:
        path = tmp_path / filename
        path.write_text(content, encoding="utf-8")
        return path

    return _write
