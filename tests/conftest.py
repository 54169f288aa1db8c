"""Shared fixtures: a throwaway home layout and a SetupConfig pointing into it."""

import logging
import os
from pathlib import Path

import pytest

from appimagesetup.config import SetupConfig


@pytest.fixture
def home(tmp_path: Path) -> Path:
    apps = tmp_path / "apps"
    apps.mkdir()
    return tmp_path


@pytest.fixture
def setup_config(home: Path) -> SetupConfig:
    return SetupConfig(
        app_dir=str(home / "apps"),
        desktop_dir=str(home / ".local/share/applications"),
        icon_dir=str(home / ".local/share/icons/hicolor/256x256/apps"),
    )


@pytest.fixture
def make_bundle(home: Path):
    """Creates a non-executable fake AppImage (and optional sibling files) in the app dir."""

    def _make(filename, directory=None, content="#!/bin/sh\necho hello\n"):
        target_dir = Path(directory) if directory else home / "apps"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        path.write_text(content)
        os.chmod(path, 0o644)
        return path

    return _make


@pytest.fixture
def desktop_dir(setup_config: SetupConfig) -> Path:
    path = Path(setup_config.desktop_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture(autouse=True)
def refresh_calls(monkeypatch: pytest.MonkeyPatch):
    """Replaces the desktop database refresh in the CLI with a recorder."""
    calls = []

    def _fake_refresh(directory):
        calls.append(directory)
        return True

    monkeypatch.setattr("appimagesetup.main.update_desktop_database", _fake_refresh)
    return calls


@pytest.fixture
def root_logging():
    """Restores the root logger's handlers and level after a test configures logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
