import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from sibylx.app import config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the global config at a temp file and clear env overrides."""
    path = tmp_path / "sibylx_config.json"
    monkeypatch.setattr(config, "GLOBAL_CONFIG", path)
    monkeypatch.delenv("SIBYLX_REST_URL", raising=False)
    monkeypatch.delenv("SIBYLX_TODO_FILE", raising=False)
    monkeypatch.setenv("SIBYLX_NO_DIALOGS", "1")
    return path
