"""
Shared fixtures: every test gets its own SQLite file so rows never leak between tests.
"""

import pytest
from fastapi.testclient import TestClient

from app.core import db


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point app.core.db at a fresh database under tmp_path."""
    path = tmp_path / "bos.db"
    monkeypatch.setattr(db, "_DB_PATH", path)
    monkeypatch.setattr(db, "_initialized", set())
    return path


@pytest.fixture
def client() -> TestClient:
    from app.main import app

    return TestClient(app)
