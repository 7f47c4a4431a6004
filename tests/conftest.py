import os
import tempfile
from pathlib import Path

# must be set before config is imported
os.environ.setdefault("KINTSUGI_DB_PATH", str(Path(tempfile.mkdtemp()) / "test.db"))
os.environ["KINTSUGI_AI_ENABLED"] = "0"

import pytest

import db


class MemoryStore:
    def __init__(self, initial=None):
        self.data = dict(initial or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value


class BrokenStore:
    def get(self, key):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("storage full")


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "app.db")
    db.init_db()
    return tmp_path / "app.db"


@pytest.fixture
def client(temp_db):
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
