from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("SMSLEDGER_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SMSLEDGER_CAPTURE_UNMATCHED", "true")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from smsledger.core import database as db_module
from smsledger.core.auth import Actor
from smsledger.models.users import Role


@pytest.fixture()
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("SMSLEDGER_DB_PATH", str(tmp_path / "smsledger-test.db"))
    db_module._DB_INSTANCE = None
    db = db_module.get_db()
    db.initialize()
    yield db
    db_module._DB_INSTANCE = None


@pytest.fixture()
def maker():
    return Actor(user_id=1, username="maker", role=Role.MAKER)


@pytest.fixture()
def other_maker():
    return Actor(user_id=2, username="maker2", role=Role.MAKER)


@pytest.fixture()
def checker():
    return Actor(user_id=3, username="checker", role=Role.CHECKER)


@pytest.fixture()
def second_checker():
    return Actor(user_id=4, username="checker2", role=Role.CHECKER)


@pytest.fixture()
def user():
    return Actor(user_id=5, username="user", role=Role.USER)
