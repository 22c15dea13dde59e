import os
import tempfile
from pathlib import Path

# ---- test DB path, set before anything imports db ----
_TMP_DIR = Path(tempfile.mkdtemp(prefix="asset_app_"))
os.environ["APP_DB_PATH"] = str(_TMP_DIR / "test_assets.db")
os.environ["APP_MAIL_BACKEND"] = "log"

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app_module():
    import main
    return main


@pytest.fixture()
def client(app_module):
    import dependencies
    from db import SessionLocal

    def _get_db_override():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app_module.app.dependency_overrides[dependencies.get_db] = _get_db_override
    with TestClient(app_module.app) as c:
        yield c
    app_module.app.dependency_overrides.clear()


@pytest.fixture()
def db_session(app_module):
    from db import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db(app_module, db_session):
    # children before parents
    from db import Base

    for table in reversed(Base.metadata.sorted_tables):
        db_session.execute(table.delete())
    db_session.commit()
    yield


@pytest.fixture()
def people(db_session):
    """Three active employees and an admin, keyed by short name."""
    import crud
    from models import Profile

    rows = {
        "alice": Profile(id="u-alice", full_name="Alice Tan", email="alice@example.com", department="IT"),
        "bob": Profile(id="u-bob", full_name="Bob Lee", email="bob@example.com", department="Finance"),
        "carol": Profile(id="u-carol", full_name="Carol Ng", email="carol@example.com", department="HR"),
        "admin": Profile(id="u-admin", full_name="Ada Admin", email="admin@example.com", role="admin"),
    }
    for p in rows.values():
        crud.upsert_profile(db_session, p)
    return rows


@pytest.fixture()
def actors(people):
    from dependencies import Actor

    return {k: Actor(id=p.id, role=p.role) for k, p in people.items()}


@pytest.fixture()
def make_asset(db_session):
    import crud
    from models import AssetIn

    counter = {"n": 0}

    def _make(name="ThinkPad T14", tag=None, category="laptop", **kw):
        counter["n"] += 1
        body = AssetIn(name=name, asset_tag=tag or f"TAG-{counter['n']:03d}", category=category, **kw)
        return crud.create_asset(db_session, body)

    return _make