import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import re
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from top5.infra import db as db_module


@pytest.fixture(autouse=True)
def secret_key(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret-key")
    monkeypatch.delenv("TOP5_SECRET_KEY", raising=False)


@pytest.fixture()
def database(tmp_path: Path):
    """Point the process-wide engine at a fresh SQLite file."""
    engine = db_module.configure(f"sqlite:///{tmp_path / 'top5.db'}")
    db_module.init_db()
    yield engine
    engine.dispose()


@pytest.fixture()
def db(database):
    session = db_module.new_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(database) -> TestClient:
    from top5.app import app

    return TestClient(app)


@pytest.fixture()
def alice(db):
    from top5.auth.users import CredentialStore

    return CredentialStore(db).create_user("alice", "secret123")


@pytest.fixture()
def csrf_token():
    """Fetch a form token the way a browser gets one: from a rendered form."""

    def _token(c: TestClient) -> str:
        m = re.search(r'name="csrf_token" value="([^"]+)"', c.get("/register").text)
        assert m, "no form token on the registration page"
        return m.group(1)

    return _token


@pytest.fixture()
def post(client, csrf_token):
    """client.post with a valid form token added to the submitted data."""

    def _post(url: str, data=None, **kwargs):
        return client.post(url, data={**(data or {}), "csrf_token": csrf_token(client)}, **kwargs)

    return _post


@pytest.fixture()
def login(post):
    """POST the sign-in form without following the redirect."""

    def _login(username: str, password: str, next_url: str = ""):
        return post(
            "/",
            data={"username": username, "password": password, "next": next_url},
            follow_redirects=False,
        )

    return _login
