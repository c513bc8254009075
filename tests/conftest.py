import uuid

import pytest
from fastapi.testclient import TestClient
from mongita import MongitaClientMemory

from api import create_app
from database import DocumentStore
from settings import Settings

SECRET = "test-secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(jwt_secret=SECRET, upload_dir=tmp_path / "uploads", max_upload_bytes=1024)


@pytest.fixture
def db():
    # Fresh database per test; the memory client shares state within the process
    return MongitaClientMemory()[f"test_{uuid.uuid4().hex}"]


@pytest.fixture
def store(db):
    return DocumentStore(db)


@pytest.fixture
def app(settings, db):
    return create_app(settings, database=db)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db, app):
    def _make(name):
        uid = str(db["user"].insert_one({
            "name": name,
            "email": f"{name.lower()}@example.com",
            "profile_picture": f"/avatars/{name.lower()}.png",
        }).inserted_id)
        token = app.state.verifier.sign(uid)
        return uid, {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def new_post(client):
    def _create(headers, caption="hello", files=None, **fields):
        data = {"caption": caption, **{k: str(v).lower() if isinstance(v, bool) else v for k, v in fields.items()}}
        res = client.post("/api/posts", data=data, files=files, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()
    return _create
