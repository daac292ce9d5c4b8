from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from auth import create_access_token, hash_password


@pytest.fixture
def mongo(monkeypatch):
    test_db = mongomock.MongoClient()["tls_test"]
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(main, "db", test_db)
    return test_db


@pytest.fixture
def upload_root(tmp_path, monkeypatch):
    root = tmp_path / "uploads"
    monkeypatch.setattr(main, "UPLOAD_ROOT", str(root))
    return root


@pytest.fixture
def client(mongo, upload_root):
    return TestClient(main.app)


def _headers_for(db, role, email):
    uid = db["user"].insert_one({
        "name": role.title(),
        "email": email,
        "password_hash": hash_password("secret123"),
        "role": role,
        "is_active": True,
    }).inserted_id
    token = create_access_token({"_id": uid, "email": email, "name": role.title(), "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(mongo):
    return _headers_for(mongo, "admin", "admin@example.com")


@pytest.fixture
def user_headers(mongo):
    return _headers_for(mongo, "user", "reader@example.com")


@pytest.fixture
def make_book(mongo):
    def factory(price=20.0, status="active", **extra):
        doc = {
            "title": {"en": "Thirukkural", "ta": "திருக்குறள்"},
            "author": {"en": "Thiruvalluvar", "ta": "திருவள்ளுவர்"},
            "category": "classics",
            "price": price,
            "stock": 10,
            "status": status,
            "featured": False,
            "created_at": datetime.now(timezone.utc),
        }
        doc.update(extra)
        return str(mongo["book"].insert_one(doc).inserted_id)
    return factory


@pytest.fixture
def make_docs(mongo):
    """Insert `n` documents into a collection with increasing created_at."""
    def factory(collection, n, **fields):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ids = []
        for i in range(n):
            doc = {
                "title": {"en": f"Item {i}", "ta": f"உருப்படி {i}"},
                "description": {"en": f"Description {i}"},
                "created_at": start + timedelta(minutes=i),
            }
            doc.update(fields)
            ids.append(str(mongo[collection].insert_one(doc).inserted_id))
        return ids
    return factory
