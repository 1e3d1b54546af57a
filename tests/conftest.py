import threading

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import hash_password, issue_token
from config import Config
from database import MongoRecordStore, get_store
from errors import PersistenceError
from main import app
from schemas import Car, User


class FailingStore(MongoRecordStore):
    """Record store whose writes to chosen collections fail."""

    def __init__(self, database, fail_create=(), fail_update=()):
        super().__init__(database)
        self.fail_create = set(fail_create)
        self.fail_update = set(fail_update)

    def create(self, collection, data):
        if collection in self.fail_create:
            raise PersistenceError(f"Failed to create {collection}")
        return super().create(collection, data)

    def update(self, collection, record_id, fields, expected=None):
        if collection in self.fail_update:
            raise PersistenceError(f"Failed to update {collection}")
        return super().update(collection, record_id, fields, expected)


class SerializedStore(MongoRecordStore):
    """
    mongod applies each single-document operation atomically; mongomock
    does not, so operations are serialized behind one lock.
    """

    def __init__(self, database):
        super().__init__(database)
        self._lock = threading.RLock()

    def get(self, collection, record_id):
        with self._lock:
            return super().get(collection, record_id)

    def find_one(self, collection, filter_dict):
        with self._lock:
            return super().find_one(collection, filter_dict)

    def update(self, collection, record_id, fields, expected=None):
        with self._lock:
            return super().update(collection, record_id, fields, expected)


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(Config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(Config, "JWT_SECRET_KEY", "test-secret")


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["car_rental_test"]


@pytest.fixture
def store(mongo_db):
    return MongoRecordStore(mongo_db)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user_id(store):
    return store.create("user", User(
        full_name="Rina Putri",
        email="rina@example.com",
        password=hash_password("s3cret"),
        phone="08123456789",
    ))


@pytest.fixture
def car_id(store):
    return store.create("car", Car(
        brand="Toyota",
        model="Avanza",
        year=2022,
        license_plate="B 1234 XYZ",
        price_per_day=100.0,
    ))


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {issue_token(user_id, 'customer')}"}
