import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from resource_api.core.messaging import WILDCARD, messaging
from resource_api.data_access.connections import ConnectionManager
from resource_api.server import create_app

TEST_URI = "mongodb://localhost:27017/library_test"


@pytest.fixture()
def connection_manager():
    # In-memory MongoDB; every test starts with an empty database.
    return ConnectionManager(
        {"$default": TEST_URI},
        client_factory=AsyncMongoMockClient,
        verify=False,
    )


@pytest.fixture()
def app(connection_manager):
    return create_app(connection_manager=connection_manager)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def events():
    """Records every event emitted while the test runs."""
    received = []

    def record(event, payload):
        received.append((event, payload))

    messaging.on(WILDCARD, record)
    yield received
    messaging.off(WILDCARD, record)


@pytest.fixture()
def mongo_db():
    return AsyncMongoMockClient()["models_test"]


@pytest.fixture()
def author_payload():
    return {"author": {"first_name": "Ursula", "last_name": "Le Guin", "books_written": 23}}


@pytest.fixture()
def create_author(client):
    def create(first_name="Ursula", last_name="Le Guin", **fields):
        body = {"author": {"first_name": first_name, "last_name": last_name, **fields}}
        response = client.post("/api/authors", json=body)
        assert response.status_code == 200, response.text
        return response.json()["author"]
    return create


@pytest.fixture()
def create_book(client):
    def create(title, author_id, **fields):
        body = {"book": {"title": title, "author": author_id, **fields}}
        response = client.post("/api/books", json=body)
        assert response.status_code == 200, response.text
        return response.json()["book"]
    return create
