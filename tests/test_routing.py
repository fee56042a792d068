import logging

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from resource_api.api.routing import resource_router
from resource_api.core.errors import HttpError
from resource_api.examples.library import author_controller


def test_unknown_action():
    with pytest.raises(ValueError, match="Unknown action"):
        resource_router(author_controller, actions=["get", "archive"])


def test_selected_actions_only():
    router = resource_router(author_controller, actions=["get", "count"])

    assert {route.name for route in router.routes} == {"author.get", "author.count"}


def test_fixed_paths_routed_before_id():
    router = resource_router(author_controller)
    paths = [route.path for route in router.routes]

    assert paths.index("/count") < paths.index("/{authorId}")
    assert paths.index("/first") < paths.index("/{authorId}")


@pytest.fixture()
def hooked_client(app):
    async def deny(request):
        if request.headers.get("X-Role") != "editor":
            raise HttpError(403, "Forbidden")

    def only_prolific(request, filter):
        return {**filter, "books_written": {"$gte": 10}}

    def names_only(request):
        return {"first_name": 1}

    def shout(request, result):
        return [{**author, "first_name": author["first_name"].upper()} for author in result]

    def stamp(request, doc):
        return {**doc, "last_name": doc["last_name"].strip()}

    app.include_router(
        resource_router(author_controller, on={
            "create": {"authorize": deny, "pre_create": stamp},
            "get_all": {"prepare_filter": only_prolific, "prepare_projection": names_only, "post_execute": shout},
            "count": {"update_filter": only_prolific},
        }),
        prefix="/api/editor/authors",
    )

    with TestClient(app) as test_client:
        yield test_client


def test_authorize_hook(hooked_client):
    body = {"author": {"first_name": "Ursula", "last_name": "Le Guin "}}

    denied = hooked_client.post("/api/editor/authors", json=body)
    allowed = hooked_client.post("/api/editor/authors", json=body, headers={"X-Role": "editor"})

    assert denied.status_code == 403
    assert denied.json()["errors"]["message"] == "Forbidden"
    assert allowed.status_code == 200
    assert allowed.json()["author"]["last_name"] == "Le Guin"


def test_filter_projection_and_post_execute_hooks(hooked_client):
    hooked_client.post("/api/authors", json={"author": {"first_name": "Ursula", "last_name": "Le Guin", "books_written": 23}})
    hooked_client.post("/api/authors", json={"author": {"first_name": "Ted", "last_name": "Chiang", "books_written": 2}})

    response = hooked_client.get("/api/editor/authors")

    authors = response.json()["authors"]
    assert [author["first_name"] for author in authors] == ["URSULA"]
    assert "last_name" not in authors[0]
    assert "_stat" in authors[0]
    assert "Last-Modified" in response.headers


def test_deprecated_hook_still_applies(hooked_client):
    hooked_client.post("/api/authors", json={"author": {"first_name": "Ursula", "last_name": "Le Guin", "books_written": 23}})
    hooked_client.post("/api/authors", json={"author": {"first_name": "Ted", "last_name": "Chiang", "books_written": 2}})

    assert hooked_client.get("/api/authors/count").json() == {"count": 2}
    assert hooked_client.get("/api/editor/authors/count").json() == {"count": 1}


def test_deprecated_hook_logs_warning(caplog):
    with caplog.at_level(logging.WARNING):
        resource_router(author_controller, actions=["count"], on={"count": {"update_filter": lambda request, f: f}})

    assert "on.update_filter is deprecated" in caplog.text


@pytest.fixture()
def managed_client(app):
    def count_first_book(request, doc):
        return {**doc, "books_written": 1}

    def first_alphabetically(request, options):
        return {**options, "limit": 1, "sort": {"first_name": 1}}

    def previous_version(request, options):
        return {**options, "new": False}

    def upsert(request, options):
        return {**options, "upsert": True}

    def books_only(request):
        return {"books_written": 1}

    app.include_router(
        resource_router(author_controller, on={
            "create": {"prepare_document": count_first_book},
            "get_all": {"prepare_options": first_alphabetically},
            "update": {"prepare_options": previous_version, "prepare_projection": books_only},
        }),
        prefix="/api/managed/authors",
    )
    app.include_router(
        resource_router(author_controller, actions=["update"], on={"update": {"prepare_options": upsert}}),
        prefix="/api/upsert/authors",
    )

    with TestClient(app) as test_client:
        yield test_client


def test_prepare_document_hook(managed_client):
    response = managed_client.post(
        "/api/managed/authors",
        json={"author": {"first_name": "Ted", "last_name": "Chiang", "books_written": 7}},
    )

    assert response.status_code == 200
    assert response.json()["author"]["books_written"] == 1


def test_prepare_options_hook_on_get_all(managed_client):
    for name in ("Clara", "Anne", "Beatrice"):
        managed_client.post("/api/authors", json={"author": {"first_name": name, "last_name": "Smith"}})

    response = managed_client.get(
        "/api/managed/authors",
        params={"options[limit]": "3", "options[sort][first_name]": "-1"},
    )

    assert [author["first_name"] for author in response.json()["authors"]] == ["Anne"]


def test_prepare_options_and_projection_hooks_on_update(managed_client):
    created = managed_client.post(
        "/api/authors", json={"author": {"first_name": "Ted", "last_name": "Chiang", "books_written": 2}}
    ).json()["author"]

    response = managed_client.put(f"/api/managed/authors/{created['_id']}", json={"author": {"books_written": 3}})

    assert response.status_code == 200
    author = response.json()["author"]
    assert author["books_written"] == 2
    assert "last_name" not in author
    assert "_stat" in author
    assert managed_client.get(f"/api/authors/{created['_id']}").json()["author"]["books_written"] == 3


def test_prepare_options_hook_enables_upsert(managed_client):
    author_id = str(ObjectId())

    response = managed_client.put(f"/api/upsert/authors/{author_id}", json={"author": {"books_written": 5}})

    assert response.status_code == 200
    assert response.json()["author"]["_id"] == author_id
    assert managed_client.get(f"/api/authors/{author_id}").json()["author"]["books_written"] == 5
