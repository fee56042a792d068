from datetime import datetime, timezone
from typing import List, Optional

import pytest
from bson import ObjectId
from pydantic import BaseModel, Field

from resource_api.core.errors import CastError, DatabaseError
from resource_api.data_access.models import (
    STAT_FIELD,
    ModelRegistry,
    ResourceModel,
    is_projection_exclusive,
    pluralize,
)
from resource_api.data_access.types import PyObjectId, Ref


class ShelfDocument(BaseModel):
    label: str
    capacity: int = 10
    opened: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    owner: Optional[PyObjectId] = Ref("Owner", default=None)
    items: List[PyObjectId] = Ref("Item", default_factory=list)


class WallShelfDocument(ShelfDocument):
    anchors: int = 2


@pytest.fixture()
def local_registry():
    return ModelRegistry()


@pytest.fixture()
def shelf(local_registry, mongo_db):
    model = local_registry.register(ResourceModel("Shelf", ShelfDocument, resource=True))
    model.bind(mongo_db)
    return model


def test_pluralize():
    assert pluralize("book") == "books"
    assert pluralize("Author") == "Authors"
    assert pluralize("person") == "people"


def test_collection_name_is_snake_plural(local_registry):
    model = local_registry.register(ResourceModel("PublishingHouse", ShelfDocument))
    assert model.collection_name == "publishing_houses"


def test_projection_exclusivity():
    assert is_projection_exclusive({}) is True
    assert is_projection_exclusive(None) is True
    assert is_projection_exclusive({"secret": 0}) is True
    assert is_projection_exclusive({"secret": False}) is True
    assert is_projection_exclusive({"label": 1}) is False


def test_inclusive_projection_keeps_metadata(shelf):
    assert shelf._projection({"label": 1}) == {"label": 1, STAT_FIELD: 1}
    assert shelf._projection({"label": 0}) == {"label": 0}
    assert shelf._projection({}) is None


def test_references(shelf):
    refs = shelf.references()

    assert set(refs) == {"owner", "items"}
    assert refs["owner"].model_name == "Owner" and refs["owner"].many is False
    assert refs["items"].model_name == "Item" and refs["items"].many is True


def test_cast_filter_uses_field_types(shelf):
    owner = ObjectId()
    cast = shelf.cast_filter({
        "capacity": "12",
        "owner": str(owner),
        "tags": "oak",
        "label": {"$in": ["a", "b"]},
        "opened": {"$gte": "2020-01-01T00:00:00Z"},
    })

    assert cast["capacity"] == 12
    assert cast["owner"] == owner
    assert cast["tags"] == "oak"
    assert cast["label"] == {"$in": ["a", "b"]}
    assert cast["opened"] == {"$gte": datetime(2020, 1, 1, tzinfo=timezone.utc)}


def test_cast_filter_casts_ids(shelf):
    doc_id = ObjectId()
    assert shelf.cast_filter({"_id": str(doc_id)}) == {"_id": doc_id}
    assert shelf.cast_filter({"_id": {"$in": [str(doc_id)]}}) == {"_id": {"$in": [doc_id]}}


def test_cast_filter_rejects_bad_values(shelf):
    with pytest.raises(CastError):
        shelf.cast_filter({"_id": "not-an-id"})

    with pytest.raises(CastError):
        shelf.cast_filter({"capacity": "lots"})


def test_cast_filter_leaves_unknown_paths(shelf):
    cast = shelf.cast_filter({"_stat.created_at": {"$exists": "true"}, "extra": "1"})
    assert cast == {"_stat.created_at": {"$exists": True}, "extra": "1"}


def test_cast_update_drops_unknown_paths(shelf):
    update = shelf.cast_update({"$set": {"capacity": "5", "bogus": 1}})

    assert update["$set"]["capacity"] == 5
    assert "bogus" not in update["$set"]
    assert isinstance(update["$set"][f"{STAT_FIELD}.updated_at"], datetime)


def test_cast_update_rejects_invalid_values(shelf):
    with pytest.raises(DatabaseError):
        shelf.cast_update({"$set": {"capacity": "lots"}})


def test_discriminator_scopes_queries(shelf, local_registry):
    wall = shelf.discriminator("WallShelf", WallShelfDocument)

    assert wall.collection_name == shelf.collection_name
    assert wall.registry is local_registry
    assert "WallShelf" in local_registry
    assert wall.cast_filter({}) == {"__t": "WallShelf"}
    assert shelf.cast_filter({}) == {}


def test_resolve_discriminator(shelf):
    wall = shelf.discriminator("WallShelf", WallShelfDocument)

    assert shelf.resolve({"label": "x"}) is shelf
    assert shelf.resolve({"__t": "WallShelf"}) is wall

    with pytest.raises(DatabaseError):
        shelf.resolve({"__t": "CeilingShelf"})


def test_duplicate_registration(local_registry):
    local_registry.register(ResourceModel("Crate", ShelfDocument))

    with pytest.raises(ValueError):
        local_registry.register(ResourceModel("Crate", ShelfDocument))


def test_unbound_model_raises_connection_error(local_registry):
    model = local_registry.register(ResourceModel("Loose", ShelfDocument))

    assert model.is_bound is False
    with pytest.raises(ConnectionError):
        model.collection


async def test_create_sets_stat_and_defaults(shelf):
    doc = await shelf.create({"label": "Fiction"})

    assert isinstance(doc["_id"], ObjectId)
    assert doc["capacity"] == 10
    assert isinstance(doc[STAT_FIELD]["created_at"], datetime)
    assert shelf.get_last_modified(doc) == doc[STAT_FIELD]["created_at"]

    stored = await shelf.find_one({"_id": doc["_id"]})
    assert stored["label"] == "Fiction"


async def test_create_rejects_invalid_document(shelf):
    with pytest.raises(DatabaseError):
        await shelf.create({"capacity": 3})


async def test_discriminator_create_tags_document(shelf):
    wall = shelf.discriminator("WallShelf", WallShelfDocument)

    doc = await wall.create({"label": "Hall"})
    await shelf.create({"label": "Floor"})

    assert doc["__t"] == "WallShelf"
    assert doc["anchors"] == 2
    assert await wall.count() == 1
    assert await shelf.count() == 2


async def test_find_with_options(shelf):
    for label, capacity in [("a", 3), ("b", 1), ("c", 2), ("d", 5)]:
        await shelf.create({"label": label, "capacity": capacity})

    docs = await shelf.find({}, None, {"sort": {"capacity": -1}, "skip": 1, "limit": 2})
    assert [doc["label"] for doc in docs] == ["a", "c"]

    docs = await shelf.find({}, None, {"sort": "capacity"})
    assert [doc["label"] for doc in docs] == ["b", "c", "a", "d"]


async def test_find_one_and_update_sets_updated_at(shelf):
    created = await shelf.create({"label": "Old"})

    updated = await shelf.find_one_and_update(
        {"_id": str(created["_id"])}, {"$set": {"label": "New"}}, {"new": True}
    )

    assert updated["label"] == "New"
    assert updated[STAT_FIELD]["updated_at"] is not None
    assert shelf.get_last_modified(updated) == updated[STAT_FIELD]["updated_at"]


async def test_find_one_and_delete(shelf):
    created = await shelf.create({"label": "Gone"})

    deleted = await shelf.find_one_and_delete({"_id": created["_id"]})

    assert deleted["label"] == "Gone"
    assert await shelf.find_one({"_id": created["_id"]}) is None
    assert await shelf.count() == 0
