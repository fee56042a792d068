from typing import List, Optional

import pytest
from bson import ObjectId
from pydantic import BaseModel

from resource_api.data_access.models import ModelRegistry, ResourceModel
from resource_api.data_access.types import PyObjectId, Ref
from resource_api.populate import Population, PopulateArray, PopulateElement, make_populators, populate


class WriterDocument(BaseModel):
    name: str


class PressDocument(BaseModel):
    name: str
    parent: Optional[PyObjectId] = Ref("Press", default=None)


class NovelDocument(BaseModel):
    title: str
    writer: PyObjectId = Ref("Writer")
    co_writers: List[PyObjectId] = Ref("Writer", default_factory=list)
    press: Optional[PyObjectId] = Ref("Press", default=None)


@pytest.fixture()
def models(mongo_db):
    registry = ModelRegistry()
    writer = registry.register(ResourceModel("Writer", WriterDocument, resource=True))
    press = registry.register(ResourceModel("Press", PressDocument))
    novel = registry.register(ResourceModel("Novel", NovelDocument, resource=True))
    for model in (writer, press, novel):
        model.bind(mongo_db)
    return registry, writer, press, novel


def ids(docs):
    return {str(doc["_id"]) for doc in docs}


def test_make_populators(models):
    registry, writer, press, novel = models
    populators = make_populators(registry)

    assert set(populators) == {press.key, novel.key}
    assert isinstance(populators[novel.key]["writer"], PopulateElement)
    assert isinstance(populators[novel.key]["co_writers"], PopulateArray)
    assert populators[novel.key]["press"].model is press
    assert novel.key == "models_test:Novel"


async def test_populate_single_document(models):
    registry, writer, press, novel = models
    w1 = await writer.create({"name": "Pratchett"})
    w2 = await writer.create({"name": "Gaiman"})
    parent = await press.create({"name": "Holdings"})
    imprint = await press.create({"name": "Gollancz", "parent": parent["_id"]})
    book = await novel.create({
        "title": "Good Omens",
        "writer": w1["_id"],
        "co_writers": [w2["_id"], w1["_id"]],
        "press": imprint["_id"],
    })

    result = await populate(book, novel)

    assert set(result) == {"writers", "presses"}
    assert ids(result["writers"]) == {str(w1["_id"]), str(w2["_id"])}
    assert len(result["writers"]) == 2
    # Follows the press's own reference to its parent.
    assert ids(result["presses"]) == {str(imprint["_id"]), str(parent["_id"])}


async def test_populate_list_fetches_each_reference_once(models):
    registry, writer, press, novel = models
    w1 = await writer.create({"name": "Le Guin"})
    books = [
        await novel.create({"title": "The Dispossessed", "writer": w1["_id"]}),
        await novel.create({"title": "The Left Hand of Darkness", "writer": w1["_id"]}),
    ]

    result = await populate(books, novel)

    assert [doc["name"] for doc in result["writers"]] == ["Le Guin"]


async def test_populate_without_references(models):
    registry, writer, press, novel = models
    doc = await writer.create({"name": "Banks"})

    assert await populate(doc, writer) == {}


async def test_populate_missing_reference(models):
    registry, writer, press, novel = models
    book = await novel.create({"title": "Orphan", "writer": ObjectId()})

    assert await populate(book, novel) == {"writers": []}


async def test_population_ignores_unknown_keys(models):
    population = Population({})

    await population.populate_element("other:Thing", {"x": 1})
    await population.populate_array("other:Thing", [{"x": 1}])

    assert population.flatten() == {}
