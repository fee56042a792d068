from datetime import datetime, timezone

import pytest
from bson import ObjectId

from resource_api.utils.encoders import encode_document
from resource_api.utils.helpers import flatten, get_path, has_path, is_truthy, lower_camel, to_snake


def test_names():
    assert lower_camel("PublishingHouse") == "publishingHouse"
    assert lower_camel("") == ""
    assert to_snake("PublishingHouse") == "publishing_house"


@pytest.mark.parametrize("value", ["true", "1", "yes", "on", True, 1])
def test_truthy(value):
    assert is_truthy(value)


@pytest.mark.parametrize("value", ["false", "0", "", "no", "Off", "null", None, False, 0])
def test_falsy(value):
    assert not is_truthy(value)


def test_paths():
    doc = {"_stat": {"created_at": 1}, "title": None}

    assert get_path(doc, "_stat.created_at") == 1
    assert get_path(doc, "_stat.updated_at", "missing") == "missing"
    assert has_path(doc, "title")
    assert not has_path(doc, "title.text")


def test_flatten():
    assert flatten([1, [2, [3, (4,)]], []]) == [1, 2, 3, 4]


def test_encode_document():
    oid = ObjectId()
    created = datetime(2024, 5, 1, 12, 30)

    encoded = encode_document({"_id": oid, "refs": [oid], "_stat": {"created_at": created}})

    assert encoded == {
        "_id": str(oid),
        "refs": [str(oid)],
        "_stat": {"created_at": "2024-05-01T12:30:00+00:00"},
    }
    assert encode_document(True) is True
