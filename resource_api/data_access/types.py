# Pydantic field types for MongoDB values
# resource_api/data_access/types.py

from typing import Annotated, Any

from bson import ObjectId
from pydantic import Field, PlainSerializer, PlainValidator, WithJsonSchema


def validate_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"Invalid ObjectId: {value!r}")


# ObjectId stays an ObjectId in python mode (what Motor stores) and becomes a str in JSON.
PyObjectId = Annotated[
    ObjectId,
    PlainValidator(validate_object_id),
    PlainSerializer(str, return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "pattern": "^[0-9a-fA-F]{24}$"}),
]


def Ref(model_name: str, default: Any = ..., **kwargs: Any) -> Any:
    """
    Declares a field that references documents of another registered model.

        author: PyObjectId = Ref("Author")
        tags: List[PyObjectId] = Ref("Tag", default_factory=list)
    """
    extra = dict(kwargs.pop("json_schema_extra", None) or {})
    extra["ref"] = model_name
    if "default_factory" in kwargs:
        return Field(json_schema_extra=extra, **kwargs)
    return Field(default, json_schema_extra=extra, **kwargs)


__all__ = ["PyObjectId", "Ref", "validate_object_id"]
