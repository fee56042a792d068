# JSON encoding for documents returned by Motor
# resource_api/utils/encoders.py

from datetime import datetime
from typing import Any

from bson import ObjectId
from fastapi.encoders import jsonable_encoder

from resource_api.core.http_headers import to_utc

JSON_ENCODERS = {
    ObjectId: str,
    datetime: lambda value: to_utc(value).isoformat(),
}


def encode_document(data: Any) -> Any:
    """Converts documents (or lists of them) into JSON-compatible structures."""
    return jsonable_encoder(data, custom_encoder=JSON_ENCODERS)
