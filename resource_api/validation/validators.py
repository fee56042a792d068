# Per-type validation rules and the checks that enforce them
# resource_api/validation/validators.py

import logging
import typing
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional

from annotated_types import MaxLen, MinLen
from bson import ObjectId

logger = logging.getLogger(__name__)

NUMBER_KINDS = ("Decimal", "Float", "Int", "Numeric")


def validation_options(field: Any) -> Dict[str, Any]:
    """The ``validation`` block declared in a field's json_schema_extra."""
    extra = field.json_schema_extra if isinstance(field.json_schema_extra, dict) else {}
    return extra.get("validation") or {}


def instance_of(field: Any) -> Optional[str]:
    """Names the stored type of a field: Number, String, ObjectId, Date, Boolean or Array."""
    annotation = field.annotation
    if typing.get_origin(annotation) is typing.Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        annotation = args[0] if len(args) == 1 else annotation
    if typing.get_origin(annotation) is typing.Annotated:
        annotation = typing.get_args(annotation)[0]

    if typing.get_origin(annotation) in (list, set, tuple):
        return "Array"
    if annotation is bool:
        return "Boolean"
    if annotation in (int, float, Decimal):
        return "Number"
    if annotation is str:
        return "String"
    if annotation is ObjectId:
        return "ObjectId"
    if annotation in (datetime, date):
        return "Date"
    return None


# --- Rule builders, one per instance ---

def number(field: Any) -> Dict[str, Any]:
    schema: Dict[str, Any] = {}
    validation = validation_options(field)

    kind = validation.get("kind")
    if kind:
        if kind not in NUMBER_KINDS:
            raise ValueError(f"Invalid number kind: {kind}")

        is_kind = f"is{kind}"
        schema[is_kind] = {"errorMessage": f"Invalid/missing {kind}"}

        if validation.get("options"):
            schema[is_kind]["options"] = validation["options"]

    return schema


def string(field: Any) -> Dict[str, Any]:
    length: Dict[str, int] = {}
    for constraint in field.metadata:
        if isinstance(constraint, MinLen):
            length["min"] = constraint.min_length
        elif isinstance(constraint, MaxLen):
            length["max"] = constraint.max_length

    if not length:
        return {}
    return {"isLength": {"errorMessage": "Invalid length", "options": length}}


def object_id(field: Any) -> Dict[str, Any]:
    return {"isMongoId": {"errorMessage": "Invalid ObjectId"}}


def date_(field: Any) -> Dict[str, Any]:
    return {"isDate": {"errorMessage": "Invalid date"}}


def boolean(field: Any) -> Dict[str, Any]:
    return {"isBoolean": {"errorMessage": "Invalid boolean"}}


INSTANCES: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "Number": number,
    "String": string,
    "ObjectId": object_id,
    "Date": date_,
    "Boolean": boolean,
}


# --- Checks ---

def _in_range(value: Any, options: Mapping[str, Any]) -> bool:
    if "min" in options and value < options["min"]:
        return False
    if "max" in options and value > options["max"]:
        return False
    return True


def is_int(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return _in_range(value, options)
    if isinstance(value, str):
        try:
            return _in_range(int(value.strip()), options)
        except ValueError:
            return False
    return False


def is_float(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return False
    try:
        number_value = float(value)
    except (TypeError, ValueError):
        return False
    return _in_range(number_value, options)


def is_decimal(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return False
    try:
        Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False
    return True


def is_numeric(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    return isinstance(value, str) and value.strip().lstrip("+-").isdigit()


def is_length(value: Any, options: Mapping[str, Any]) -> bool:
    if not isinstance(value, str):
        return False
    return _in_range(len(value), options)


def is_mongo_id(value: Any, options: Mapping[str, Any]) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and ObjectId.is_valid(value))


def is_date(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def is_boolean(value: Any, options: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return True
    return isinstance(value, str) and value.lower() in ("true", "false", "0", "1")


CHECKS: Dict[str, Callable[[Any, Mapping[str, Any]], bool]] = {
    "isInt": is_int,
    "isFloat": is_float,
    "isDecimal": is_decimal,
    "isNumeric": is_numeric,
    "isLength": is_length,
    "isMongoId": is_mongo_id,
    "isDate": is_date,
    "isBoolean": is_boolean,
}
