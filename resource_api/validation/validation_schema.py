# Request-body validation derived from document classes
# resource_api/validation/validation_schema.py

import logging
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from resource_api.utils.helpers import get_path, has_path
from resource_api.validation.validators import CHECKS, INSTANCES, instance_of, validation_options

logger = logging.getLogger(__name__)

ValidationSchema = Dict[str, Dict[str, Any]]


def make_validation_for_field(field: Any, all_optional: bool = False) -> Dict[str, Any]:
    """
    Builds the rules for a single field.

    The 'optional' rule has to be the first key of the rules so the field is
    skipped before any other check when it is absent.
    """
    schema: Dict[str, Any] = {}

    has_default = not field.is_required()
    validation_optional = bool(validation_options(field).get("optional", False))

    if has_default or validation_optional or all_optional:
        schema["optional"] = True
    else:
        schema["notEmpty"] = True

    instance = instance_of(field)
    instance_validator = INSTANCES.get(instance) if instance else None

    if instance_validator:
        schema.update(instance_validator(field))

    return schema


def make_validation_schema(
    document_cls: Type[BaseModel],
    path_prefix: Optional[str] = None,
    all_optional: bool = False,
) -> ValidationSchema:
    """
    Reflects a document class into validation rules keyed by body path,
    e.g. ``{"book.title": {"notEmpty": True}}``.
    """
    prefix = f"{path_prefix}." if path_prefix else ""

    validation: ValidationSchema = {}
    for name, field in document_cls.model_fields.items():
        path = field.alias or name
        validation[prefix + path] = make_validation_for_field(field, all_optional=all_optional)

    return validation


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, dict)) and len(value) == 0)


def validate_body(body: Any, schema: ValidationSchema) -> List[Dict[str, Any]]:
    """
    Checks a request body against a validation schema.

    Returns:
        A list of ``{"param", "msg", "value"}`` errors; empty when the body is valid.
    """
    if not isinstance(body, dict):
        body = {}

    errors: List[Dict[str, Any]] = []

    for param, rules in schema.items():
        present = has_path(body, param)
        value = get_path(body, param)

        if rules.get("optional") and (not present or value is None):
            continue

        if rules.get("notEmpty") and _is_empty(value):
            errors.append({"param": param, "msg": "Invalid/missing value", "value": value})
            continue

        for rule, rule_options in rules.items():
            check = CHECKS.get(rule)
            if check is None:
                continue

            rule_options = rule_options if isinstance(rule_options, dict) else {}
            if not check(value, rule_options.get("options") or {}):
                errors.append({
                    "param": param,
                    "msg": rule_options.get("errorMessage", "Invalid value"),
                    "value": value,
                })

    if errors:
        logger.debug(f"Body validation failed with {len(errors)} error(s)")
    return errors
