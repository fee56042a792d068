# resource_api/utils/helpers.py

import inspect
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

_FALSY_STRINGS = {"", "0", "false", "no", "off", "null", "undefined"}

# --- Text Processing ---

def lower_camel(name: str) -> str:
    """
    Converts a model name into the key used in request/response envelopes.

    Args:
        name: A model name such as "Book" or "PublishingHouse".

    Returns:
        The lower camel case form, e.g. "book" or "publishingHouse".
    """
    if not name:
        return name
    return name[0].lower() + name[1:]


def to_snake(name: str) -> str:
    """'PublishingHouse' -> 'publishing_house'"""
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


# --- Query String Helpers ---

def is_truthy(value: Any) -> bool:
    """
    Interprets query string flags the way a browser would send them:
    "true", "1" and "yes" are truthy; "false", "0" and empty values are not.
    """
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_STRINGS
    return bool(value)


# --- Data Structure Helpers ---

def get_path(data: Optional[Dict[str, Any]], path: str, default: Any = None) -> Any:
    """Reads a dotted path ('a.b.c') from nested dictionaries."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def has_path(data: Optional[Dict[str, Any]], path: str) -> bool:
    sentinel = object()
    return get_path(data, path, sentinel) is not sentinel


def flatten(values: Iterable[Any]) -> List[Any]:
    """Flattens nested lists (any depth) into a single list."""
    result: List[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            result.extend(flatten(value))
        else:
            result.append(value)
    return result


async def maybe_await(value: Any) -> Any:
    """Awaits value when it is awaitable; lets hooks be plain functions or coroutines."""
    if inspect.isawaitable(value):
        return await value
    return value
