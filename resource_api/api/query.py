# Query-string parsing with bracket notation
# resource_api/api/query.py

import logging
import re
from typing import Any, Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)

_BRACKET = re.compile(r"\[([^\[\]]*)\]")


def split_key(key: str) -> List[str]:
    """
    'options[sort][name]' -> ['options', 'sort', 'name']
    'tags[]'              -> ['tags', '']
    Keys with unbalanced brackets are taken literally.
    """
    head, bracket, _ = key.partition("[")
    if not bracket or not head:
        return [key]

    rest = key[len(head):]
    parts = _BRACKET.findall(rest)
    if "".join(f"[{part}]" for part in parts) != rest:
        return [key]
    return [head, *parts]


def _assign(container: Dict[str, Any], parts: List[str], value: str) -> None:
    head, rest = parts[0], parts[1:]

    if not rest:
        if head in container:
            existing = container[head]
            container[head] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            container[head] = value
        return

    if rest == [""]:
        existing = container.get(head)
        if existing is None:
            container[head] = [value]
        elif isinstance(existing, list):
            existing.append(value)
        else:
            container[head] = [existing, value]
        return

    child = container.get(head)
    if not isinstance(child, dict):
        if child is not None:
            logger.debug(f"Query key '{head}' used both as a value and an object; keeping the object")
        child = {}
        container[head] = child
    _assign(child, rest, value)


def parse_nested_query(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Parses query-string pairs into nested dicts and lists:

        name=Tolkien&options[limit]=10&options[sort][title]=-1&genre[$in][]=fantasy
        -> {"name": "Tolkien",
            "options": {"limit": "10", "sort": {"title": "-1"}},
            "genre": {"$in": ["fantasy"]}}
    """
    result: Dict[str, Any] = {}
    for key, value in items:
        _assign(result, split_key(key), value)
    return result
