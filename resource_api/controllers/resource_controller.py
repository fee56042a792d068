# Generic CRUD handlers for a resource model
# resource_api/controllers/resource_controller.py

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from resource_api.api.query import parse_nested_query
from resource_api.core import http_headers
from resource_api.core.config import settings
from resource_api.core.errors import DatabaseError, HttpError
from resource_api.core.messaging import Messenger, messaging
from resource_api.data_access.models import ResourceModel, pluralize
from resource_api.populate import populate
from resource_api.utils.encoders import encode_document
from resource_api.utils.helpers import is_truthy, lower_camel, maybe_await
from resource_api.validation.validation_schema import make_validation_schema, validate_body

logger = logging.getLogger(__name__)

Hook = Callable[..., Any]

# Hooks renamed over time; the old names still work but log a warning.
DEPRECATED_HOOKS = {
    "pre_create": "prepare_document",
    "update_filter": "prepare_filter",
}


# --- Default hooks ---

async def _on_authorize(request: Request) -> None:
    return None

async def _on_prepare_projection(request: Request) -> Dict[str, Any]:
    return {}

async def _on_prepare_options(request: Request, options: Dict[str, Any]) -> Dict[str, Any]:
    return options

async def _on_prepare_filter(request: Request, filter: Dict[str, Any]) -> Dict[str, Any]:
    return filter

async def _on_prepare_document(request: Request, doc: Dict[str, Any]) -> Dict[str, Any]:
    return doc

async def _on_post_execute(request: Request, result: Any) -> Any:
    return result


class Hooks:
    """
    The customisation points of an action. Hooks may be plain functions or
    coroutines. ``authorize`` denies a request by raising an HttpError.
    """

    def __init__(self, on: Optional[Mapping[str, Hook]] = None):
        on = dict(on or {})

        for old, new in DEPRECATED_HOOKS.items():
            if old in on:
                logger.warning(f"on.{old} is deprecated; use on.{new} instead")
                on.setdefault(new, on[old])

        unknown = set(on) - {
            "authorize", "prepare_filter", "prepare_projection", "prepare_options",
            "prepare_document", "post_execute", *DEPRECATED_HOOKS,
        }
        if unknown:
            raise ValueError(f"Unknown hook(s): {', '.join(sorted(unknown))}")

        self._authorize = on.get("authorize") or _on_authorize
        self._prepare_filter = on.get("prepare_filter") or _on_prepare_filter
        self._prepare_projection = on.get("prepare_projection") or _on_prepare_projection
        self._prepare_options = on.get("prepare_options") or _on_prepare_options
        self._prepare_document = on.get("prepare_document") or _on_prepare_document
        self._post_execute = on.get("post_execute") or _on_post_execute

    async def authorize(self, request: Request) -> None:
        await maybe_await(self._authorize(request))

    async def prepare_filter(self, request: Request, filter: Dict[str, Any]) -> Dict[str, Any]:
        return await maybe_await(self._prepare_filter(request, filter))

    async def prepare_projection(self, request: Request) -> Dict[str, Any]:
        return await maybe_await(self._prepare_projection(request)) or {}

    async def prepare_options(self, request: Request, options: Dict[str, Any]) -> Dict[str, Any]:
        return await maybe_await(self._prepare_options(request, options)) or {}

    async def prepare_document(self, request: Request, doc: Dict[str, Any]) -> Dict[str, Any]:
        return await maybe_await(self._prepare_document(request, doc))

    async def post_execute(self, request: Request, result: Any) -> Any:
        return await maybe_await(self._post_execute(request, result))


class Action:
    """A request handler split into a validation stage and an execution stage."""

    def __init__(
        self,
        name: str,
        validate: Callable[[Request], Awaitable[None]],
        execute: Callable[[Request], Awaitable[JSONResponse]],
    ):
        self.name = name
        self.validate = validate
        self.execute = execute

    async def __call__(self, request: Request) -> JSONResponse:
        await self.validate(request)
        return await self.execute(request)

    def __repr__(self) -> str:
        return f"Action({self.name!r})"


# --- Request helpers ---

async def read_body(request: Request) -> Dict[str, Any]:
    """The JSON request body; an empty body is an empty object."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HttpError(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
    return body if isinstance(body, dict) else {}


def read_query(request: Request) -> Dict[str, Any]:
    """The parsed query string. Every call returns a fresh copy the caller may mutate."""
    return parse_nested_query(request.query_params.multi_items())


def set_headers(request: Request, headers: Mapping[str, str]) -> None:
    """Headers for the eventual response, kept on the request so error responses (304) carry them too."""
    if getattr(request.state, "response_headers", None) is None:
        request.state.response_headers = {}
    request.state.response_headers.update(headers)


def respond(request: Request, result: Any) -> JSONResponse:
    headers = getattr(request.state, "response_headers", None) or {}
    return JSONResponse(status_code=status.HTTP_200_OK, content=encode_document(result), headers=headers)


def if_modified_since(request: Request) -> Optional[datetime]:
    return http_headers.parse_http_date(request.headers.get(http_headers.IF_MODIFIED_SINCE))


def parse_options(raw: Any) -> Dict[str, Any]:
    """Extracts skip, limit and sort from ``options[...]`` query parameters."""
    options: Dict[str, Any] = {}
    if not isinstance(raw, dict):
        return options

    try:
        if raw.get("skip"):
            options["skip"] = int(raw["skip"])
        if raw.get("limit"):
            options["limit"] = int(raw["limit"])
    except (TypeError, ValueError):
        raise HttpError(status.HTTP_400_BAD_REQUEST, "Invalid query options")

    sort = raw.get("sort")
    if sort:
        if isinstance(sort, dict):
            options["sort"] = {path: _sort_direction(direction) for path, direction in sort.items()}
        else:
            options["sort"] = sort

    return options


def _sort_direction(value: Any) -> int:
    if isinstance(value, str) and value.lower() in ("asc", "ascending"):
        return 1
    if isinstance(value, str) and value.lower() in ("desc", "descending"):
        return -1
    try:
        return -1 if int(value) < 0 else 1
    except (TypeError, ValueError):
        raise HttpError(status.HTTP_400_BAD_REQUEST, f"Invalid sort direction: {value}")


async def run_db(operation: Awaitable[Any], err_msg: str) -> Any:
    """
    Runs a model operation, translating its failure into an HttpError:
    400 when the database rejects it, 404 when nothing matched.
    """
    try:
        result = await operation
    except DatabaseError as e:
        logger.warning(f"{err_msg}: {e}")
        raise HttpError(status.HTTP_400_BAD_REQUEST, err_msg)
    except ConnectionError as e:
        logger.error(f"{err_msg}: {e}")
        raise HttpError(status.HTTP_503_SERVICE_UNAVAILABLE, "Database service not available.")

    if result is None:
        raise HttpError(status.HTTP_404_NOT_FOUND, "Not Found")

    return result


class ResourceController:
    """
    Base class for all resource controllers. Each action method returns an
    Action bound to the controller's model.
    """

    def __init__(
        self,
        model: Optional[ResourceModel] = None,
        name: Optional[str] = None,
        id_param: Optional[str] = None,
        event_prefix: Optional[str] = None,
        messenger: Optional[Messenger] = None,
    ):
        if model is None:
            raise ValueError("Options must define model property")

        if not model.options.resource:
            raise ValueError(f"{model.model_name} is not a resource; use the resource () method")

        self.model = model
        self.name = name or lower_camel(model.model_name)
        self.plural = pluralize(self.name)
        self.id_param = id_param or f"{self.name}Id"
        self.event_prefix = event_prefix if event_prefix is not None else settings.DEFAULT_EVENT_PREFIX
        self.messenger = messenger or messaging

        # Validation for create and update.
        self.create_validation = make_validation_schema(model.document_cls, path_prefix=self.name)
        self.update_validation = make_validation_schema(
            model.document_cls, path_prefix=self.name, all_optional=True
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model.model_name!r})"

    def compute_event_name(self, action: str) -> str:
        prefix = self.event_prefix or ""

        if prefix:
            prefix += "."

        return f"{prefix}{self.name}.{action}"

    # --- Shared stages ---

    def _resource_id(self, request: Request) -> str:
        rc_id = request.path_params.get(self.id_param)
        if not rc_id:
            raise HttpError(status.HTTP_400_BAD_REQUEST, "Missing resource id")
        return rc_id

    def _check_id_then_authorize(self, hooks: Hooks) -> Callable[[Request], Awaitable[None]]:
        async def validate(request: Request) -> None:
            self._resource_id(request)
            await hooks.authorize(request)
        return validate

    def _check_body(self, schema: Dict[str, Any]) -> Callable[[Request], Awaitable[Dict[str, Any]]]:
        async def check(request: Request) -> Dict[str, Any]:
            body = await read_body(request)
            envelope = body.get(self.name)
            if envelope is not None and not isinstance(envelope, dict):
                raise HttpError(status.HTTP_400_BAD_REQUEST, "Validation failed", details=[
                    {"param": self.name, "msg": "Invalid/missing value", "value": envelope},
                ])

            errors = validate_body(body, schema)
            if errors:
                raise HttpError(status.HTTP_400_BAD_REQUEST, "Validation failed", details=errors)
            return body
        return check

    def _set_last_modified(self, request: Request, doc: Any) -> Optional[datetime]:
        last_modified = self.model.get_last_modified(doc)
        if last_modified is not None:
            set_headers(request, {http_headers.LAST_MODIFIED: http_headers.format_http_date(last_modified)})
        return last_modified

    def _check_not_modified(self, request: Request, last_modified: Optional[datetime]) -> None:
        # Not part of the query itself, since that could not tell 304 from 404.
        since = if_modified_since(request)
        if since is None or last_modified is None:
            return

        if http_headers.compare_dates(since, last_modified) != -1:
            raise HttpError(status.HTTP_304_NOT_MODIFIED, "Not Changed")

    async def _with_population(self, request: Request, result: Dict[str, Any], data: Any, flag: Any) -> Dict[str, Any]:
        if not is_truthy(flag) or not data:
            return result

        details = await populate(data, self.model)
        result.update(details)
        return result

    def _split_query(self, request: Request):
        """Splits the query string into filter, options and the populate flag."""
        filter = read_query(request)
        raw_options = filter.pop("options", None)
        options = parse_options(raw_options)
        populate_flag = filter.pop("populate", None)
        if isinstance(raw_options, dict) and "populate" in raw_options:
            populate_flag = raw_options["populate"]
        return filter, options, populate_flag

    # --- Actions ---

    def create(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Create a new resource."""
        hooks = Hooks(on)
        event_name = self.compute_event_name("created")
        check_body = self._check_body(self.create_validation)

        async def validate(request: Request) -> None:
            # First, validate the input based on the target model, then let the
            # subclass perform its own authorization.
            await check_body(request)
            await hooks.authorize(request)

        async def execute(request: Request) -> JSONResponse:
            body = await read_body(request)
            doc = dict(body.get(self.name) or {})
            doc = await hooks.prepare_document(request, doc)

            # Resolve the correct model in case the document names a discriminator.
            try:
                model = self.model.resolve(doc)
            except DatabaseError as e:
                logger.warning(f"Failed to create resource: {e}")
                raise HttpError(status.HTTP_400_BAD_REQUEST, "Failed to create resource")

            created = await run_db(model.create(doc), "Failed to create resource")

            await self.messenger.emit(event_name, created)
            self._set_last_modified(request, created)

            data = await hooks.post_execute(request, created)
            return respond(request, {self.name: data})

        return Action("create", validate, execute)

    def get(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Get a single resource."""
        hooks = Hooks(on)

        async def execute(request: Request) -> JSONResponse:
            rc_id = self._resource_id(request)
            query = read_query(request)

            filter, projection = await asyncio.gather(
                hooks.prepare_filter(request, {"_id": rc_id}),
                hooks.prepare_projection(request),
            )

            found = await run_db(self.model.find_one(filter, projection), "Failed to retrieve resource")

            last_modified = self._set_last_modified(request, found)
            self._check_not_modified(request, last_modified)

            data = await hooks.post_execute(request, found)
            result = await self._with_population(request, {self.name: data}, data, query.get("populate"))
            return respond(request, result)

        return Action("get", self._check_id_then_authorize(hooks), execute)

    def get_all(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Get a list of the resources, if not all."""
        hooks = Hooks(on)

        async def execute(request: Request) -> JSONResponse:
            query_filter, query_options, populate_flag = self._split_query(request)

            filter, projection, options = await asyncio.gather(
                hooks.prepare_filter(request, query_filter),
                hooks.prepare_projection(request),
                hooks.prepare_options(request, query_options),
            )

            found = await run_db(self.model.find(filter, projection, options), "Failed to retrieve resource")

            # An empty list is always returned regardless of If-Modified-Since, since
            # Last-Modified only covers the items in the list.
            if found:
                self._process_list_headers(request, found)

            data = await hooks.post_execute(request, found)
            result = await self._with_population(request, {self.plural: data}, data, populate_flag)
            return respond(request, result)

        return Action("get_all", hooks.authorize, execute)

    def _process_list_headers(self, request: Request, docs: List[Dict[str, Any]]) -> None:
        modified_times = [self.model.get_last_modified(doc) for doc in docs]

        since = if_modified_since(request)
        if since is not None:
            # 304 only when no item changed after the date in the header.
            changed = any(
                last_modified is None or http_headers.compare_dates(since, last_modified) == -1
                for last_modified in modified_times
            )
            if not changed:
                raise HttpError(status.HTTP_304_NOT_MODIFIED, "Not Changed")

        known = [last_modified for last_modified in modified_times if last_modified is not None]
        if known:
            latest = max(known, key=lambda value: http_headers.to_utc(value))
            set_headers(request, {http_headers.LAST_MODIFIED: http_headers.format_http_date(latest)})

    def get_first(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Get the first resource matching the query string."""
        hooks = Hooks(on)

        async def execute(request: Request) -> JSONResponse:
            query_filter, query_options, populate_flag = self._split_query(request)

            filter, projection, options = await asyncio.gather(
                hooks.prepare_filter(request, query_filter),
                hooks.prepare_projection(request),
                hooks.prepare_options(request, query_options),
            )
            options = {**options, "limit": 1}

            found = await run_db(self.model.find(filter, projection, options), "Failed to retrieve resource")
            if not found:
                raise HttpError(status.HTTP_404_NOT_FOUND, "Not Found")

            first = found[0]
            last_modified = self._set_last_modified(request, first)
            self._check_not_modified(request, last_modified)

            data = await hooks.post_execute(request, first)
            result = await self._with_population(request, {self.name: data}, data, populate_flag)
            return respond(request, result)

        return Action("get_first", hooks.authorize, execute)

    def update(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Update a single resource."""
        hooks = Hooks(on)
        event_name = self.compute_event_name("updated")
        check_body = self._check_body(self.update_validation)

        async def validate(request: Request) -> None:
            self._resource_id(request)
            await check_body(request)
            await hooks.authorize(request)

        async def execute(request: Request) -> JSONResponse:
            rc_id = self._resource_id(request)
            body = await read_body(request)

            update = {"$set": dict(body.get(self.name) or {})}

            filter, options, projection = await asyncio.gather(
                hooks.prepare_filter(request, {"_id": rc_id}),
                hooks.prepare_options(request, {"upsert": False, "new": True}),
                hooks.prepare_projection(request),
            )
            options = {**options, "fields": projection}

            updated = await run_db(
                self.model.find_one_and_update(filter, update, options), "Failed to update resource"
            )

            await self.messenger.emit(event_name, updated)
            self._set_last_modified(request, updated)

            data = await hooks.post_execute(request, updated)
            return respond(request, {self.name: data})

        return Action("update", validate, execute)

    def delete(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Delete a single resource."""
        hooks = Hooks(on)
        event_name = self.compute_event_name("deleted")

        async def execute(request: Request) -> JSONResponse:
            rc_id = self._resource_id(request)
            filter = await hooks.prepare_filter(request, {"_id": rc_id})

            deleted = await run_db(self.model.find_one_and_delete(filter), "Failed to delete resource")

            await self.messenger.emit(event_name, deleted)
            await hooks.post_execute(request, deleted)

            return respond(request, True)

        return Action("delete", self._check_id_then_authorize(hooks), execute)

    def count(self, on: Optional[Mapping[str, Hook]] = None) -> Action:
        """Count the number of resources."""
        hooks = Hooks(on)

        async def execute(request: Request) -> JSONResponse:
            query_filter, _, _ = self._split_query(request)
            filter = await hooks.prepare_filter(request, query_filter)

            count = await run_db(self.model.count(filter), "Failed to count resources")

            count = await hooks.post_execute(request, count)
            return respond(request, {"count": count})

        return Action("count", hooks.authorize, execute)
