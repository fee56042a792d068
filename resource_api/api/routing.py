# Binding resource controllers to FastAPI routers
# resource_api/api/routing.py

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from resource_api.controllers.resource_controller import Action, Hook, ResourceController

logger = logging.getLogger(__name__)

ALL_ACTIONS = ("create", "get_all", "count", "get_first", "get", "update", "delete")

# (method, path template, summary). Fixed paths come before the {id} routes.
ROUTES: Dict[str, tuple] = {
    "create": ("POST", "", "Create {name}"),
    "get_all": ("GET", "", "List {plural}"),
    "count": ("GET", "/count", "Count {plural}"),
    "get_first": ("GET", "/first", "Get first {name}"),
    "get": ("GET", "/{{{id}}}", "Get {name}"),
    "update": ("PUT", "/{{{id}}}", "Update {name}"),
    "delete": ("DELETE", "/{{{id}}}", "Delete {name}"),
}


def _endpoint(action: Action):
    async def endpoint(request: Request) -> JSONResponse:
        return await action(request)

    endpoint.__name__ = f"{action.name}_endpoint"
    return endpoint


def resource_router(
    controller: ResourceController,
    actions: Optional[Iterable[str]] = None,
    on: Optional[Mapping[str, Mapping[str, Hook]]] = None,
    **router_kwargs: Any,
) -> APIRouter:
    """
    Creates an APIRouter exposing a controller's actions:

        POST   ""        create        GET ""        get_all
        GET    /count    count         GET /first    get_first
        GET    /{id}     get           PUT /{id}     update
        DELETE /{id}     delete

    Args:
        controller: The resource controller to expose.
        actions: The actions to expose; all of them by default.
        on: Hooks per action name, e.g. ``{"get_all": {"prepare_filter": f}}``.
    """
    selected = list(actions) if actions is not None else list(ALL_ACTIONS)
    unknown = set(selected) - set(ALL_ACTIONS)
    if unknown:
        raise ValueError(f"Unknown action(s): {', '.join(sorted(unknown))}")

    on = on or {}
    router = APIRouter(**router_kwargs)

    for name in ALL_ACTIONS:
        if name not in selected:
            continue

        method, path, summary = ROUTES[name]
        action: Action = getattr(controller, name)(on=on.get(name))

        router.add_api_route(
            path.format(id=controller.id_param),
            _endpoint(action),
            methods=[method],
            summary=summary.format(name=controller.name, plural=controller.plural),
            name=f"{controller.name}.{name}",
        )
        logger.debug(f"Routed {method} {path.format(id=controller.id_param) or '/'} to {controller!r}.{name}")

    return router
