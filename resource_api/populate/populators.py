# Populators: how to fetch the documents a reference field points at
# resource_api/populate/populators.py

import logging
from typing import Any, Dict, Iterable, List, Optional

from resource_api.data_access.models import ModelRegistry, ResourceModel

logger = logging.getLogger(__name__)


class Populate:
    """Fetches referenced documents of one model."""

    def __init__(self, model: ResourceModel):
        self.model = model

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model.model_name})"


class PopulateElement(Populate):
    """A reference field holding a single id."""

    async def populate(self, id: Any) -> Optional[Dict[str, Any]]:
        return await self.model.find_one({"_id": id})

    def accept(self, visitor: Any) -> Any:
        return visitor.visit_populate_element(self)


class PopulateArray(Populate):
    """A reference field holding a list of ids."""

    async def populate(self, ids: Iterable[Any]) -> List[Dict[str, Any]]:
        return await self.model.find({"_id": {"$in": list(ids)}})

    def accept(self, visitor: Any) -> Any:
        return visitor.visit_populate_array(self)


Populator = Dict[str, Populate]


def make_populator(model: ResourceModel, registry: ModelRegistry) -> Populator:
    """Maps each reference path of a model to the Populate that resolves it."""
    populator: Populator = {}

    for path, ref in model.references().items():
        if ref.model_name not in registry:
            logger.warning(f"{model.model_name}.{path} references unknown model {ref.model_name}; skipping")
            continue

        target = registry.get(ref.model_name)
        populator[path] = PopulateArray(target) if ref.many else PopulateElement(target)

    return populator


def make_populators(registry: ModelRegistry) -> Dict[str, Populator]:
    """Populators for every bound model, keyed by model key ('<db>:<model name>')."""
    populators: Dict[str, Populator] = {}

    for model in registry:
        if not model.is_bound:
            continue

        populator = make_populator(model, registry)
        if populator:
            populators[model.key] = populator

    return populators
