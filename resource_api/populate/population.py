# Resolution of reference fields across models
# resource_api/populate/population.py

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from resource_api.data_access.models import ResourceModel, pluralize
from resource_api.populate.populators import (
    Populate,
    PopulateArray,
    PopulateElement,
    Populator,
    make_populators,
)
from resource_api.utils.helpers import flatten, lower_camel

logger = logging.getLogger(__name__)


class _RemainingIds:
    """Visitor that filters out ids already populated for a plural."""

    def __init__(self, seen: Set[str], value: Any):
        self.seen = seen
        self.value = value

    def visit_populate_element(self, populate: PopulateElement) -> Optional[Any]:
        id_str = str(self.value)
        if id_str in self.seen:
            return None

        self.seen.add(id_str)
        return self.value

    def visit_populate_array(self, populate: PopulateArray) -> Optional[List[Any]]:
        remaining = []
        for id in self.value:
            id_str = str(id)
            if id_str not in self.seen:
                self.seen.add(id_str)
                remaining.append(id)

        return remaining or None


class Population:
    """
    Collects the documents referenced by a set of documents, following
    references transitively. Each referenced document is fetched once and
    appears once under the plural name of its model.
    """

    def __init__(self, populators: Mapping[str, Populator]):
        self._populators = populators
        self._ids: Dict[str, Set[str]] = {}
        self.population: Dict[str, List[Any]] = {}

    @staticmethod
    def get_key_from_model(model: ResourceModel) -> str:
        return model.key

    def flatten(self) -> Dict[str, List[Dict[str, Any]]]:
        return {plural: flatten(values) for plural, values in self.population.items()}

    async def populate_element(self, key: str, doc: Optional[Mapping[str, Any]]) -> None:
        populator = self._populators.get(key)
        if not populator:
            return

        await self._populate(populator, doc)

    async def populate_array(self, key: str, docs: List[Mapping[str, Any]]) -> None:
        populator = self._populators.get(key)
        if not populator:
            return

        await asyncio.gather(*(self._populate(populator, doc) for doc in docs))

    async def _populate(self, populator: Populator, data: Optional[Mapping[str, Any]]) -> None:
        if not data:
            return

        await asyncio.gather(*(
            self._populate_path(populate, data.get(path)) for path, populate in populator.items()
        ))

    async def _populate_path(self, populate: Populate, value: Any) -> None:
        if not value:
            return

        plural = lower_camel(pluralize(populate.model.model_name))

        # Make sure the result and ids for the current population exist.
        self.population.setdefault(plural, [])
        seen = self._ids.setdefault(plural, set())

        # Ids are claimed before awaiting, so concurrent paths never fetch a document twice.
        remaining = populate.accept(_RemainingIds(seen, value))
        if not remaining:
            return

        result = await populate.populate(remaining)
        if not result:
            logger.debug(f"No {plural} found for {remaining}")
            return

        self.population[plural].append(result)

        key = self.get_key_from_model(populate.model)
        if isinstance(result, list):
            await self.populate_array(key, result)
        else:
            await self.populate_element(key, result)


async def populate(data: Any, model: ResourceModel) -> Dict[str, List[Dict[str, Any]]]:
    """
    Populates the references of one document or a list of documents.

    Returns:
        The referenced documents keyed by plural model name, e.g. ``{"authors": [...]}``.
    """
    populators = make_populators(model.registry)
    population = Population(populators)
    key = Population.get_key_from_model(model)

    if isinstance(data, list):
        await population.populate_array(key, data)
    else:
        await population.populate_element(key, data)

    return population.flatten()
