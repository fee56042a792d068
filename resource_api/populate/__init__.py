from resource_api.populate.population import Population, populate
from resource_api.populate.populators import PopulateArray, PopulateElement, make_populators

__all__ = ["Population", "PopulateArray", "PopulateElement", "make_populators", "populate"]
