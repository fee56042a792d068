# Model layer over Motor collections
# resource_api/data_access/models.py

import logging
import typing
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Type

import inflect
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel, TypeAdapter, ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from resource_api.core.errors import CastError, DatabaseError
from resource_api.data_access.types import validate_object_id
from resource_api.utils.helpers import get_path, to_snake

logger = logging.getLogger(__name__)

STAT_FIELD = "_stat"
DEFAULT_DISCRIMINATOR_KEY = "__t"

# Operators whose operands are cast with the field's type
_SCALAR_OPERATORS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte"}
_LIST_OPERATORS = {"$in", "$nin", "$all"}

_inflect = inflect.engine()


def pluralize(word: str) -> str:
    """'Book' -> 'Books', 'person' -> 'people'"""
    return _inflect.plural_noun(word) or word


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds, the precision MongoDB stores."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def is_projection_exclusive(projection: Optional[Mapping[str, Any]]) -> bool:
    """
    An exclusive projection only has to have one key that is false (or 0). An
    empty projection is exclusive as well, meaning all fields are included.
    """
    if not projection:
        return True

    value = next(iter(projection.values()))
    return value is False or value == 0


class ModelOptions:
    def __init__(self, resource: bool = False):
        self.resource = resource


class FieldRef:
    """A field that references documents of another model."""

    def __init__(self, path: str, model_name: str, many: bool):
        self.path = path
        self.model_name = model_name
        self.many = many

    def __repr__(self) -> str:
        return f"FieldRef({self.path!r} -> {self.model_name}, many={self.many})"


def _unwrap_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) is typing.Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _list_item_type(annotation: Any) -> Optional[Any]:
    annotation = _unwrap_optional(annotation)
    if typing.get_origin(annotation) in (list, List, set, tuple):
        args = typing.get_args(annotation)
        return args[0] if args else Any
    return None


class ResourceModel:
    """
    A document class bound to a MongoDB collection.

    Documents are stored and returned as plain dicts; the Pydantic document class
    describes their shape for validation, casting, and population.
    """

    def __init__(
        self,
        name: str,
        document_cls: Type[BaseModel],
        *,
        connection: str = "$default",
        collection: Optional[str] = None,
        resource: bool = False,
        discriminator_key: str = DEFAULT_DISCRIMINATOR_KEY,
        base: Optional["ResourceModel"] = None,
        registry: Optional["ModelRegistry"] = None,
    ):
        self.model_name = name
        self.document_cls = document_cls
        self.connection = connection
        self.collection_name = collection or to_snake(pluralize(name))
        self.options = ModelOptions(resource=resource)
        self.discriminator_key = discriminator_key
        self.discriminators: Dict[str, "ResourceModel"] = {}
        self.base = base
        self.registry = registry
        self._db: Optional[AsyncIOMotorDatabase] = None
        self._adapters: Dict[Tuple[str, bool], TypeAdapter] = {}

    def __repr__(self) -> str:
        return f"ResourceModel({self.model_name!r}, collection={self.collection_name!r})"

    # --- Binding ---

    def bind(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        for child in self.discriminators.values():
            child.bind(db)

    def unbind(self) -> None:
        self._db = None
        for child in self.discriminators.values():
            child.unbind()

    @property
    def is_bound(self) -> bool:
        return self._db is not None

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            logger.critical(f"Model {self.model_name} is not bound to a database. Check initialization.")
            raise ConnectionError(f"Database connection not available for {self.model_name}")
        return self._db

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.db[self.collection_name]

    @property
    def key(self) -> str:
        """Identifies the model across connections, e.g. 'library:Book'."""
        return f"{self.db.name}:{self.model_name}"

    # --- Schema reflection ---

    def fields(self) -> Iterator[Tuple[str, Any]]:
        """Yields (stored path, FieldInfo) for each document field."""
        for name, field in self.document_cls.model_fields.items():
            yield field.alias or name, field

    def references(self) -> Dict[str, FieldRef]:
        refs: Dict[str, FieldRef] = {}
        for path, field in self.fields():
            extra = field.json_schema_extra if isinstance(field.json_schema_extra, dict) else {}
            ref = extra.get("ref")
            if ref:
                refs[path] = FieldRef(path, ref, many=_list_item_type(field.annotation) is not None)
        return refs

    # --- Discriminators ---

    @property
    def discriminator_value(self) -> Optional[str]:
        return self.model_name if self.base is not None else None

    def discriminator(self, name: str, document_cls: Type[BaseModel]) -> "ResourceModel":
        """Creates a child model stored in this model's collection, tagged by name."""
        if name in self.discriminators:
            raise ValueError(f"Discriminator with name '{name}' already exists")

        child = ResourceModel(
            name,
            document_cls,
            connection=self.connection,
            collection=self.collection_name,
            resource=self.options.resource,
            discriminator_key=self.discriminator_key,
            base=self,
            registry=self.registry,
        )
        self.discriminators[name] = child

        if self.registry is not None:
            self.registry.register(child)
        if self._db is not None:
            child.bind(self._db)

        return child

    def resolve(self, doc: Optional[Mapping[str, Any]]) -> "ResourceModel":
        """
        Returns the discriminator model named by the document, or this model.

        Raises:
            DatabaseError: If the document names an unknown discriminator.
        """
        if not self.discriminators or not doc:
            return self

        value = doc.get(self.discriminator_key)
        if not value:
            return self

        try:
            return self.discriminators[value]
        except KeyError:
            raise DatabaseError(f"{self.model_name} has no discriminator named {value!r}")

    # --- Casting ---

    def cast_id(self, value: Any) -> ObjectId:
        try:
            return validate_object_id(value)
        except ValueError as e:
            raise CastError(f"Cast to ObjectId failed for value {value!r}") from e

    def _adapter(self, path: str, element: bool = True) -> Optional[TypeAdapter]:
        """
        TypeAdapter for a field. With ``element`` set, array fields adapt their
        items, since queries match arrays on their elements.
        """
        cache_key = (path, element)
        if cache_key in self._adapters:
            return self._adapters[cache_key]

        for field_path, field in self.fields():
            if field_path == path:
                item_type = _list_item_type(field.annotation)
                if element and item_type is not None:
                    adapter = TypeAdapter(item_type)
                else:
                    adapter = TypeAdapter(_annotated(field.annotation, field))
                self._adapters[cache_key] = adapter
                return adapter
        return None

    def _cast_value(self, path: str, value: Any) -> Any:
        if path == "_id":
            return self.cast_id(value)

        adapter = self._adapter(path)
        if adapter is None:
            return value

        try:
            return adapter.validate_python(value)
        except ValidationError as e:
            raise CastError(f"Cast failed for value {value!r} at path '{path}'") from e

    def _cast_condition(self, path: str, condition: Any) -> Any:
        if isinstance(condition, Mapping) and any(str(k).startswith("$") for k in condition):
            cast: Dict[str, Any] = {}
            for op, operand in condition.items():
                if op in _SCALAR_OPERATORS:
                    cast[op] = self._cast_value(path, operand)
                elif op in _LIST_OPERATORS and isinstance(operand, (list, tuple)):
                    cast[op] = [self._cast_value(path, item) for item in operand]
                elif op == "$exists":
                    cast[op] = operand if isinstance(operand, bool) else str(operand).lower() in ("1", "true")
                else:
                    cast[op] = operand
            return cast

        if isinstance(condition, (list, tuple)) and path != "_id" and _list_item_type(
            self._field_annotation(path)
        ) is not None:
            return [self._cast_value(path, item) for item in condition]

        if isinstance(condition, (str, int, float, bool, ObjectId, datetime)):
            return self._cast_value(path, condition)

        return condition

    def _field_annotation(self, path: str) -> Any:
        for field_path, field in self.fields():
            if field_path == path:
                return field.annotation
        return None

    def cast_filter(self, filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Casts query-string values (always strings) into the types declared by the
        document class, and scopes discriminator models to their documents.
        """
        cast: Dict[str, Any] = {}

        for path, condition in (filter or {}).items():
            if path in ("$and", "$or", "$nor") and isinstance(condition, (list, tuple)):
                cast[path] = [self.cast_filter(sub) for sub in condition]
            else:
                cast[path] = self._cast_condition(path, condition)

        if self.discriminator_value is not None:
            cast[self.discriminator_key] = self.discriminator_value

        return cast

    def cast_update(self, update: Mapping[str, Any]) -> Dict[str, Any]:
        """Casts a ``$set`` update, dropping paths the document class does not declare."""
        known = {path for path, _ in self.fields()}
        cast: Dict[str, Any] = {}

        for op, values in update.items():
            if op != "$set" or not isinstance(values, Mapping):
                cast[op] = values
                continue

            changes: Dict[str, Any] = {}
            for path, value in values.items():
                if path not in known:
                    logger.debug(f"Dropping unknown path '{path}' from {self.model_name} update")
                    continue
                try:
                    changes[path] = self._adapter(path, element=False).validate_python(value)
                except ValidationError as e:
                    raise DatabaseError(f"Validation failed for path '{path}': {e}") from e
            cast["$set"] = changes

        cast.setdefault("$set", {})[f"{STAT_FIELD}.updated_at"] = utc_now()
        return cast

    def _projection(self, projection: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not projection:
            return None

        projection = dict(projection)
        if not is_projection_exclusive(projection):
            # Inclusive projections still need the metadata used for headers.
            projection.setdefault(STAT_FIELD, 1)
            if self.discriminators or self.base is not None:
                projection.setdefault(self.discriminator_key, 1)
        return projection

    # --- Queries ---

    async def create(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        """Validates and inserts a new document, returning it as stored."""
        try:
            instance = self.document_cls.model_validate(dict(doc))
        except ValidationError as e:
            logger.warning(f"{self.model_name} validation failed on create: {e}")
            raise DatabaseError(str(e)) from e

        stored = instance.model_dump(by_alias=True)
        stored["_id"] = self.cast_id(doc["_id"]) if doc.get("_id") else ObjectId()
        stored[STAT_FIELD] = {"created_at": utc_now()}
        if self.discriminator_value is not None:
            stored[self.discriminator_key] = self.discriminator_value

        try:
            await self.collection.insert_one(stored)
        except PyMongoError as e:
            logger.error(f"DB error creating {self.model_name}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

        logger.debug(f"Created {self.model_name} {stored['_id']}")
        return stored

    async def find_one(
        self, filter: Optional[Mapping[str, Any]] = None, projection: Optional[Mapping[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        query = self.cast_filter(filter)
        try:
            return await self.collection.find_one(query, self._projection(projection))
        except PyMongoError as e:
            logger.error(f"DB error finding {self.model_name} with filter {query}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

    async def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Finds documents, honouring ``skip``, ``limit`` and ``sort`` options."""
        query = self.cast_filter(filter)
        options = options or {}
        try:
            cursor = self.collection.find(query, self._projection(projection))
            sort = options.get("sort")
            if sort:
                cursor = cursor.sort(self._sort_spec(sort))
            if options.get("skip"):
                cursor = cursor.skip(int(options["skip"]))
            if options.get("limit"):
                cursor = cursor.limit(int(options["limit"]))
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"DB error finding {self.model_name} with filter {query}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

    @staticmethod
    def _sort_spec(sort: Any) -> List[Tuple[str, int]]:
        if isinstance(sort, str):
            # "name -created" style
            spec = []
            for part in sort.split():
                if part.startswith("-"):
                    spec.append((part[1:], DESCENDING))
                else:
                    spec.append((part.lstrip("+"), ASCENDING))
            return spec
        if isinstance(sort, Mapping):
            return [(path, DESCENDING if int(direction) < 0 else ASCENDING) for path, direction in sort.items()]
        return list(sort)

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        options = options or {}
        query = self.cast_filter(filter)
        changes = self.cast_update(update)
        return_document = ReturnDocument.AFTER if options.get("new", True) else ReturnDocument.BEFORE

        try:
            return await self.collection.find_one_and_update(
                query,
                changes,
                projection=self._projection(options.get("fields")),
                upsert=bool(options.get("upsert", False)),
                return_document=return_document,
            )
        except PyMongoError as e:
            logger.error(f"DB error updating {self.model_name} with filter {query}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

    async def find_one_and_delete(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        query = self.cast_filter(filter)
        try:
            return await self.collection.find_one_and_delete(query)
        except PyMongoError as e:
            logger.error(f"DB error deleting {self.model_name} with filter {query}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        query = self.cast_filter(filter)
        try:
            return await self.collection.count_documents(query)
        except PyMongoError as e:
            logger.error(f"DB error counting {self.model_name} with filter {query}: {e}", exc_info=True)
            raise DatabaseError(str(e)) from e

    @staticmethod
    def get_last_modified(doc: Optional[Mapping[str, Any]]) -> Optional[datetime]:
        """The time a document last changed: its update time, else its creation time."""
        return get_path(doc, f"{STAT_FIELD}.updated_at") or get_path(doc, f"{STAT_FIELD}.created_at")


def _annotated(annotation: Any, field: Any) -> Any:
    """Re-attaches a field's constraint metadata (e.g. PyObjectId validators) to its type."""
    if field.metadata:
        return typing.Annotated[(annotation, *field.metadata)]
    return annotation


class ModelRegistry:
    """Registered models by name."""

    def __init__(self):
        self._models: Dict[str, ResourceModel] = {}

    def register(self, model: ResourceModel) -> ResourceModel:
        if model.model_name in self._models:
            raise ValueError(f"Cannot overwrite '{model.model_name}' model once registered")
        model.registry = self
        self._models[model.model_name] = model
        logger.debug(f"Registered model {model.model_name} ({model.collection_name})")
        return model

    def get(self, name: str) -> ResourceModel:
        try:
            return self._models[name]
        except KeyError:
            raise KeyError(f"Model {name} has not been registered")

    def __contains__(self, name: str) -> bool:
        return name in self._models

    def __iter__(self) -> Iterator[ResourceModel]:
        return iter(list(self._models.values()))

    def bind(self, connection_manager: Any) -> None:
        """Binds every model to the database of its connection."""
        for model in self:
            if model.base is not None:
                continue
            try:
                model.bind(connection_manager.get_database(model.connection))
            except (ConnectionError, KeyError) as e:
                # Requests for this model answer 503 until the connection is available.
                logger.error(f"Could not bind model {model.model_name}: {e}")

    def unbind(self) -> None:
        for model in self:
            model.unbind()

    def clear(self) -> None:
        self._models.clear()


# Application-wide registry
registry = ModelRegistry()


def model(name: str, document_cls: Type[BaseModel], **kwargs: Any) -> ResourceModel:
    """Registers a plain model."""
    return registry.register(ResourceModel(name, document_cls, registry=registry, **kwargs))


def resource(name: str, document_cls: Type[BaseModel], **kwargs: Any) -> ResourceModel:
    """Registers a model that resource controllers may expose."""
    kwargs["resource"] = True
    return registry.register(ResourceModel(name, document_cls, registry=registry, **kwargs))
