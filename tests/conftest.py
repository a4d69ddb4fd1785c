from typing import Any, Dict, List, Optional, Sequence

import pytest

from dalrest.definitions import (
    DefinitionRegistry,
    EntityDefinition,
    Field,
    ManyToManyAssociation,
    ManyToOneAssociation,
    OneToManyAssociation,
    TranslationsAssociation,
)
from dalrest.repository import (
    Context,
    DeleteResult,
    Entity,
    EntityCollection,
    RepositoryRegistry,
    SearchResult,
    WrittenEvent,
    WrittenResult,
)


def build_registry() -> DefinitionRegistry:
    return DefinitionRegistry(
        [
            EntityDefinition(
                "product",
                [
                    Field("id", "id", primary_key=True),
                    Field("name", "name"),
                    Field("manufacturerId", "product_manufacturer_id"),
                    ManyToOneAssociation("manufacturer", "product_manufacturer_id", reference_class="product_manufacturer"),
                    OneToManyAssociation("prices", reference_class="product_price", reference_field="product_id"),
                    ManyToManyAssociation(
                        "categories",
                        reference_class="product_category",
                        reference_definition="category",
                        mapping_local_column="product_id",
                        mapping_reference_column="category_id",
                    ),
                    TranslationsAssociation("translations", reference_class="product_translation", reference_field="product_id"),
                ],
            ),
            EntityDefinition(
                "product_manufacturer",
                [
                    Field("id", "id", primary_key=True),
                    Field("name", "name"),
                    OneToManyAssociation("products", reference_class="product", reference_field="product_manufacturer_id"),
                ],
            ),
            EntityDefinition(
                "category",
                [
                    Field("id", "id", primary_key=True),
                    Field("name", "name"),
                    ManyToManyAssociation(
                        "products",
                        reference_class="product_category",
                        reference_definition="product",
                        mapping_local_column="category_id",
                        mapping_reference_column="product_id",
                    ),
                ],
            ),
            EntityDefinition(
                "product_category",
                [
                    Field("productId", "product_id", primary_key=True),
                    Field("categoryId", "category_id", primary_key=True),
                ],
            ),
            EntityDefinition(
                "product_price",
                [
                    Field("id", "id", primary_key=True),
                    Field("productId", "product_id"),
                    Field("price", "price"),
                ],
            ),
            EntityDefinition(
                "product_translation",
                [
                    Field("productId", "product_id", primary_key=True),
                    Field("languageId", "language_id", primary_key=True),
                    Field("name", "name"),
                ],
            ),
        ]
    )


class FakeRepository:
    """
    In-memory repository that records every call,
    entities with a composite primary key are stored under the joined key values ("SW1_de")
    """

    def __init__(self, entity_name: str, entities: Optional[Dict[str, Dict[str, Any]]] = None, primary_keys: Sequence[str] = ("id",)) -> None:
        self.entity_name = entity_name
        self.entities: Dict[str, Dict[str, Any]] = {key: dict(value) for key, value in (entities or {}).items()}
        self.primary_keys = tuple(primary_keys)
        self.calls: List[tuple] = []
        self._counter = 0

    def calls_of(self, operation: str) -> List[Any]:
        return [args for name, args in self.calls if name == operation]

    def key_of(self, payload: Dict[str, Any]) -> Optional[str]:
        if self.primary_keys == ("id",):
            return payload.get("id")
        if any(payload.get(key) is None for key in self.primary_keys):
            return None
        return "_".join(str(payload[key]) for key in self.primary_keys)

    def _entity(self, entity_id: str) -> Entity:
        return Entity(self.entity_name, entity_id, dict(self.entities[entity_id]))

    def search(self, criteria, context):
        self.calls.append(("search", criteria))
        entities = EntityCollection(self._entity(entity_id) for entity_id in self.entities)
        return SearchResult(entities, len(self.entities), criteria)

    def read(self, ids, context):
        self.calls.append(("read", list(ids)))
        return EntityCollection(self._entity(entity_id) for entity_id in ids if entity_id in self.entities)

    def create(self, payloads, context):
        self.calls.append(("create", list(payloads)))
        ids = []
        for payload in payloads:
            self._counter += 1
            entity_id = self.key_of(payload) or f"{self.entity_name}-{self._counter}"
            self.entities[entity_id] = {key: value for key, value in payload.items() if key != "id"}
            ids.append(entity_id)
        return WrittenResult([WrittenEvent(self.entity_name, tuple(ids))])

    def update(self, payloads, context):
        self.calls.append(("update", list(payloads)))
        ids, errors = [], []
        for payload in payloads:
            entity_id = self.key_of(payload)
            if entity_id not in self.entities:
                errors.append(f"{entity_id} not found")
                continue
            self.entities[entity_id].update({key: value for key, value in payload.items() if key != "id"})
            ids.append(entity_id)
        return WrittenResult([WrittenEvent(self.entity_name, tuple(ids), tuple(errors))])

    def delete(self, primary_keys, context):
        self.calls.append(("delete", list(primary_keys)))
        ids, errors = [], []
        for primary_key in primary_keys:
            entity_id = self.key_of(primary_key)
            if entity_id in self.entities:
                del self.entities[entity_id]
                ids.append(entity_id)
            elif len(self.primary_keys) > 1:
                # mapping rows are not stored
                ids.append(entity_id)
            else:
                errors.append(f"{entity_id} not found")
        return DeleteResult(tuple(ids), tuple(errors))

    def clone(self, entity_id, context):
        self.calls.append(("clone", entity_id))
        if entity_id not in self.entities:
            return WrittenResult()
        new_id = f"{entity_id}-clone"
        self.entities[new_id] = dict(self.entities[entity_id])
        return WrittenResult([WrittenEvent(self.entity_name, (new_id,))])


@pytest.fixture
def registry() -> DefinitionRegistry:
    return build_registry()


@pytest.fixture
def repositories(registry: DefinitionRegistry) -> Dict[str, FakeRepository]:
    repos = {
        definition.entity_name: FakeRepository(definition.entity_name, primary_keys=[field.property_name for field in definition.primary_keys]) for definition in registry
    }
    repos["product"].entities["SW1"] = {"name": "Shoe", "manufacturerId": "M1"}
    repos["product_manufacturer"].entities["M1"] = {"name": "Acme"}
    repos["category"].entities["C1"] = {"name": "Shoes"}
    repos["product_price"].entities["P1"] = {"productId": "SW1", "price": 10}
    repos["product_translation"].entities["SW1_de"] = {"productId": "SW1", "languageId": "de", "name": "Schuh"}
    return repos


@pytest.fixture
def repository_registry(repositories: Dict[str, FakeRepository]) -> RepositoryRegistry:
    return RepositoryRegistry(repositories)


@pytest.fixture
def write_context() -> Context:
    return Context(scopes=frozenset({"write"}))


@pytest.fixture
def read_context() -> Context:
    return Context()
