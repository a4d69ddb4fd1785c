from typing import Dict

import pytest

from dalrest.controller import WRITE_CREATE, ApiController
from dalrest.criteria import EqualsFilter
from dalrest.definitions import DefinitionRegistry
from dalrest.errors import (
    AccessDeniedError,
    GenericError,
    MethodNotAllowedError,
    NoEntityClonedError,
    NotFoundError,
    ResourceNotFoundError,
    UnknownRepositoryError,
    ValidationError,
)
from dalrest.repository import Context, RepositoryRegistry, WrittenEvent, WrittenResult

from conftest import FakeRepository


@pytest.fixture
def controller(registry: DefinitionRegistry, repository_registry: RepositoryRegistry) -> ApiController:
    return ApiController(registry, repository_registry)


#
# Read
#
def test_root_listing(controller: ApiController, repositories: Dict[str, FakeRepository], read_context: Context) -> None:
    segments = controller.resolve("product")

    result = controller.fetch_listing(segments, {"filter[name]": "Shoe"}, read_context)

    assert result.entities.ids() == ["SW1"]
    criteria = repositories["product"].calls_of("search")[0]
    assert criteria.filters == [EqualsFilter("product.name", "Shoe")]


def test_many_to_one_listing_filters_by_inverse(controller: ApiController, repositories: Dict[str, FakeRepository], read_context: Context) -> None:
    segments = controller.resolve("product", "ABC/manufacturer")

    controller.fetch_listing(segments, {}, read_context)

    criteria = repositories["product_manufacturer"].calls_of("search")[0]
    assert criteria.filters == [EqualsFilter("product_manufacturer.products.id", "ABC")]


def test_nested_listing_keeps_request_criteria(controller: ApiController, repositories: Dict[str, FakeRepository], read_context: Context) -> None:
    segments = controller.resolve("product", "SW1/prices")

    controller.fetch_listing(segments, {"filter[price]": "10", "page[limit]": "5"}, read_context)

    criteria = repositories["product_price"].calls_of("search")[0]
    assert criteria.filters == [EqualsFilter("product_price.price", "10"), EqualsFilter("product_price.productId", "SW1")]
    assert criteria.limit == 5


def test_many_to_many_listing_searches_the_far_side(controller: ApiController, repositories: Dict[str, FakeRepository], read_context: Context) -> None:
    segments = controller.resolve("product", "SW1/categories")

    controller.fetch_listing(segments, {}, read_context)

    assert controller.get_definition_of_path(segments).entity_name == "category"
    criteria = repositories["category"].calls_of("search")[0]
    assert criteria.filters == [EqualsFilter("category.products.id", "SW1")]


def test_detail(controller: ApiController, read_context: Context) -> None:
    entity = controller.detail(controller.resolve("product", "SW1"), read_context)

    assert entity.id == "SW1"
    assert entity.attributes["name"] == "Shoe"


def test_detail_not_found(controller: ApiController, read_context: Context) -> None:
    with pytest.raises(ResourceNotFoundError) as exc_info:
        controller.detail(controller.resolve("product", "NOPE"), read_context)
    assert exc_info.value.status_code == 404
    assert "id(NOPE)" in exc_info.value.message


def test_unknown_repository(registry: DefinitionRegistry, read_context: Context) -> None:
    controller = ApiController(registry, RepositoryRegistry())

    with pytest.raises(UnknownRepositoryError):
        controller.fetch_listing(controller.resolve("product"), {}, read_context)


#
# Create / Update
#
def test_root_create_returns_new_id(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.create(controller.resolve("product"), {"name": "Boot"}, write_context)

    assert outcome.definition.entity_name == "product"
    assert outcome.entity_id in repositories["product"].entities
    assert outcome.entity is None
    assert repositories["product"].calls_of("create") == [[{"name": "Boot"}]]


def test_root_create_with_full_response(controller: ApiController, write_context: Context) -> None:
    outcome = controller.create(controller.resolve("product"), {"id": "B1", "name": "Boot"}, write_context, fetch_entity=True)

    assert outcome.entity.id == "B1"
    assert outcome.entity.attributes == {"name": "Boot"}


def test_create_on_instance_path_is_not_allowed(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(MethodNotAllowedError) as exc_info:
        controller.create(controller.resolve("product", "SW1"), {"name": "Boot"}, write_context)
    assert exc_info.value.status_code == 405
    assert exc_info.value.allowed_methods == ["GET", "PATCH", "DELETE"]


def test_bulk_payload_is_rejected(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    with pytest.raises(ValidationError) as exc_info:
        controller.create(controller.resolve("product"), {0: {"name": "a"}, 1: {"name": "b"}}, write_context)
    assert "Please send the entities one by one" in exc_info.value.message
    assert repositories["product"].calls_of("create") == []


def test_write_requires_scope(controller: ApiController, read_context: Context) -> None:
    with pytest.raises(AccessDeniedError) as exc_info:
        controller.create(controller.resolve("product"), {"name": "Boot"}, read_context)
    assert exc_info.value.status_code == 403


def test_one_to_many_create_injects_parent_foreign_key(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    payload = {"price": 20}

    outcome = controller.create(controller.resolve("product", "SW1/prices"), payload, write_context)

    created = repositories["product_price"].calls_of("create")[0][0]
    assert created == {"price": 20, "productId": "SW1"}
    assert payload == {"price": 20}
    assert outcome.definition.entity_name == "product_price"


def test_translation_create_injects_parent_foreign_key(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    controller.create(controller.resolve("product", "SW1/translations"), {"languageId": "L1", "name": "Schuh"}, write_context)

    created = repositories["product_translation"].calls_of("create")[0][0]
    assert created == {"languageId": "L1", "name": "Schuh", "productId": "SW1"}


def test_many_to_one_create_updates_parent(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.create(controller.resolve("product", "SW1/manufacturer"), {"id": "M2", "name": "Bolt"}, write_context)

    assert outcome.entity_id == "M2"
    assert repositories["product"].calls_of("update") == [[{"id": "SW1", "manufacturerId": "M2"}]]
    assert repositories["product"].entities["SW1"]["manufacturerId"] == "M2"


def test_many_to_many_create_links_parent(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.create(controller.resolve("product", "SW1/categories"), {"id": "C9", "name": "Boots"}, write_context, fetch_entity=True)

    assert outcome.definition.entity_name == "category"
    assert outcome.entity.id == "C9"
    assert repositories["category"].calls_of("create") == [[{"id": "C9", "name": "Boots"}]]
    assert repositories["product"].calls_of("update") == [[{"id": "SW1", "categories": [{"id": "C9"}]}]]


def test_many_to_many_link_failure_is_surfaced(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    with pytest.raises(ValidationError):
        controller.create(controller.resolve("product", "NOPE/categories"), {"id": "C9", "name": "Boots"}, write_context)
    # the first step is not rolled back
    assert "C9" in repositories["category"].entities


def test_root_update_injects_path_id(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    payload = {"name": "Sneaker", "id": "OTHER"}

    outcome = controller.update(controller.resolve("product", "SW1"), payload, write_context)

    assert outcome.entity_id == "SW1"
    assert repositories["product"].calls_of("update") == [[{"name": "Sneaker", "id": "SW1"}]]
    assert payload["id"] == "OTHER"


def test_nested_update(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    controller.update(controller.resolve("product", "SW1/prices/P1"), {"price": 12}, write_context)

    assert repositories["product_price"].calls_of("update") == [[{"price": 12, "id": "P1", "productId": "SW1"}]]
    assert repositories["product_price"].entities["P1"]["price"] == 12


def test_nested_many_to_one_update_points_parent_to_child(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.update(controller.resolve("product", "SW1/manufacturer/M1"), {"name": "Acme Inc"}, write_context)

    assert outcome.entity_id == "M1"
    assert repositories["product_manufacturer"].calls_of("update") == [[{"name": "Acme Inc", "id": "M1"}]]
    assert repositories["product"].calls_of("update") == [[{"id": "SW1", "manufacturerId": "M1"}]]


def test_nested_many_to_many_update_links_parent(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.update(controller.resolve("product", "SW1/categories/C1"), {"name": "Sneakers"}, write_context, fetch_entity=True)

    assert outcome.definition.entity_name == "category"
    assert outcome.entity.attributes == {"name": "Sneakers"}
    assert repositories["category"].calls_of("update") == [[{"name": "Sneakers", "id": "C1"}]]
    assert repositories["product"].calls_of("update") == [[{"id": "SW1", "categories": [{"id": "C1"}]}]]


def test_translation_update_uses_composite_key(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.update(controller.resolve("product", "SW1/translations/de"), {"name": "Turnschuh"}, write_context, fetch_entity=True)

    assert repositories["product_translation"].calls_of("update") == [[{"name": "Turnschuh", "productId": "SW1", "languageId": "de"}]]
    assert outcome.entity_id == "SW1_de"
    assert outcome.entity.attributes["name"] == "Turnschuh"
    criteria = repositories["product_translation"].calls_of("search")[0]
    assert criteria.filters == [EqualsFilter("product_translation.productId", "SW1"), EqualsFilter("product_translation.languageId", "de")]


def test_translation_update_of_missing_language(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(ValidationError):
        controller.update(controller.resolve("product", "SW1/translations/fr"), {"name": "Chaussure"}, write_context)


def test_many_to_one_parent_update_failure_is_surfaced(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    with pytest.raises(ValidationError):
        controller.create(controller.resolve("product", "NOPE/manufacturer"), {"id": "M2", "name": "Bolt"}, write_context)
    # the first step is not rolled back
    assert "M2" in repositories["product_manufacturer"].entities


def test_update_without_id_is_not_allowed(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(MethodNotAllowedError):
        controller.update(controller.resolve("product"), {"name": "x"}, write_context)


def test_update_of_missing_resource(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(ValidationError):
        controller.update(controller.resolve("product", "NOPE"), {"name": "x"}, write_context)


def test_written_result_without_event(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(repositories["product"], "create", lambda payloads, context: WrittenResult())

    with pytest.raises(GenericError):
        controller.create(controller.resolve("product"), {"name": "Boot"}, write_context)


def test_execute_write_operation(registry: DefinitionRegistry, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    written = ApiController.execute_write_operation(repositories["product"], {"id": "X"}, WRITE_CREATE, write_context)

    assert written.get_event_by_definition(registry.get("product")) == WrittenEvent("product", ("X",))
    with pytest.raises(GenericError):
        ApiController.execute_write_operation(repositories["product"], {}, "upsert", write_context)


#
# Delete
#
def test_root_delete(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    outcome = controller.delete(controller.resolve("product", "SW1"), write_context)

    assert outcome.entity_id == "SW1"
    assert repositories["product"].calls_of("delete") == [[{"id": "SW1"}]]


def test_delete_of_missing_resource(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(ResourceNotFoundError):
        controller.delete(controller.resolve("product", "NOPE"), write_context)


def test_many_to_many_delete_removes_mapping_row(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    controller.delete(controller.resolve("product", "P/categories/C"), write_context)

    assert repositories["product_category"].calls_of("delete") == [[{"productId": "P", "categoryId": "C"}]]
    assert repositories["category"].calls_of("delete") == []


def test_translation_delete(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    controller.delete(controller.resolve("product", "SW1/translations/L1"), write_context)

    assert repositories["product_translation"].calls_of("delete") == [[{"productId": "SW1", "languageId": "L1"}]]


def test_one_to_many_delete(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    controller.delete(controller.resolve("product", "SW1/prices/P1"), write_context)

    assert "P1" not in repositories["product_price"].entities


def test_delete_without_id_is_not_allowed(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(MethodNotAllowedError):
        controller.delete(controller.resolve("product", "SW1/prices"), write_context)


#
# Actions
#
def test_clone(controller: ApiController, repositories: Dict[str, FakeRepository], write_context: Context) -> None:
    new_id = controller.clone("product", "SW1", write_context)

    assert new_id == "SW1-clone"
    assert repositories["product"].entities[new_id] == {"name": "Shoe", "manufacturerId": "M1"}


def test_clone_of_missing_entity(controller: ApiController, write_context: Context) -> None:
    with pytest.raises(NoEntityClonedError) as exc_info:
        controller.clone("product", "NOPE", write_context)
    assert exc_info.value.status_code == 400


def test_composite_search_requires_a_searcher(controller: ApiController, read_context: Context) -> None:
    with pytest.raises(NotFoundError):
        controller.composite_search("shoe", 20, read_context)


def test_composite_search(registry: DefinitionRegistry, repository_registry: RepositoryRegistry, read_context: Context) -> None:
    calls = []

    class Searcher:
        def search(self, term, limit, context):
            calls.append((term, limit))
            return {"product": ["SW1"]}

    controller = ApiController(registry, repository_registry, composite_searcher=Searcher())

    assert controller.composite_search("shoe", 5, read_context) == {"product": ["SW1"]}
    assert calls == [("shoe", 5)]
