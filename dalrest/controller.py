#  The ApiController maps resolved resource paths onto repository operations:
#  - listing of collections and nested collections (with the parent filter)
#  - detail of a single resource
#  - create/update, including foreign key injection, many-to-many linking and translation keys
#  - delete, including many-to-many mapping and translation deletes
#  - clone
#
#  The controller is stateless, it only holds the definition and repository registries.
#  Multi-step writes (e.g. create the child, then link it to the parent) are not atomic:
#  when a later step fails, the earlier writes are kept and the error is raised to the caller.
#
# pylint: disable=too-many-arguments
#
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

import dalrest
from .associations import delete_target, dispatch, exhaustive, foreign_key_field, listing_filter, translation_key_fields, DeleteTarget
from .body_decoder import is_collection
from .config import get_config
from .criteria import Criteria, EqualsFilter, RequestCriteriaBuilder
from .definitions import AssociationKind, DefinitionRegistry, EntityDefinition
from .errors import (
    AccessDeniedError,
    GenericError,
    MethodNotAllowedError,
    NoEntityClonedError,
    NotFoundError,
    ResourceNotFoundError,
    ValidationError,
)
from .path_resolver import PathSegment, resolve_path, url_to_snake_case
from .repository import CompositeSearcher, Context, Entity, Repository, RepositoryRegistry, SearchResult, WrittenResult

WRITE_CREATE = "create"
WRITE_UPDATE = "update"


@dataclass
class WriteOutcome:
    """
    :param definition: definition of the written (or deleted) resource
    :param entity_id: id of the written resource
    :param entity: the written resource, only read back when requested
    """

    definition: EntityDefinition
    entity_id: Any
    entity: Optional[Entity] = None


class ApiController:
    """
    Generic entity controller

    :param registry: definition registry
    :param repositories: repository registry
    :param criteria_builder: builds search criteria from the request parameters
    :param composite_searcher: optional full text searcher over all entities
    """

    def __init__(
        self,
        registry: DefinitionRegistry,
        repositories: RepositoryRegistry,
        criteria_builder: Optional[RequestCriteriaBuilder] = None,
        composite_searcher: Optional[CompositeSearcher] = None,
    ) -> None:
        self.registry = registry
        self.repositories = repositories
        self.criteria_builder = criteria_builder or RequestCriteriaBuilder()
        self.composite_searcher = composite_searcher

    def resolve(self, entity_name: str, path: str = "") -> List[PathSegment]:
        return resolve_path(self.registry, entity_name, path)

    def get_repository(self, definition: EntityDefinition) -> Repository:
        return self.repositories.get(definition)

    #
    # Read
    #
    def detail(self, segments: List[PathSegment], context: Context) -> Entity:
        """
        Read the resource identified by the last path segment
        """
        last = segments[-1]
        definition = last.definition
        repository = self.get_repository(definition)

        entities = repository.read([last.value], context)
        entity = entities.get(last.value)
        if entity is None:
            raise ResourceNotFoundError(definition.entity_name, {"id": last.value})
        return entity

    def fetch_listing(self, segments: List[PathSegment], params: Mapping[str, Any], context: Context) -> SearchResult:
        """
        Search the collection identified by the path

        - /product : criteria from the request params
        - /product/SW1/prices : criteria from the request params + the filter to the parent, e.g. product_price.productId = SW1
        """
        first = segments[0]
        if len(segments) == 1:
            criteria = self.criteria_builder.handle_request(params, Criteria(), first.definition, context)
            return self.get_repository(first.definition).search(criteria, context)

        child, parent = segments[-1], segments[-2]
        definition = child.definition
        criteria = self.criteria_builder.handle_request(params, Criteria(), definition, context)
        criteria.add_filter(listing_filter(child.field, parent.definition, definition, parent.value))
        dalrest.log.debug(f"Listing {definition.entity_name} with {criteria}")

        return self.get_repository(definition).search(criteria, context)

    @staticmethod
    def get_definition_of_path(segments: List[PathSegment]) -> EntityDefinition:
        """
        :return: definition of the resources identified by the path,
        e.g. /product/SW1/categories => category
        """
        return segments[-1].definition

    #
    # Write
    #
    def create(self, segments: List[PathSegment], payload: Mapping[Any, Any], context: Context, fetch_entity: bool = False) -> WriteOutcome:
        return self.write(segments, payload, context, WRITE_CREATE, fetch_entity)

    def update(self, segments: List[PathSegment], payload: Mapping[Any, Any], context: Context, fetch_entity: bool = False) -> WriteOutcome:
        return self.write(segments, payload, context, WRITE_UPDATE, fetch_entity)

    def write(self, segments: List[PathSegment], payload: Mapping[Any, Any], context: Context, verb: str, fetch_entity: bool = False) -> WriteOutcome:
        """
        :param segments: resolved path
        :param payload: decoded request body
        :param context: request context
        :param verb: WRITE_CREATE or WRITE_UPDATE
        :param fetch_entity: read back the written resource
        :return: WriteOutcome
        """
        self.check_write_scope(context)
        if is_collection(payload):
            raise ValidationError("Only single write operations are supported. Please send the entities one by one.")

        last = segments[-1]
        if verb == WRITE_CREATE and last.value:
            # POSTing to an instance isn't allowed (https://jsonapi.org/format/#crud-creating-client-ids)
            allowed = ["GET", "PATCH", "DELETE"]
            raise MethodNotAllowedError(f"POSTing to instance is not allowed (Allow: {', '.join(allowed)})", allowed)
        if verb == WRITE_UPDATE and not last.value:
            raise MethodNotAllowedError("PATCHing a collection is not allowed (Allow: GET, POST)", ["GET", "POST"])

        if len(segments) == 1:
            definition = last.definition
            repository = self.get_repository(definition)
            written = self.execute_write_operation(repository, self._identify(payload, last, verb), verb, context)
            entity_id = self._written_ids(written, definition)[-1]
            return self._outcome(repository, definition, entity_id, context, fetch_entity)

        handler = dispatch(self.WRITE_HANDLERS, last.field)
        return handler(self, last, segments[-2], payload, verb, context, fetch_entity)

    @staticmethod
    def _identify(payload: Mapping[Any, Any], segment: PathSegment, verb: str) -> Mapping[Any, Any]:
        """
        The id of an update is taken from the path, an id in the body is overwritten
        """
        if verb == WRITE_UPDATE:
            return {**payload, "id": segment.value}
        return payload

    def _write_one_to_many(self, child, parent, payload, verb, context, fetch_entity) -> WriteOutcome:
        # POST /product/SW1/prices => prices.productId = SW1
        definition = child.definition
        foreign_key = foreign_key_field(child.field, definition)
        payload = {**self._identify(payload, child, verb), foreign_key.property_name: parent.value}

        repository = self.get_repository(definition)
        written = self.execute_write_operation(repository, payload, verb, context)
        entity_id = self._written_ids(written, definition)[-1]
        return self._outcome(repository, definition, entity_id, context, fetch_entity)

    def _write_many_to_one(self, child, parent, payload, verb, context, fetch_entity) -> WriteOutcome:
        # POST /product/SW1/manufacturer => write the manufacturer, then point product.manufacturerId to it
        definition = child.definition
        repository = self.get_repository(definition)
        written = self.execute_write_operation(repository, self._identify(payload, child, verb), verb, context)
        entity_id = self._written_ids(written, definition)[-1]

        parent_definition = parent.definition
        foreign_key = parent_definition.fields.get_by_storage_name(child.field.storage_name)
        if foreign_key is None:
            raise GenericError(f"{parent_definition.entity_name} has no foreign key for {child.field.property_name}")

        parent_payload = {"id": parent.value, foreign_key.property_name: entity_id}
        parent_written = self.get_repository(parent_definition).update([parent_payload], context)
        self._raise_write_errors(parent_written, parent_definition)

        return self._outcome(repository, definition, entity_id, context, fetch_entity)

    def _write_many_to_many(self, child, parent, payload, verb, context, fetch_entity) -> WriteOutcome:
        # POST /product/SW1/categories => write the category, then link it: {id: SW1, categories: [{id: <category id>}]}
        reference = child.definition
        repository = self.get_repository(reference)
        written = self.execute_write_operation(repository, self._identify(payload, child, verb), verb, context)
        ids = self._written_ids(written, reference)

        entity = repository.read(ids, context).first()
        if entity is None:
            raise ResourceNotFoundError(reference.entity_name, {"id": ids[-1]})

        parent_definition = parent.definition
        parent_payload = {"id": parent.value, child.field.property_name: [{"id": entity.id}]}
        parent_written = self.get_repository(parent_definition).update([parent_payload], context)
        self._raise_write_errors(parent_written, parent_definition)

        return WriteOutcome(reference, entity.id, entity if fetch_entity else None)

    def _write_translation(self, child, parent, payload, verb, context, fetch_entity) -> WriteOutcome:
        # POST /product/SW1/translations => {productId: SW1, languageId: <from the body>, ...}
        # PATCH /product/SW1/translations/de => {productId: SW1, languageId: de, ...}, translations have no id
        definition = child.definition
        reference, language = translation_key_fields(child.field, definition)
        if verb == WRITE_UPDATE:
            key = {reference.property_name: parent.value, language.property_name: child.value}
            payload = {**payload, **key}
        else:
            payload = {**payload, reference.property_name: parent.value}
            key = {reference.property_name: parent.value, language.property_name: payload.get(language.property_name)}

        repository = self.get_repository(definition)
        written = self.execute_write_operation(repository, payload, verb, context)
        entity_id = self._written_ids(written, definition)[-1]

        entity = self.find_by_key(repository, definition, key, context) if fetch_entity else None
        return WriteOutcome(definition, entity_id, entity)

    WRITE_HANDLERS = exhaustive(
        {
            AssociationKind.MANY_TO_ONE: _write_many_to_one,
            AssociationKind.ONE_TO_MANY: _write_one_to_many,
            AssociationKind.MANY_TO_MANY: _write_many_to_many,
            AssociationKind.TRANSLATION_SET: _write_translation,
        }
    )

    @staticmethod
    def find_by_key(repository: Repository, definition: EntityDefinition, key: Mapping[str, Any], context: Context) -> Entity:
        """
        Search a resource by its (composite) primary key, e.g. {productId: SW1, languageId: de}
        """
        criteria = Criteria().add_filter(*[EqualsFilter(f"{definition.entity_name}.{name}", value) for name, value in key.items()])
        criteria.limit = 1
        entity = repository.search(criteria, context).entities.first()
        if entity is None:
            raise ResourceNotFoundError(definition.entity_name, dict(key))
        return entity

    @staticmethod
    def execute_write_operation(repository: Repository, payload: Mapping[Any, Any], verb: str, context: Context) -> WrittenResult:
        if verb == WRITE_CREATE:
            return repository.create([payload], context)
        if verb == WRITE_UPDATE:
            return repository.update([payload], context)
        raise GenericError(f"Unsupported write operation {verb}.")

    @staticmethod
    def _raise_write_errors(written: WrittenResult, definition: EntityDefinition) -> None:
        event = written.get_event_by_definition(definition)
        if event is not None and event.errors:
            raise ValidationError("; ".join(str(error) for error in event.errors))

    def _written_ids(self, written: WrittenResult, definition: EntityDefinition) -> List[Any]:
        self._raise_write_errors(written, definition)
        ids = written.get_ids(definition)
        if not ids:
            raise GenericError(f"No {definition.entity_name} has been written")
        return ids

    @staticmethod
    def _outcome(repository, definition, entity_id, context, fetch_entity) -> WriteOutcome:
        entity = None
        if fetch_entity:
            entity = repository.read([entity_id], context).get(entity_id)
            if entity is None:
                raise ResourceNotFoundError(definition.entity_name, {"id": entity_id})
        return WriteOutcome(definition, entity_id, entity)

    #
    # Delete
    #
    def delete(self, segments: List[PathSegment], context: Context) -> WriteOutcome:
        """
        - /product/SW1 : delete product {id: SW1}
        - /product/SW1/manufacturer/M1, /product/SW1/prices/P1 : delete the child {id: ...}
        - /product/SW1/categories/C1 : delete the mapping {productId: SW1, categoryId: C1}
        - /product/SW1/translations/L1 : delete the translation {productId: SW1, languageId: L1}
        """
        self.check_write_scope(context)
        last = segments[-1]
        if not last.value:
            raise MethodNotAllowedError("DELETE requires a resource id (Allow: GET, POST)", ["GET", "POST"])

        if len(segments) == 1:
            target = DeleteTarget(last.definition, {"id": last.value})
        else:
            target = delete_target(self.registry, last.field, segments[-2].value, last.value)

        self.do_delete(target, context)
        return WriteOutcome(last.definition, last.value)

    def do_delete(self, target: DeleteTarget, context: Context) -> None:
        repository = self.get_repository(target.definition)
        dalrest.log.debug(f"Deleting {target.definition.entity_name} {target.primary_key}")
        result = repository.delete([dict(target.primary_key)], context)
        if result.errors:
            raise ResourceNotFoundError(target.definition.entity_name, target.primary_key)

    #
    # Actions
    #
    def clone(self, entity_name: str, entity_id: str, context: Context) -> Any:
        """
        :return: id of the clone
        """
        self.check_write_scope(context)
        entity_name = url_to_snake_case(entity_name)
        definition = self.registry.get(entity_name)
        repository = self.get_repository(definition)

        written = repository.clone(entity_id, context)
        event = written.get_event_by_definition(definition)
        if not event or not event.ids:
            raise NoEntityClonedError(entity_name, entity_id)
        return event.ids[0]

    def composite_search(self, term: str, limit: int, context: Context) -> Any:
        if self.composite_searcher is None:
            raise NotFoundError("Composite search is not available")
        return self.composite_searcher.search(term, limit, context)

    @staticmethod
    def check_write_scope(context: Context) -> None:
        if not context.has_scope(get_config("WRITE_SCOPE")):
            raise AccessDeniedError("You don't have write access using this access key.")
