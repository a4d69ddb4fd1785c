#
# SQLAlchemy adapter:
# - definitions_from_models: derive the entity definitions from SQLAlchemy mapped classes
# - SQLAlchemyRepository: the repository operations on a SQLAlchemy session
#
# The entity name is the table name, the field names are the mapped attribute names:
#
#   class Product(DB.Model):
#       __tablename__ = "product"
#       id = Column(String, primary_key=True)
#       manufacturerId = Column("product_manufacturer_id", ForeignKey("product_manufacturer.id"))
#       manufacturer = relationship("ProductManufacturer", back_populates="products")
#       translations = relationship("ProductTranslation", info={"translation_language": "language_id"})
#
# => product: id, manufacturerId (stored in product_manufacturer_id), manufacturer (many-to-one), translations (translation set)
#
# Many-to-many relationships need a mapped class for the secondary (mapping) table,
# nested deletes remove the mapping rows through its repository.
#
import uuid
from typing import Any, List, Mapping, Sequence
import sqlalchemy
from sqlalchemy import String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE, ONETOMANY
import dalrest
from .criteria import DESCENDING, Criteria, EqualsAnyFilter, EqualsFilter
from .definitions import (
    DefinitionRegistry,
    EntityDefinition,
    Field,
    ManyToManyAssociation,
    ManyToOneAssociation,
    OneToManyAssociation,
    TranslationsAssociation,
)
from .errors import GenericError, ValidationError
from .repository import Context, DeleteResult, Entity, EntityCollection, RepositoryRegistry, SearchResult, WrittenEvent, WrittenResult

TRANSLATION_INFO_KEY = "translation_language"


def entity_name_of(model) -> str:
    return sqlalchemy.inspect(model).local_table.name


def _many_to_one(rel):
    column = next(iter(rel.local_columns))
    return ManyToOneAssociation(rel.key, column.name, reference_class=entity_name_of(rel.mapper.class_))


def _one_to_many(rel):
    remote_column = rel.local_remote_pairs[0][1]
    reference_class = entity_name_of(rel.mapper.class_)
    language_field = rel.info.get(TRANSLATION_INFO_KEY)
    if language_field:
        return TranslationsAssociation(rel.key, reference_class=reference_class, reference_field=remote_column.name, language_field=language_field)
    return OneToManyAssociation(rel.key, reference_class=reference_class, reference_field=remote_column.name)


def _many_to_many(rel):
    if rel.secondary is None:  # pragma: no cover
        raise GenericError(f"Many-to-many relationship {rel} has no secondary table")
    return ManyToManyAssociation(
        rel.key,
        reference_class=rel.secondary.name,
        reference_definition=entity_name_of(rel.mapper.class_),
        mapping_local_column=rel.synchronize_pairs[0][1].name,
        mapping_reference_column=rel.secondary_synchronize_pairs[0][1].name,
    )


RELATIONSHIP_FIELDS = {MANYTOONE: _many_to_one, ONETOMANY: _one_to_many, MANYTOMANY: _many_to_many}


def definition_from_model(model) -> EntityDefinition:
    """
    :param model: SQLAlchemy mapped class
    :return: EntityDefinition with the mapped columns and relationships as fields
    """
    mapper = sqlalchemy.inspect(model)
    fields: List[Field] = []
    for column_attr in mapper.column_attrs:
        column = column_attr.columns[0]
        fields.append(Field(column_attr.key, column.name, bool(column.primary_key)))
    for rel in mapper.relationships:
        fields.append(RELATIONSHIP_FIELDS[rel.direction](rel))
    return EntityDefinition(entity_name_of(model), fields)


def definitions_from_models(*models) -> DefinitionRegistry:
    registry = DefinitionRegistry(definition_from_model(model) for model in models)
    registry.validate()
    return registry


def repositories_from_models(registry: DefinitionRegistry, *models, session=None) -> RepositoryRegistry:
    repositories = RepositoryRegistry()
    for model in models:
        definition = registry.get(entity_name_of(model))
        repositories.register(definition.entity_name, SQLAlchemyRepository(model, definition, session))
    return repositories


class SQLAlchemyRepository:
    """
    Repository of a SQLAlchemy mapped class

    :param model: SQLAlchemy mapped class
    :param definition: entity definition of the model
    :param session: SQLAlchemy session, the Flask-SQLAlchemy session (dalrest.DB.session) is used if not provided

    Writes are flushed but not committed, the session is committed by the caller
    (cfr. http_method_decorator)
    """

    def __init__(self, model, definition: EntityDefinition, session=None) -> None:
        self.model = model
        self.definition = definition
        self.mapper = sqlalchemy.inspect(model)
        self._session = session

    @property
    def session(self):
        if self._session is not None:
            return self._session
        return dalrest.DB.session

    @property
    def column_names(self) -> List[str]:
        return [column_attr.key for column_attr in self.mapper.column_attrs]

    def _id_column(self):
        if "id" not in self.column_names:
            raise GenericError(f"{self.definition.entity_name} has no id column")
        return getattr(self.model, "id")

    @property
    def primary_key_names(self) -> List[str]:
        """
        :return: attribute names of the primary key columns, in mapper order
        """
        return [self.mapper.get_property_by_column(column).key for column in self.mapper.primary_key]

    def instance_id(self, instance) -> str:
        if "id" in self.column_names:
            return str(instance.id)
        return "_".join(str(getattr(instance, key)) for key in self.primary_key_names)

    def to_entity(self, instance) -> Entity:
        attributes = {name: getattr(instance, name) for name in self.column_names if name != "id"}
        return Entity(self.definition.entity_name, self.instance_id(instance), attributes)

    #
    # Read
    #
    def search(self, criteria: Criteria, context: Context) -> SearchResult:
        query = self.session.query(self.model)
        for criteria_filter in criteria.filters:
            query = query.filter(self.filter_expression(criteria_filter))

        # Counting may take > 1s for a table with millions of records
        total = query.count()

        for sorting in criteria.sortings:
            column = self._attribute(sorting.field.split(".")[-1])
            query = query.order_by(column.desc() if sorting.direction == DESCENDING else column.asc())
        if criteria.offset:
            query = query.offset(criteria.offset)
        if criteria.limit:
            query = query.limit(criteria.limit)

        return SearchResult(EntityCollection(self.to_entity(instance) for instance in query), total, criteria)

    def read(self, ids: Sequence[Any], context: Context) -> EntityCollection:
        if not ids:
            return EntityCollection()
        query = self.session.query(self.model).filter(self._id_column().in_(list(ids)))
        return EntityCollection(self.to_entity(instance) for instance in query)

    def _attribute(self, name: str):
        if name not in self.column_names and name not in self.mapper.relationships:
            raise ValidationError(f'Invalid attribute "{name}" for {self.definition.entity_name}')
        return getattr(self.model, name)

    def filter_expression(self, criteria_filter):
        """
        :param criteria_filter: EqualsFilter or EqualsAnyFilter, the field is prefixed with the entity name:
            - product.name : Product.name == value
            - product.manufacturer.name : Product.manufacturer.has(ProductManufacturer.name == value)
            - product_manufacturer.products.id : ProductManufacturer.products.any(Product.id == value)
        :return: sqlalchemy expression
        """
        parts = criteria_filter.field.split(".")
        if parts[0] == self.definition.entity_name:
            parts = parts[1:]
        if not parts or len(parts) > 2:
            raise ValidationError(f'Unsupported filter "{criteria_filter.field}"')

        attribute = self._attribute(parts[0])
        if len(parts) == 1:
            return self._compare(attribute, criteria_filter)

        if parts[0] not in self.mapper.relationships:
            raise ValidationError(f'Invalid filter "{criteria_filter.field}"')
        relationship = self.mapper.relationships[parts[0]]
        target = relationship.mapper.class_
        if parts[1] not in [column_attr.key for column_attr in relationship.mapper.column_attrs]:
            raise ValidationError(f'Invalid filter "{criteria_filter.field}"')
        condition = self._compare(getattr(target, parts[1]), criteria_filter)
        return attribute.any(condition) if relationship.uselist else attribute.has(condition)

    @staticmethod
    def _compare(column, criteria_filter):
        if isinstance(criteria_filter, EqualsAnyFilter):
            return column.in_(list(criteria_filter.values))
        if isinstance(criteria_filter, EqualsFilter):
            if criteria_filter.value is None:
                return column.is_(None)
            return column == criteria_filter.value
        raise ValidationError(f"Unsupported filter {criteria_filter}")

    #
    # Write
    #
    def create(self, payloads: Sequence[Mapping[str, Any]], context: Context) -> WrittenResult:
        ids, errors = [], []
        for payload in payloads:
            instance = self.model()
            try:
                self._apply(instance, payload)
                if "id" in self.column_names and getattr(instance, "id") is None and isinstance(self._id_column().type, String):
                    instance.id = uuid.uuid4().hex
                self.session.add(instance)
                self.session.flush()
            except (ValidationError, SQLAlchemyError) as exc:
                self._write_failed(exc, errors)
                continue
            ids.append(self.instance_id(instance))
        return self._written(ids, errors)

    def update(self, payloads: Sequence[Mapping[str, Any]], context: Context) -> WrittenResult:
        ids, errors = [], []
        primary_keys = self.primary_key_names
        for payload in payloads:
            identity = [payload.get(key) for key in primary_keys]
            try:
                instance = self.session.get(self.model, tuple(identity)) if None not in identity else None
                if instance is None:
                    errors.append(f"{self.definition.entity_name} {'_'.join(str(value) for value in identity)} not found")
                    continue
                self._apply(instance, {key: value for key, value in payload.items() if key not in primary_keys})
                self.session.flush()
            except (ValidationError, SQLAlchemyError) as exc:
                self._write_failed(exc, errors)
                continue
            ids.append(self.instance_id(instance))
        return self._written(ids, errors)

    def _write_failed(self, exc, errors):
        dalrest.log.error(f"Failed to write {self.definition.entity_name}: {exc}")
        if isinstance(exc, SQLAlchemyError):
            self.session.rollback()
        errors.append(str(exc))

    def _written(self, ids, errors) -> WrittenResult:
        return WrittenResult([WrittenEvent(self.definition.entity_name, tuple(ids), tuple(errors))])

    def _apply(self, instance, payload: Mapping[str, Any]) -> None:
        """
        Set the columns and relationships from the payload,
        relationships are linked to existing instances: {"manufacturer": {"id": "M1"}, "categories": [{"id": "C1"}]}
        """
        for key, value in payload.items():
            if key in self.mapper.relationships:
                self._apply_relationship(instance, self.mapper.relationships[key], value)
            elif key in self.column_names:
                setattr(instance, key, value)
            else:
                raise ValidationError(f'Invalid attribute "{key}" for {self.definition.entity_name}')

    def _apply_relationship(self, instance, relationship, value) -> None:
        if not relationship.uselist:
            setattr(instance, relationship.key, self._get_related(relationship, value) if value is not None else None)
            return

        if not isinstance(value, (list, tuple)):
            raise ValidationError(f'Invalid value for "{relationship.key}", a list is expected')
        collection = getattr(instance, relationship.key)
        for item in value:
            related = self._get_related(relationship, item)
            if related not in collection:
                collection.append(related)

    def _get_related(self, relationship, item):
        related_id = item.get("id") if isinstance(item, Mapping) else item
        related = self.session.get(relationship.mapper.class_, related_id) if related_id is not None else None
        if related is None:
            raise ValidationError(f'Related resource "{relationship.key}" with id {related_id} not found')
        return related

    def delete(self, primary_keys: Sequence[Mapping[str, Any]], context: Context) -> DeleteResult:
        ids, errors = [], []
        for primary_key in primary_keys:
            try:
                instances = self.session.query(self.model).filter_by(**primary_key).all()
            except SQLAlchemyError as exc:
                self._write_failed(exc, errors)
                continue
            if not instances:
                errors.append(f"{self.definition.entity_name} {dict(primary_key)} not found")
                continue
            for instance in instances:
                ids.append(self.instance_id(instance))
                self.session.delete(instance)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self._write_failed(exc, errors)
        return DeleteResult(tuple(ids), tuple(errors))

    def clone(self, entity_id: Any, context: Context) -> WrittenResult:
        """
        Clone an object: copy the columns and many-to-many links and create a new id
        """
        original = self.session.get(self.model, entity_id)
        if original is None:
            return WrittenResult()

        clone = self.model()
        primary_keys = set(self.primary_key_names)
        for name in self.column_names:
            if name not in primary_keys:
                setattr(clone, name, getattr(original, name))
        if isinstance(self._id_column().type, String):
            clone.id = uuid.uuid4().hex
        for relationship in self.mapper.relationships:
            if relationship.direction is MANYTOMANY:
                setattr(clone, relationship.key, list(getattr(original, relationship.key)))

        try:
            self.session.add(clone)
            self.session.flush()
        except SQLAlchemyError as exc:
            errors: List[str] = []
            self._write_failed(exc, errors)
            return self._written([], errors)
        return self._written([self.instance_id(clone)], [])

