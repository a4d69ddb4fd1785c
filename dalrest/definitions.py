"""Entity definitions and the definition registry.

An :class:`EntityDefinition` describes one resource type: its name and an ordered
collection of fields. Associations between definitions are fields too, one of a
closed set of variants tagged by :class:`AssociationKind`:

- ``MANY_TO_ONE``: the parent holds the foreign key (``storage_name``)
- ``ONE_TO_MANY``: the child holds the foreign key (``reference_field``)
- ``MANY_TO_MANY``: rows in a mapping (junction) definition link both sides
- ``TRANSLATION_SET``: one-to-many translations keyed by (reference, language)

Associations refer to other definitions by entity name, the registry resolves them.
All definitions are immutable once built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

import dalrest
from .errors import DefinitionNotFoundError, GenericError


class AssociationKind(Enum):
    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"
    TRANSLATION_SET = "translation_set"


@dataclass(frozen=True)
class Field:
    """
    A named attribute of an entity definition

    :param property_name: programmatic (wire) name, e.g. "manufacturerId"
    :param storage_name: storage (column) name, e.g. "product_manufacturer_id"
    :param primary_key: whether the field is part of the primary key
    """

    property_name: str
    storage_name: Optional[str] = None
    primary_key: bool = False

    kind = None  # AssociationKind for association fields

    @property
    def is_association(self) -> bool:
        return self.kind is not None


@dataclass(frozen=True)
class AssociationField(Field):
    """
    :param reference_class: entity name of the referenced definition
    """

    reference_class: str = ""


@dataclass(frozen=True)
class ManyToOneAssociation(AssociationField):
    kind = AssociationKind.MANY_TO_ONE


@dataclass(frozen=True)
class OneToManyAssociation(AssociationField):
    """
    :param reference_field: storage name of the foreign key column on the referenced definition
    """

    reference_field: str = ""
    kind = AssociationKind.ONE_TO_MANY


@dataclass(frozen=True)
class ManyToManyAssociation(AssociationField):
    """
    reference_class is the mapping (junction) definition,
    reference_definition is the definition on the far side of the mapping

    :param mapping_local_column: mapping column that references this side
    :param mapping_reference_column: mapping column that references the far side
    """

    reference_definition: str = ""
    mapping_local_column: str = ""
    mapping_reference_column: str = ""
    kind = AssociationKind.MANY_TO_MANY

    @property
    def mapping_definition(self) -> str:
        return self.reference_class


@dataclass(frozen=True)
class TranslationsAssociation(OneToManyAssociation):
    """
    :param language_field: storage name of the language primary key column on the translation definition
    """

    language_field: str = "language_id"
    kind = AssociationKind.TRANSLATION_SET


class FieldCollection:
    """
    Ordered, read-only collection of fields
    """

    def __init__(self, fields: Iterable[Field] = ()) -> None:
        self._fields: Tuple[Field, ...] = tuple(fields)
        self._by_name: Dict[str, Field] = {f.property_name: f for f in self._fields}

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, property_name: str) -> bool:
        return property_name in self._by_name

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldCollection) and self._fields == other._fields

    def __hash__(self) -> int:
        return hash(self._fields)

    def __repr__(self) -> str:
        return f"FieldCollection({[f.property_name for f in self._fields]})"

    def get(self, property_name: str) -> Optional[Field]:
        return self._by_name.get(property_name)

    def get_by_storage_name(self, storage_name: str) -> Optional[Field]:
        """
        :param storage_name: column name
        :return: the first scalar field stored in `storage_name`

        A many-to-one association shares the storage name of its foreign key field,
        associations are skipped so the lookup always yields the foreign key itself.
        """
        for f in self._fields:
            if not f.is_association and f.storage_name == storage_name:
                return f
        return None

    def filter(self, predicate: Callable[[Field], bool]) -> "FieldCollection":
        return FieldCollection(f for f in self._fields if predicate(f))

    def first(self) -> Optional[Field]:
        return self._fields[0] if self._fields else None

    def associations(self) -> "FieldCollection":
        return self.filter(lambda f: f.is_association)


@dataclass(frozen=True)
class EntityDefinition:
    entity_name: str
    fields: FieldCollection = field(default_factory=FieldCollection)

    def __post_init__(self):
        if not isinstance(self.fields, FieldCollection):
            object.__setattr__(self, "fields", FieldCollection(self.fields))

    @property
    def primary_keys(self) -> FieldCollection:
        return self.fields.filter(lambda f: f.primary_key)

    def __repr__(self) -> str:
        return f"<EntityDefinition {self.entity_name}>"


class DefinitionRegistry:
    """
    Explicit mapping of entity names to entity definitions
    """

    def __init__(self, definitions: Iterable[EntityDefinition] = ()) -> None:
        self._definitions: Dict[str, EntityDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: EntityDefinition) -> EntityDefinition:
        if definition.entity_name in self._definitions:
            dalrest.log.warning(f"Replacing definition {definition.entity_name}")
        self._definitions[definition.entity_name] = definition
        return definition

    def get(self, entity_name: str) -> EntityDefinition:
        try:
            return self._definitions[entity_name]
        except KeyError:
            raise DefinitionNotFoundError(entity_name) from None

    def __contains__(self, entity_name: str) -> bool:
        return entity_name in self._definitions

    def __iter__(self) -> Iterator[EntityDefinition]:
        return iter(self._definitions.values())

    def reference_definition(self, association: AssociationField) -> EntityDefinition:
        """
        :return: the definition an association navigates to,
        the far side for many-to-many associations
        """
        if association.kind is AssociationKind.MANY_TO_MANY:
            return self.get(association.reference_definition)
        return self.get(association.reference_class)

    def validate(self) -> None:
        """
        Check that every association references registered definitions
        """
        for definition in self:
            for association in definition.fields.associations():
                names = [association.reference_class]
                if association.kind is AssociationKind.MANY_TO_MANY:
                    names.append(association.reference_definition)
                for name in names:
                    if name not in self:
                        raise GenericError(f"{definition.entity_name}.{association.property_name} references unknown entity {name}")
