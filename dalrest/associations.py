"""
Association classification: per association kind, how to

- filter the listing of a nested collection down to the children of the parent
- inject the parent into a child write (the composite key for translations)
- build the primary key of a nested delete

Every operation dispatches on the association kind through a table that must cover
all AssociationKind members, this is checked when the module is imported.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Tuple

from .criteria import EqualsFilter
from .definitions import (
    AssociationField,
    AssociationKind,
    DefinitionRegistry,
    EntityDefinition,
    Field,
    ManyToManyAssociation,
    OneToManyAssociation,
    TranslationsAssociation,
)
from .errors import GenericError


@dataclass(frozen=True)
class DeleteTarget:
    """
    The definition to delete from and the primary key to delete
    """

    definition: EntityDefinition
    primary_key: Mapping[str, Any]


def exhaustive(table: Dict[AssociationKind, Callable]) -> Dict[AssociationKind, Callable]:
    missing = set(AssociationKind) - set(table)
    if missing:  # pragma: no cover
        raise TypeError(f"No handler for association kinds {sorted(kind.value for kind in missing)}")
    return table


def dispatch(table: Dict[AssociationKind, Callable], association: AssociationField) -> Callable:
    handler = table.get(getattr(association, "kind", None))
    if handler is None:
        raise GenericError(f"Unsupported association for field {association.property_name}")
    return handler


def _storage_field(definition: EntityDefinition, storage_name: str, primary_keys: bool = False) -> Field:
    fields = definition.primary_keys if primary_keys else definition.fields
    result = fields.get_by_storage_name(storage_name)
    if result is None:
        raise GenericError(f"{definition.entity_name} has no field stored in {storage_name}")
    return result


def foreign_key_field(association: OneToManyAssociation, child: EntityDefinition) -> Field:
    """
    :return: the field of the child that references the parent of a one-to-many association
    """
    return _storage_field(child, association.reference_field)


def inverse_association(association: AssociationField, parent: EntityDefinition, child: EntityDefinition) -> AssociationField:
    """
    :return: the association on the child that leads back to the parent

    - many-to-one: the one-to-many association on the child that references the parent,
      e.g. product.manufacturer => product_manufacturer.products
    - many-to-many: the many-to-many association on the far side that uses the same mapping,
      e.g. product.categories => category.products
    """
    if association.kind is AssociationKind.MANY_TO_MANY:
        mapping = association.mapping_definition
        reverse = child.fields.filter(lambda f: f.kind is AssociationKind.MANY_TO_MANY and f.mapping_definition == mapping).first()
    else:
        reverse = child.fields.filter(lambda f: f.kind is AssociationKind.ONE_TO_MANY and f.reference_class == parent.entity_name).first()
    if reverse is None:
        raise GenericError(f"No inverse association for {parent.entity_name}.{association.property_name} on {child.entity_name}")
    return reverse


#
# Listing filters
#
def _filter_by_inverse(association, parent, child, parent_id):
    # manufacturer.products.id = SW1
    reverse = inverse_association(association, parent, child)
    return EqualsFilter(f"{child.entity_name}.{reverse.property_name}.id", parent_id)


def _filter_by_foreign_key(association, parent, child, parent_id):
    # product_price.productId = SW1
    foreign_key = foreign_key_field(association, child)
    return EqualsFilter(f"{child.entity_name}.{foreign_key.property_name}", parent_id)


LISTING_FILTERS = exhaustive(
    {
        AssociationKind.MANY_TO_ONE: _filter_by_inverse,
        AssociationKind.ONE_TO_MANY: _filter_by_foreign_key,
        AssociationKind.MANY_TO_MANY: _filter_by_inverse,
        AssociationKind.TRANSLATION_SET: _filter_by_foreign_key,
    }
)


def listing_filter(association: AssociationField, parent: EntityDefinition, child: EntityDefinition, parent_id: Any) -> EqualsFilter:
    """
    :param association: association leading from parent to child
    :param parent: parent definition
    :param child: effective child definition (far side for many-to-many)
    :param parent_id: id of the parent resource
    :return: filter that limits the child listing to the children of the parent
    """
    return dispatch(LISTING_FILTERS, association)(association, parent, child, parent_id)


#
# Nested deletes
#
def _delete_by_id(registry, association, parent_id, child_id):
    return DeleteTarget(registry.reference_definition(association), {"id": child_id})


def _delete_mapping(registry, association: ManyToManyAssociation, parent_id, child_id):
    mapping = registry.get(association.mapping_definition)
    local = _storage_field(mapping, association.mapping_local_column)
    reference = _storage_field(mapping, association.mapping_reference_column)
    return DeleteTarget(mapping, {local.property_name: parent_id, reference.property_name: child_id})


def translation_key_fields(association: TranslationsAssociation, translation: EntityDefinition) -> Tuple[Field, Field]:
    """
    :return: the fields of the composite translation key: (reference to the parent, language),
        e.g. (productId, languageId)
    """
    reference = _storage_field(translation, association.reference_field)
    language = _storage_field(translation, association.language_field, primary_keys=True)
    return reference, language


def _delete_translation(registry, association, parent_id, child_id):
    translation = registry.get(association.reference_class)
    reference, language = translation_key_fields(association, translation)
    return DeleteTarget(translation, {reference.property_name: parent_id, language.property_name: child_id})


DELETE_TARGETS = exhaustive(
    {
        AssociationKind.MANY_TO_ONE: _delete_by_id,
        AssociationKind.ONE_TO_MANY: _delete_by_id,
        AssociationKind.MANY_TO_MANY: _delete_mapping,
        AssociationKind.TRANSLATION_SET: _delete_translation,
    }
)


def delete_target(registry: DefinitionRegistry, association: AssociationField, parent_id: Any, child_id: Any) -> DeleteTarget:
    """
    :return: the definition and primary key to delete when deleting child_id from the parent association
    """
    return dispatch(DELETE_TARGETS, association)(registry, association, parent_id, child_id)
