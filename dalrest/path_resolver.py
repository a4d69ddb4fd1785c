"""
Resolve a resource url path into a chain of path segments

    /product/SW1/categories/C1  =>  [product(SW1), categories(C1)]

The first name is an entity name (snake_case), the following names are
association property names (camelCase). Every name may be followed by an identifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .definitions import AssociationField, DefinitionRegistry, EntityDefinition
from .errors import NotFoundError


@dataclass(frozen=True)
class PathSegment:
    """
    One hop in a resolved path

    :param entity: normalized entity or association name
    :param value: the identifier following the name in the path, if any
    :param definition: definition of the resources at this hop (the far side for many-to-many hops)
    :param field: association that leads to this hop, None for the root segment
    """

    entity: str
    value: Optional[str]
    definition: EntityDefinition
    field: Optional[AssociationField] = None

    @property
    def is_root(self) -> bool:
        return self.field is None


def url_to_snake_case(name: str) -> str:
    return name.replace("-", "_")


def url_to_camel_case(name: str) -> str:
    parts = [part[:1].upper() + part[1:] for part in name.split("-")]
    result = "".join(parts)
    return result[:1].lower() + result[1:]


def split_path(entity_name: str, path: str = "") -> List[tuple]:
    """
    :return: list of (name, identifier or None) tuples, names are normalized
    """
    tokens = [token for token in f"{entity_name}/{path or ''}".split("/") if token]
    parts = []
    for index in range(0, len(tokens), 2):
        value = tokens[index + 1] if index + 1 < len(tokens) else None
        name = url_to_snake_case(tokens[index]) if not parts else url_to_camel_case(tokens[index])
        parts.append((name, value))
    return parts


def resolve_path(registry: DefinitionRegistry, entity_name: str, path: str = "") -> List[PathSegment]:
    """
    :param registry: definition registry
    :param entity_name: root entity name, as found in the url
    :param path: rest of the url path
    :return: ordered list of path segments, the first segment is the root resource
    """
    parts = split_path(entity_name, path)
    if not parts:
        raise NotFoundError("The requested entity does not exist.")

    root_name, root_value = parts[0]
    # raises DefinitionNotFoundError, a NotFoundError
    definition = registry.get(root_name)

    segments = [PathSegment(root_name, root_value, definition)]
    for name, value in parts[1:]:
        association = definition.fields.get(name)
        if association is None or not association.is_association:
            dotted = ".".join(segment.entity for segment in segments)
            raise NotFoundError(f'Resource at path "{dotted}.{name}" is not an existing relation.')

        definition = registry.reference_definition(association)
        segments.append(PathSegment(name, value, definition, association))

    return segments
