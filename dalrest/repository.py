"""Repository interface and the values exchanged with repositories.

Repositories are the storage collaborators of the controller: one per entity
definition, looked up by entity name in a :class:`RepositoryRegistry`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

try:
    from typing import Protocol
except ImportError:  # pragma: no cover
    from typing_extensions import Protocol

from .criteria import Criteria
from .definitions import EntityDefinition
from .errors import UnknownRepositoryError


@dataclass(frozen=True)
class Context:
    """
    Per request context handed to every repository call
    """

    scopes: frozenset = frozenset()
    user_id: Optional[str] = None
    language_id: Optional[str] = None

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


@dataclass
class Entity:
    entity_name: str
    id: Any
    attributes: Dict[str, Any] = field(default_factory=dict)


class EntityCollection:
    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._entities = {entity.id: entity for entity in entities}

    def get(self, entity_id: Any) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def first(self) -> Optional[Entity]:
        return next(iter(self._entities.values()), None)

    def ids(self) -> List[Any]:
        return list(self._entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)


@dataclass
class SearchResult:
    entities: EntityCollection
    total: int
    criteria: Criteria


@dataclass(frozen=True)
class WrittenEvent:
    entity_name: str
    ids: tuple = ()
    errors: tuple = ()


class WrittenResult:
    """
    Result of a create/update/clone: the written ids per entity definition
    """

    def __init__(self, events: Iterable[WrittenEvent] = ()) -> None:
        self._events = {event.entity_name: event for event in events}

    def get_event_by_definition(self, definition: EntityDefinition) -> Optional[WrittenEvent]:
        return self._events.get(definition.entity_name)

    def get_ids(self, definition: EntityDefinition) -> List[Any]:
        event = self.get_event_by_definition(definition)
        return list(event.ids) if event else []

    def __iter__(self) -> Iterator[WrittenEvent]:
        return iter(self._events.values())


@dataclass(frozen=True)
class DeleteResult:
    ids: tuple = ()
    errors: tuple = ()


class Repository(Protocol):
    def search(self, criteria: Criteria, context: Context) -> SearchResult:
        ...

    def read(self, ids: Sequence[Any], context: Context) -> EntityCollection:
        ...

    def create(self, payloads: Sequence[Mapping[str, Any]], context: Context) -> WrittenResult:
        ...

    def update(self, payloads: Sequence[Mapping[str, Any]], context: Context) -> WrittenResult:
        ...

    def delete(self, primary_keys: Sequence[Mapping[str, Any]], context: Context) -> DeleteResult:
        ...

    def clone(self, entity_id: Any, context: Context) -> WrittenResult:
        ...


class CompositeSearcher(Protocol):
    def search(self, term: str, limit: int, context: Context) -> Any:
        ...


class RepositoryRegistry:
    """
    Entity name => repository
    """

    def __init__(self, repositories: Optional[Mapping[str, Repository]] = None) -> None:
        self._repositories: Dict[str, Repository] = dict(repositories or {})

    def register(self, entity_name: str, repository: Repository) -> Repository:
        self._repositories[entity_name] = repository
        return repository

    def get(self, definition: EntityDefinition) -> Repository:
        try:
            return self._repositories[definition.entity_name]
        except KeyError:
            raise UnknownRepositoryError(definition.entity_name) from None

    def __contains__(self, entity_name: str) -> bool:
        return entity_name in self._repositories
