# flake8: noqa: F401
#
from .dal_init import DB, log, DALREST
from .errors import (
    JsonapiError,
    NotFoundError,
    DefinitionNotFoundError,
    UnknownRepositoryError,
    ResourceNotFoundError,
    AccessDeniedError,
    GenericError,
    ValidationError,
    NoEntityClonedError,
    MethodNotAllowedError,
    UnsupportedMediaTypeError,
)
from .definitions import (
    AssociationKind,
    Field,
    AssociationField,
    ManyToOneAssociation,
    OneToManyAssociation,
    ManyToManyAssociation,
    TranslationsAssociation,
    EntityDefinition,
    DefinitionRegistry,
)
from .path_resolver import PathSegment, resolve_path
from .criteria import Criteria, EqualsFilter, EqualsAnyFilter, FieldSorting, RequestCriteriaBuilder
from .repository import Context, Entity, EntityCollection, SearchResult, WrittenEvent, WrittenResult, DeleteResult, RepositoryRegistry
from .body_decoder import decode_request_body, is_collection
from .controller import ApiController
from .request import DalRestRequest
from .response import DalRestResponse, ResponseFactory
from .dalrest_api import DalRestAPI
from .util import dict_merge
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "DalRestAPI",
    "DALREST",
    "ApiController",
    # definitions:
    "AssociationKind",
    "Field",
    "AssociationField",
    "ManyToOneAssociation",
    "OneToManyAssociation",
    "ManyToManyAssociation",
    "TranslationsAssociation",
    "EntityDefinition",
    "DefinitionRegistry",
    "PathSegment",
    "resolve_path",
    # repositories:
    "Criteria",
    "EqualsFilter",
    "EqualsAnyFilter",
    "FieldSorting",
    "RequestCriteriaBuilder",
    "Context",
    "Entity",
    "EntityCollection",
    "SearchResult",
    "WrittenEvent",
    "WrittenResult",
    "DeleteResult",
    "RepositoryRegistry",
    # request/response
    "DalRestRequest",
    "DalRestResponse",
    "ResponseFactory",
    "decode_request_body",
    "is_collection",
    # Errors:
    "JsonapiError",
    "NotFoundError",
    "DefinitionNotFoundError",
    "UnknownRepositoryError",
    "ResourceNotFoundError",
    "AccessDeniedError",
    "GenericError",
    "ValidationError",
    "NoEntityClonedError",
    "MethodNotAllowedError",
    "UnsupportedMediaTypeError",
)
