# Search criteria and the request criteria builder
#
# The builder follows the JSON:API conventions for the query string:
# - filtering (https://jsonapi.org/format/#fetching-filtering) : filter[name]=a,b
# - sorting (https://jsonapi.org/format/#fetching-sorting) : sort=-name,id
# - pagination (https://jsonapi.org/format/#fetching-pagination) : page[offset], page[limit] or page[number], page[size]
# - inclusion (https://jsonapi.org/format/#fetching-includes) : include=manufacturer,categories
#
# Search requests may send the same information as a json body:
# {"filter": {"name": "a"}, "sort": "-name", "page": {"limit": 10}, "include": ["manufacturer"], "term": "..."}
#
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import dalrest
from .config import get_int_config
from .definitions import EntityDefinition
from .errors import ValidationError

ASCENDING = "ASC"
DESCENDING = "DESC"


@dataclass(frozen=True)
class EqualsFilter:
    field: str
    value: Any


@dataclass(frozen=True)
class EqualsAnyFilter:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class FieldSorting:
    field: str
    direction: str = ASCENDING


class Criteria:
    """
    Filters, sortings and paging passed to a repository search
    """

    def __init__(self) -> None:
        self.filters: List[Any] = []
        self.sortings: List[FieldSorting] = []
        self.associations: List[str] = []
        self.limit: Optional[int] = None
        self.offset: int = 0
        self.term: Optional[str] = None

    def add_filter(self, *filters: Any) -> "Criteria":
        self.filters.extend(filters)
        return self

    def add_sorting(self, *sortings: FieldSorting) -> "Criteria":
        self.sortings.extend(sortings)
        return self

    def add_association(self, path: str) -> "Criteria":
        if path not in self.associations:
            self.associations.append(path)
        return self

    def __repr__(self) -> str:
        return f"<Criteria filters={self.filters} sortings={self.sortings} limit={self.limit} offset={self.offset}>"


class RequestCriteriaBuilder:
    """
    Build a Criteria from the request parameters (query string or search body)
    """

    def handle_request(self, params: Mapping[str, Any], criteria: Criteria, definition: EntityDefinition, context=None) -> Criteria:
        """
        :param params: request query args or decoded search body
        :param criteria: criteria to be extended
        :param definition: definition of the searched entity
        :param context: request context
        :return: criteria
        """
        params = self.normalize(params)
        for name, value in params["filter"].items():
            criteria.add_filter(self.parse_filter(definition, name, value))
        for sorting in self.parse_sortings(definition, params["sort"]):
            criteria.add_sorting(sorting)
        for include in params["include"]:
            criteria.add_association(include)

        criteria.offset, criteria.limit = self.parse_paging(params["page"])
        term = params.get("term")
        if term:
            criteria.term = str(term).strip()
        return criteria

    @staticmethod
    def normalize(params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Convert query args (filter[name]=...) and search bodies ({"filter": {"name": ...}}) to the same structure
        """
        result = {"filter": {}, "page": {}, "sort": "", "include": [], "term": None}
        for key, value in params.items():
            match = re.fullmatch(r"(filter|page)\[([\w.]+)\]", str(key))
            if match:
                result[match.group(1)][match.group(2)] = value
            elif key in ("filter", "page") and isinstance(value, Mapping):
                result[key].update(value)
            elif key in ("limit", "offset"):
                result["page"][key] = value
            elif key == "sort":
                result["sort"] = value if isinstance(value, str) else ",".join(value)
            elif key == "include":
                result["include"] = [inc for inc in (value.split(",") if isinstance(value, str) else value) if inc]
            elif key == "term":
                result["term"] = value
        return result

    @staticmethod
    def parse_filter(definition: EntityDefinition, name: str, value: Any):
        """
        :param name: property name, or a dotted path starting with an association property (manufacturer.name)
        :return: EqualsFilter or EqualsAnyFilter (csv values)
        """
        first = name.split(".")[0]
        field = definition.fields.get(first)
        if field is None or ("." in name and not field.is_association):
            raise ValidationError(f'Invalid filter "{name}" for {definition.entity_name}')
        qualified = f"{definition.entity_name}.{name}"
        if isinstance(value, (list, tuple)):
            return EqualsAnyFilter(qualified, tuple(value))
        if isinstance(value, str) and "," in value:
            return EqualsAnyFilter(qualified, tuple(value.split(",")))
        return EqualsFilter(qualified, value)

    @staticmethod
    def parse_sortings(definition: EntityDefinition, sort: str) -> List[FieldSorting]:
        result = []
        for sort_attr in [attr.strip() for attr in sort.split(",") if attr.strip()]:
            # The sort order for each sort field MUST be ascending unless it is prefixed
            # with a minus, in which case it MUST be descending.
            direction = DESCENDING if sort_attr.startswith("-") else ASCENDING
            sort_attr = sort_attr.lstrip("-")
            field = definition.fields.get(sort_attr)
            if field is None or field.is_association:
                dalrest.log.debug(f"{definition} has no attribute {sort_attr}")
                continue
            result.append(FieldSorting(f"{definition.entity_name}.{sort_attr}", direction))
        return result

    @staticmethod
    def parse_paging(page: Mapping[str, Any]) -> Tuple[int, int]:
        """
        If the client uses page[number] instead of page[offset], then we transform the
        number parameter to an offset

        :return: offset, limit (clamped to the configured bounds)
        """
        try:
            limit = int(page.get("limit", get_int_config("DEFAULT_PAGE_LIMIT")))
            offset = int(page.get("offset", 0))
            if "number" in page and "size" in page:
                limit = int(page["size"])
                offset = (int(page["number"]) - 1) * limit
        except (TypeError, ValueError):
            raise ValidationError("Pagination Value Error") from None

        max_limit = get_int_config("MAX_PAGE_LIMIT")
        max_offset = get_int_config("MAX_PAGE_OFFSET")
        if limit <= 0:
            limit = 1
        if limit > max_limit:
            limit = max_limit
        if offset <= 0:
            offset = 0
        if offset > max_offset:
            offset = max_offset
        return offset, limit
