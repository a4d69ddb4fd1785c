"""
Request body decoding

Two media types are accepted:
- application/json : a json object, used as is
- application/vnd.api+json : a JSON:API document, the primary data is flattened:

    {"data": {"type": "product", "id": "SW1",
              "attributes": {"name": "t"},
              "relationships": {"manufacturer": {"data": {"type": "product_manufacturer", "id": "M1"}}}}}
    =>
    {"id": "SW1", "name": "t", "manufacturer": {"id": "M1"}}

json arrays (and JSON:API data arrays) are converted to {0: ..., 1: ...} maps,
is_collection() tells the caller it received such a bulk payload.
"""

import json
import re
from typing import Any, Dict, List, Optional, Union

from .util import dict_merge
from .errors import UnsupportedMediaTypeError, ValidationError

JSON = "application/json"
JSONAPI = "application/vnd.api+json"

# integer keys as json objects carry them: no sign, no leading zeros
INDEX_KEY = re.compile(r"0|[1-9][0-9]*")


def media_type(content_type: Optional[str]) -> str:
    """
    :return: the content type without media type parameters
    """
    return (content_type or "").split(";")[0].strip().lower()


def decode_request_body(content_type: Optional[str], raw_body: Union[bytes, str, None]) -> Dict[Any, Any]:
    """
    :param content_type: request Content-Type header
    :param raw_body: request body
    :return: canonical key/value map
    """
    mime = media_type(content_type)
    if mime not in (JSON, JSONAPI):
        raise UnsupportedMediaTypeError(mime)

    document = _load_json(raw_body)
    if mime == JSONAPI:
        return decode_jsonapi(document)

    if isinstance(document, list):
        return dict(enumerate(document))
    if not isinstance(document, dict):
        raise ValidationError(f"Invalid JSON Payload : {document}")
    return document


def _load_json(raw_body: Union[bytes, str, None]) -> Any:
    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"Invalid body encoding: {exc}") from exc
    if not raw_body or not raw_body.strip():
        return {}
    try:
        return json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError(f"Invalid JSON Payload : {exc}") from exc


def decode_jsonapi(document: Any) -> Dict[Any, Any]:
    """
    :param document: JSON:API document
    :return: the flattened primary data
    """
    if not isinstance(document, dict) or "data" not in document:
        raise ValidationError("JSON:API document contains no data")

    included = {}
    for resource in document.get("included") or []:
        if not isinstance(resource, dict) or "type" not in resource or "id" not in resource:
            raise ValidationError(f"Invalid included resource {resource}")
        included[(resource["type"], resource["id"])] = resource

    data = document["data"]
    if isinstance(data, list):
        return {index: _decode_resource(item, included) for index, item in enumerate(data)}
    return _decode_resource(data, included)


def _decode_resource(resource: Any, included: Dict, seen: tuple = ()) -> Dict[str, Any]:
    if not isinstance(resource, dict):
        raise ValidationError(f"Invalid Data Object {resource}")
    if "type" not in resource:
        raise ValidationError("Resource object contains no type")

    attributes = resource.get("attributes") or {}
    relationships = resource.get("relationships") or {}
    if not isinstance(attributes, dict) or not isinstance(relationships, dict):
        raise ValidationError(f"Invalid Data Object {resource}")

    result = {}
    if resource.get("id") is not None:
        result["id"] = resource["id"]
    dict_merge(result, attributes)

    seen = seen + ((resource["type"], resource.get("id")),)
    for rel_name, relationship in relationships.items():
        if not isinstance(relationship, dict) or "data" not in relationship:
            raise ValidationError(f"Invalid relationship {rel_name}")
        rel_data = relationship["data"]
        if isinstance(rel_data, list):
            result[rel_name] = [_decode_identifier(item, included, seen) for item in rel_data]
        elif rel_data is None:
            result[rel_name] = None
        else:
            result[rel_name] = _decode_identifier(rel_data, included, seen)
    return result


def _decode_identifier(identifier: Any, included: Dict, seen: tuple) -> Dict[str, Any]:
    """
    A relationship resource identifier, merged with the included resource if the document has one
    """
    if not isinstance(identifier, dict) or "id" not in identifier or "type" not in identifier:
        raise ValidationError(f"Invalid resource identifier {identifier}")
    key = (identifier["type"], identifier["id"])
    if key in included and key not in seen:
        return _decode_resource(included[key], included, seen)
    return {"id": identifier["id"]}


def is_collection(payload: Dict[Any, Any]) -> bool:
    """
    :return: True if the keys of the payload are the dense sequence 0..n-1 (bulk payload)

    An empty payload is not a collection.
    """
    if not payload:
        return False
    keys: List[Any] = list(payload.keys())
    indexes = []
    for key in keys:
        if isinstance(key, bool):
            return False
        if isinstance(key, int):
            indexes.append(key)
        elif isinstance(key, str) and INDEX_KEY.fullmatch(key):
            indexes.append(int(key))
        else:
            return False
    return indexes == list(range(len(keys)))
