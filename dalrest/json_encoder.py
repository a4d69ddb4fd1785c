# dalrest to json encoding

import datetime
import decimal
from uuid import UUID
from flask.json.provider import DefaultJSONProvider
import dalrest
from .config import is_debug
from .repository import Entity, EntityCollection


def encode_entity(entity: Entity) -> dict:
    """
    :return: JSON:API resource object, the entity name is used as the type
    """
    return {"type": entity.entity_name, "id": str(entity.id), "attributes": entity.attributes}


class _DalRestJSONEncoder:
    """
    JSON encoding for entities and common types
    """

    # pylint: disable=too-many-return-statements,arguments-differ,method-hidden
    def default(self, obj, **kwargs):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        if obj is None:
            return None
        if isinstance(obj, Entity):
            return encode_entity(obj)
        if isinstance(obj, EntityCollection):
            return [encode_entity(entity) for entity in obj]
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, datetime.datetime):
            return obj.isoformat(" ")
        if isinstance(obj, (datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, decimal.Decimal):
            return float(obj)
        if isinstance(obj, bytes):
            if obj == b"":
                return ""
            dalrest.log.debug("DalRestJSONEncoder: serializing bytes obj")
            return obj.hex()

        if not is_debug():  # pragma: no cover
            dalrest.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
            return {"error": "DalRestJSONEncoder invalid object"}

        return str(obj)  # pragma: no cover


class DalRestJSONProvider(_DalRestJSONEncoder, DefaultJSONProvider):
    """
    Flask JSON encoding
    """

    sort_keys = False

