"""
http://jsonapi.org/format/#content-negotiation-servers

Requests may be sent as plain json ("application/json") or as JSON:API documents ("application/vnd.api+json").
Responses to JSON:API requests are sent back with the JSON:API content type, cfr. response.py
"""

from flask import Request, g
from werkzeug.datastructures import TypeConversionDict
from .body_decoder import JSON, JSONAPI, decode_request_body, media_type


# pylint: disable=too-many-ancestors
class DalRestRequest(Request):
    """
    Parse the request:
    - header: Content-Type should be "application/json" or "application/vnd.api+json"
    - query args: the "_response" flag
    - body: decoded to a canonical key/value map
    """

    jsonapi_content_types = [JSONAPI]
    accepted_content_types = [JSON, JSONAPI]
    is_jsonapi = False  # indicates whether this is a JSON:API request

    def __init__(self, *args, **kwargs):
        """
        constructor
        """
        super().__init__(*args, **kwargs)
        self.parse_content_type()

    def parse_content_type(self):
        """
        Check if the request content type is jsonapi
        """
        if not isinstance(self.content_type, str):
            return

        content_type = media_type(self.content_type)
        if content_type not in self.accepted_content_types:
            return

        self.parameter_storage_class = TypeConversionDict
        if content_type in self.jsonapi_content_types:
            self.is_jsonapi = True

    def get_payload(self):
        """
        :return: decoded request payload
        """
        return decode_request_body(self.content_type, self.get_data())

    @property
    def scopes(self):
        """
        :return: the scopes granted to the client, set on flask.g by the authentication layer
        """
        return frozenset(g.get("oauth_scopes", None) or ())

    @property
    def wants_full_response(self):
        """
        Writes return the written resource when the "_response" query arg is present,
        otherwise an empty 204 with a Location header is returned
        """
        return "_response" in self.args
