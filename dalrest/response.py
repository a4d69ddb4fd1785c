# Response class and the JSON:API response factory
#
# Writes return either
# - the written resource (when the client sent the "_response" query arg), or
# - an empty 204 response with the Location of the written resource
#
from http import HTTPStatus
from flask import Response, current_app
from .body_decoder import JSON, JSONAPI, media_type

JSONAPI_VERSION = {"version": "1.0"}


class DalRestResponse(Response):
    """
    Response class
    """

    default_mimetype = JSONAPI


class ResponseFactory:
    """
    Create the JSON:API detail, listing and redirect responses

    :param prefix: url prefix of the api, used to build the resource links
    """

    def __init__(self, prefix="/api"):
        self.prefix = prefix.rstrip("/")

    def resource_url(self, request, definition, entity_id=None):
        """
        :return: absolute url of the resource collection or instance, e.g. http://localhost/api/product-price/P1
        """
        url = f"{request.url_root.rstrip('/')}{self.prefix}/{definition.entity_name.replace('_', '-')}"
        if entity_id is not None:
            url += f"/{entity_id}"
        return url

    @staticmethod
    def mimetype(request):
        # plain json requests get plain json back, everything else is JSON:API
        if media_type(request.content_type) == JSON:
            return JSON
        return JSONAPI

    def _response(self, document, request, status):
        body = current_app.json.dumps(document)
        return DalRestResponse(body, status=status, mimetype=self.mimetype(request))

    def create_detail_response(self, entity, definition, request, context=None, status=HTTPStatus.OK.value):
        """
        :param entity: Entity
        :param definition: definition of the entity
        :return: response with the JSON:API document of the entity
        """
        document = {
            "data": entity,
            "links": {"self": self.resource_url(request, definition, entity.id)},
            "meta": {},
            "jsonapi": JSONAPI_VERSION,
        }
        return self._response(document, request, status)

    def create_listing_response(self, result, definition, request, context=None):
        """
        :param result: SearchResult
        :param definition: definition of the listed entities
        :return: response with the JSON:API document of the collection and the pagination links
        """
        criteria = result.criteria
        limit = criteria.limit or len(result.entities) or 1
        document = {
            "data": list(result.entities),
            "links": self.pagination_links(request, result.total, criteria.offset, limit),
            "meta": {"count": len(result.entities), "total": result.total, "limit": limit},
            "jsonapi": JSONAPI_VERSION,
        }
        return self._response(document, request, HTTPStatus.OK.value)

    def create_redirect_response(self, definition, entity_id, request, context=None):
        """
        :return: empty 204 response, the Location header refers to the written resource
        """
        response = DalRestResponse(status=HTTPStatus.NO_CONTENT.value)
        response.headers["Location"] = self.resource_url(request, definition, entity_id)
        return response

    def create_document_response(self, document, request, status=HTTPStatus.OK.value):
        return self._response(document, request, status)

    @staticmethod
    def pagination_links(request, count, page_offset, limit):
        """
        http://jsonapi.org/format/#fetching-pagination

        The following keys MUST be used for pagination links:

        first: the first page of data
        last: the last page of data
        prev: the previous page of data
        next: the next page of data

        We use page[offset] and page[limit], where
        offset is the number of records to offset by prior to returning resources
        """

        def get_link(offset, page_limit):
            ignore_args = "page[offset]", "page[limit]", "page[number]", "page[size]"
            return (
                request.base_url
                + "?"
                + "&".join([f"{k}={v}" for k, v in request.args.items() if k not in ignore_args] + [f"page[offset]={offset}&page[limit]={page_limit}"])
            )

        page_base = int(page_offset / limit) * limit
        first_args = (0, limit)
        last_args = (((count - 1) // limit) * limit if count > 0 else 0, limit)  # offset of the last non-empty page
        self_args = (page_base if page_base <= last_args[0] else last_args[0], limit)
        next_args = (page_offset + limit, limit) if page_offset + limit <= last_args[0] else last_args
        prev_args = (page_offset - limit, limit) if page_offset > limit else first_args

        links = {
            "first": get_link(*first_args),
            "self": get_link(page_offset, limit),
            "last": get_link(*last_args),
            "prev": get_link(*prev_args),
            "next": get_link(*next_args),
        }

        if last_args == self_args:
            del links["last"]
        if first_args == self_args:
            del links["first"]
        if next_args == last_args:
            del links["next"]
        if prev_args == first_args:
            del links["prev"]

        return links
