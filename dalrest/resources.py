#  This file contains the flask-restful "Resource" objects:
#  - EntityRestAPI for entity collections, instances and nested association paths
#  - SearchAPI for listings with the search criteria in the request body
#  - CloneAPI for the clone action
#  - CompositeSearchAPI for the full text search over all entities
#
#  The resources translate the http request to controller calls, the controller and the
#  response factory are set as class attributes when the resources are exposed (cfr. DalRestAPI.expose_entities)
#
# pylint: disable=redefined-builtin,invalid-name,no-member
#
from http import HTTPStatus
from flask import g, request
from flask_restful import Resource as FRResource
from .config import get_config
from .repository import Context


def get_request_context():
    """
    :return: the repository context of the current request
    """
    return Context(
        scopes=request.scopes,
        user_id=g.get("user_id", None),
        language_id=g.get("language_id", None),
    )


class Resource(FRResource):
    """
    Superclass for the exposed endpoints
    """

    # controller: ApiController instance that executes the operations
    controller = None
    # response_factory: ResponseFactory instance that creates the http responses
    response_factory = None

    def write_response(self, outcome, status):
        """
        :param outcome: WriteOutcome
        :param status: http status of the full response
        :return: the written resource if requested by the client, an empty redirect response otherwise
        """
        context = get_request_context()
        if outcome.entity is not None:
            return self.response_factory.create_detail_response(outcome.entity, outcome.definition, request, context, status)
        return self.response_factory.create_redirect_response(outcome.definition, outcome.entity_id, request, context)


class EntityRestAPI(Resource):
    """
    Route wrapper for the entity paths:
    - /{entity}
    - /{entity}/{id}
    - /{entity}/{id}/{association}
    - /{entity}/{id}/{association}/{id} ...
    """

    def get(self, entity_name, path=""):
        """
        HTTP GET: retrieve a resource (the last path segment has an id) or a collection
        """
        segments = self.controller.resolve(entity_name, path)
        context = get_request_context()
        definition = self.controller.get_definition_of_path(segments)

        if segments[-1].value:
            entity = self.controller.detail(segments, context)
            return self.response_factory.create_detail_response(entity, definition, request, context)

        result = self.controller.fetch_listing(segments, request.args, context)
        return self.response_factory.create_listing_response(result, definition, request, context)

    def post(self, entity_name, path=""):
        """
        HTTP POST: create a resource in the collection identified by the path
        """
        segments = self.controller.resolve(entity_name, path)
        payload = request.get_payload()
        outcome = self.controller.create(segments, payload, get_request_context(), request.wants_full_response)
        return self.write_response(outcome, HTTPStatus.CREATED.value)

    def patch(self, entity_name, path=""):
        """
        HTTP PATCH: update the resource identified by the path
        """
        segments = self.controller.resolve(entity_name, path)
        payload = request.get_payload()
        outcome = self.controller.update(segments, payload, get_request_context(), request.wants_full_response)
        return self.write_response(outcome, HTTPStatus.OK.value)

    def delete(self, entity_name, path=""):
        """
        HTTP DELETE: delete the resource identified by the path, or unlink it from the parent
        """
        segments = self.controller.resolve(entity_name, path)
        context = get_request_context()
        outcome = self.controller.delete(segments, context)
        return self.response_factory.create_redirect_response(outcome.definition, outcome.entity_id, request, context)


class SearchAPI(Resource):
    """
    POST /search/{entity}[/{path}]: listing with the criteria in the request body
    """

    def post(self, entity_name, path=""):
        segments = self.controller.resolve(entity_name, path)
        context = get_request_context()
        definition = self.controller.get_definition_of_path(segments)
        if segments[-1].value:
            entity = self.controller.detail(segments, context)
            return self.response_factory.create_detail_response(entity, definition, request, context)

        result = self.controller.fetch_listing(segments, request.get_payload(), context)
        return self.response_factory.create_listing_response(result, definition, request, context)


class CloneAPI(Resource):
    """
    POST /_action/clone/{entity}/{id}
    """

    def post(self, entity_name, entity_id):
        new_id = self.controller.clone(entity_name, entity_id, get_request_context())
        return self.response_factory.create_document_response({"id": new_id}, request)


class CompositeSearchAPI(Resource):
    """
    GET /_search?term=...&limit=20
    """

    def get(self):
        term = request.args.get("term", "")
        limit = request.args.get("limit", get_config("COMPOSITE_SEARCH_LIMIT"), type=int)
        result = self.controller.composite_search(term, limit, get_request_context())
        return self.response_factory.create_document_response({"data": result}, request)
