# flask_restful API subclass
#
# DalRestAPI exposes the generic entity endpoints:
#   {prefix}/{entity}                              GET, POST
#   {prefix}/{entity}/{path}                       GET, POST, PATCH, DELETE
#   {prefix}/search/{entity}[/{path}]              POST
#   {prefix}/_action/clone/{entity}/{id}           POST
#   {prefix}/_search                               GET (only when a composite searcher is configured)
#
import logging
from functools import wraps
from http import HTTPStatus
from typing import Callable, Optional
import werkzeug.exceptions
from flask import Flask
from flask_restful import Api, abort
from flask_restful.representations.json import output_json
from flask_restful.utils import OrderedDict
from flask_sqlalchemy import SQLAlchemy
import dalrest
from .body_decoder import JSON, JSONAPI
from .controller import ApiController
from .criteria import RequestCriteriaBuilder
from .dal_init import DALREST
from .definitions import DefinitionRegistry
from .errors import JsonapiError
from .json_encoder import DalRestJSONProvider
from .repository import CompositeSearcher, RepositoryRegistry
from .resources import CloneAPI, CompositeSearchAPI, EntityRestAPI, SearchAPI
from .response import ResponseFactory

HTTP_METHODS = ["GET", "POST", "PATCH", "DELETE"]
DEFAULT_REPRESENTATIONS = [(JSONAPI, output_json), (JSON, output_json)]


class DalRestAPI(Api):
    """
    Subclass of the flask_restful API class that exposes the generic entity controller

    :param app: Flask application
    :param registry: DefinitionRegistry with the exposed entity definitions
    :param repositories: RepositoryRegistry, one repository per entity name
    :param prefix: url prefix of the api
    :param response_factory: optional ResponseFactory
    :param composite_searcher: optional full text searcher, exposed on {prefix}/_search
    :param criteria_builder: optional RequestCriteriaBuilder
    :param app_db: optional Flask-SQLAlchemy instance, the session is committed after each successful request
    :param kwargs: DALREST configuration overrides, e.g. DEFAULT_PAGE_LIMIT=50
    """

    def __init__(
        self,
        app: Flask,
        registry: DefinitionRegistry,
        repositories: RepositoryRegistry,
        prefix: str = DALREST.API_PREFIX,
        response_factory: Optional[ResponseFactory] = None,
        composite_searcher: Optional[CompositeSearcher] = None,
        criteria_builder: Optional[RequestCriteriaBuilder] = None,
        app_db: Optional[SQLAlchemy] = None,
        **kwargs,
    ) -> None:
        registry.validate()
        self.dalrest = DALREST(app, app_db=app_db, **kwargs)
        self.controller = ApiController(registry, repositories, criteria_builder, composite_searcher)
        self.response_factory = response_factory or ResponseFactory(prefix)

        super().__init__(app, prefix=prefix, default_mediatype=JSONAPI)
        app.json = DalRestJSONProvider(app)
        self.representations = OrderedDict(DEFAULT_REPRESENTATIONS)
        self.expose_entities()

    def expose_entities(self) -> None:
        """
        Create the resource classes and add them to the api, the classes are created like

        @api_decorator
        class EntityRestAPI_API(EntityRestAPI):
            controller = self.controller
            response_factory = self.response_factory
        """
        properties = {"controller": self.controller, "response_factory": self.response_factory}
        db = self.dalrest.db

        def expose(rest_api, urls, endpoint, methods):
            api_class = api_decorator(type(f"{rest_api.__name__}_API", (rest_api,), dict(properties)), db)
            dalrest.log.info(f"Exposing {rest_api.__name__} on {', '.join(urls)}, endpoint: {endpoint}")
            self.add_resource(api_class, *urls, endpoint=endpoint, methods=methods)

        expose(EntityRestAPI, ["/<string:entity_name>", "/<string:entity_name>/<path:path>"], "dalrest_entity", HTTP_METHODS)
        expose(SearchAPI, ["/search/<string:entity_name>", "/search/<string:entity_name>/<path:path>"], "dalrest_search", ["POST"])
        expose(CloneAPI, ["/_action/clone/<string:entity_name>/<string:entity_id>"], "dalrest_clone", ["POST"])
        if self.controller.composite_searcher is not None:
            expose(CompositeSearchAPI, ["/_search"], "dalrest_composite_search", ["GET"])


def api_decorator(cls, db: Optional[SQLAlchemy] = None):
    """Decorator for the API views:
        - add generic exception handling
        - commit or rollback the db session

    :param cls: The class that will be decorated (e.g. EntityRestAPI)
    :param db: optional Flask-SQLAlchemy instance
    :return: decorated class
    """
    for method_name in ["patch", "post", "delete", "get"]:
        method = getattr(cls, method_name, None)
        if not method:
            continue
        setattr(cls, method_name, http_method_decorator(method, db))
    return cls


def http_method_decorator(fun: Callable, db: Optional[SQLAlchemy] = None) -> Callable:
    """Decorator for the supported HTTP methods (get, post, patch, delete)
    - commit the database
    - convert all exceptions to a JSON:API error document

    This method will be called for all requests
    :param fun: http method
    :param db: optional Flask-SQLAlchemy instance
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        dalrest_exception = None
        status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
        message = ""
        try:
            result = fun(*args, **kwargs)
            if db is not None:
                db.session.commit()
            return result

        except werkzeug.exceptions.NotFound as exc:
            # this also catches dalrest.errors.NotFoundError
            status_code = HTTPStatus.NOT_FOUND.value
            dalrest_exception = exc
            message = HTTPStatus.NOT_FOUND.description

        except JsonapiError as exc:
            dalrest.log.exception(exc)
            dalrest_exception = exc

        except werkzeug.exceptions.HTTPException as exc:
            status_code = exc.code
            message = exc.description
            dalrest.log.error(message)

        except Exception as exc:
            dalrest.log.exception(exc)
            if dalrest.log.getEffectiveLevel() > logging.DEBUG:
                message = "Logging Disabled"
            else:
                message = str(exc)

        status_code = getattr(dalrest_exception, "status_code", status_code)
        api_code = getattr(dalrest_exception, "api_code", status_code)
        title = getattr(dalrest_exception, "message", message)
        detail = getattr(dalrest_exception, "detail", title)

        if db is not None:
            db.session.rollback()
        errors = dict(title=title, detail=detail, code=str(api_code))
        allowed_methods = getattr(dalrest_exception, "allowed_methods", None)
        if allowed_methods:
            # werkzeug's MethodNotAllowed adds the Allow header, flask-restful keeps the exception headers
            method_not_allowed = werkzeug.exceptions.MethodNotAllowed(valid_methods=allowed_methods)
            method_not_allowed.data = {"errors": [errors]}
            raise method_not_allowed
        abort(status_code, errors=[errors])

    return method_wrapper
