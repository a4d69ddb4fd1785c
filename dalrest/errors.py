# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user for server errors.
# If set to debug, too much sensitive info might be shown !
#
# The exceptions will be caught in http_method_decorator and formatted, for example:
# {
#      "title": "Not Found: ",
#      "detail": "Not Found: Resource at path \"product.foo\" is not an existing relation.",
#      "code": "404"
# }
#
import traceback
from flask import request, has_request_context
from werkzeug.exceptions import NotFound
import dalrest
from sqlalchemy.exc import DontWrapMixin
from http import HTTPStatus
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"


class JsonapiError(Exception, DontWrapMixin):
    """
    Base class of the errors that are returned to the client as a JSON:API error document
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = ""

    def __str__(self):
        return self.message


class NotFoundError(JsonapiError, NotFound):
    """
    This exception is raised when an entity, association or resource was not found
    """

    status_code = HTTPStatus.NOT_FOUND.value
    message = "Not Found: "

    def __init__(self, message="", status_code=HTTPStatus.NOT_FOUND.value, api_code=None):
        """
        :param message: Message to be returned in the (json) body
        :param status_code: HTTP Status code
        :param api_code: API code
        """
        JsonapiError.__init__(self, message)
        self.status_code = status_code
        self.api_code = api_code or status_code
        dalrest.log.error("Not found: %s", message)
        self.message += message


class DefinitionNotFoundError(NotFoundError):
    """
    Raised by the registry when no definition has been registered for an entity name
    """

    def __init__(self, entity_name):
        self.entity_name = entity_name
        super().__init__(f'Definition for entity "{entity_name}" does not exist.')


class UnknownRepositoryError(NotFoundError):
    """
    Raised when no repository is available for a definition
    """

    def __init__(self, entity_name):
        self.entity_name = entity_name
        super().__init__(f'No repository registered for entity "{entity_name}".')


class ResourceNotFoundError(NotFoundError):
    """
    Raised when the resource identified by a primary key does not exist
    """

    def __init__(self, entity_name, primary_key):
        self.entity_name = entity_name
        self.primary_key = dict(primary_key)
        key = ", ".join(f"{name}({value})" for name, value in self.primary_key.items())
        super().__init__(f'The {entity_name} resource with the following primary key was not found: {key}')


class AccessDeniedError(JsonapiError):
    """
    This exception is raised when a write is attempted without the required scope
    we use FORBIDDEN(403) instead of UNAUTHORIZED(401) (old http status code descriptions were not clear)
    """

    status_code = HTTPStatus.FORBIDDEN.value
    message = "Authorization Error: "

    def __init__(self, message="", status_code=HTTPStatus.FORBIDDEN.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code or status_code
        dalrest.log.error("AccessDeniedError: %s", message)
        self.message += message


class GenericError(JsonapiError):
    """
    This exception is raised when an unrecoverable error has been detected,
    e.g. an association kind reaches a code path with no defined behavior
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value  # 500
    message = "Generic Error: "

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code or status_code
        dalrest.log.error("Generic Error: %s", message)
        if is_debug():
            if has_request_context():
                dalrest.log.info(f"Error in {request.url}")
            dalrest.log.debug(traceback.format_exc(120))
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG


class ValidationError(JsonapiError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    message = "Validation Error: "

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, api_code=None):
        Exception.__init__(self)
        self.status_code = status_code
        self.api_code = api_code or status_code
        dalrest.log.warning("ValidationError: %s", message)
        self.message += message


class NoEntityClonedError(ValidationError):
    """
    Raised when a clone operation did not write the cloned entity
    """

    def __init__(self, entity_name, entity_id):
        super().__init__(f'Could not clone entity {entity_name} with id {entity_id}.')


class MethodNotAllowedError(JsonapiError):
    """
    Raised when a write is sent to a path that doesn't support it,
    e.g. POSTing to an instance path
    """

    status_code = HTTPStatus.METHOD_NOT_ALLOWED.value
    message = "Method Not Allowed: "

    def __init__(self, message="", allowed_methods=(), api_code=None):
        Exception.__init__(self)
        self.status_code = HTTPStatus.METHOD_NOT_ALLOWED.value
        self.api_code = api_code or self.status_code
        self.allowed_methods = list(allowed_methods)
        dalrest.log.warning("MethodNotAllowedError: %s", message)
        self.message += message


class UnsupportedMediaTypeError(JsonapiError):
    """
    Raised when the request body has a content type we can't decode
    """

    status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE.value
    message = "Unsupported Media Type: "

    def __init__(self, content_type):
        Exception.__init__(self)
        self.status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE.value
        self.api_code = self.status_code
        self.content_type = content_type
        dalrest.log.warning("UnsupportedMediaTypeError: %s", content_type)
        self.message += f'The Content-Type "{content_type}" is unsupported.'
