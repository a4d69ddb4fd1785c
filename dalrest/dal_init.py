import logging
import os
import sys
from flask import Flask, g
from flask_sqlalchemy import SQLAlchemy
from .request import DalRestRequest
from .response import DalRestResponse
import dalrest
import flask.app


class DALREST:
    """This class configures the Flask application to serve the entity api
    :param app: a Flask application.
    :param app_db: optional Flask-SQLAlchemy instance, used for request boundary commits
    :param LOGLEVEL: loglevel configuration variable, values from logging module (0: trace, .. 50: critical)
    """

    # Configuration settings are stored as class variables
    MAX_PAGE_LIMIT = 100000
    DEFAULT_PAGE_LIMIT = 250
    MAX_PAGE_OFFSET = 2**31
    LOGLEVEL = logging.WARNING
    WRITE_SCOPE = "write"
    COMPOSITE_SEARCH_LIMIT = 20
    API_PREFIX = "/api"

    def __init__(self, app: flask.app.Flask, *args, **kwargs) -> None:
        """
        Constructor
        """
        self.app = app
        self.db = None
        if app is not None:
            self.init_app(app, *args, **kwargs)

    def init_app(self, app: flask.app.Flask, app_db: SQLAlchemy = None, **kwargs) -> None:
        """
        Application initialization:
        - request/response classes
        - configuration overrides from the kwargs and app.config
        - per request state
        """
        if not isinstance(app, Flask):  # pragma: no cover
            raise TypeError("'app' should be Flask.")

        if app_db is None:
            app_db = app.extensions.get("sqlalchemy")

        self.db = app_db
        if app_db is not None:
            dalrest.DB = app_db

        app.request_class = DalRestRequest
        app.response_class = DalRestResponse
        app.url_map.strict_slashes = False

        if app.config.get("DEBUG", False):
            log.setLevel(logging.DEBUG)

        for conf_name, conf_val in kwargs.items():
            setattr(DALREST, conf_name, conf_val)

        @app.before_request
        def init_scopes():
            # the scopes are set by the authentication layer, default to none
            if not hasattr(g, "oauth_scopes"):
                g.oauth_scopes = ()

        if app_db is not None:
            # pylint: disable=unused-argument,unused-variable
            @app.teardown_appcontext
            def shutdown_session(exception=None):
                """cfr. https://flask.palletsprojects.com/en/latest/patterns/sqlalchemy/"""
                app_db.session.remove()

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the webserver logs
        The webserver will catch stdout so we redirect eveything to sys.stderr
        """
        log = logging.getLogger(__name__)
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


#
# DB and logging initialization
#
DB = SQLAlchemy()

try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = DALREST.init_logging(LOGLEVEL)
