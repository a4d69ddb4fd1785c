# Configuration settings should be set in app.config or passed as DalRestAPI keyword arguments
# The get_config function looks them up in that order, then falls back to the environment
import os
import logging
from flask import current_app
import dalrest
from typing import Any, Optional


def get_config(option: str) -> Optional[Any]:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        # RuntimeError: working outside of application context
        result = getattr(dalrest.DALREST, option, None)
    if result is None:
        result = os.environ.get(option, None)
    return result


def get_int_config(option: str) -> int:
    """
    :param option: configuration parameter
    :return: configuration value converted to an integer
    """
    return int(get_config(option))


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return dalrest.log.getEffectiveLevel() < logging.INFO
