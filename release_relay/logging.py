"""Logging helpers for release-relay.

CI logs are read by people scrolling a long job output, so the helpers
serialize their arguments to JSON instead of relying on repr().
"""

from __future__ import annotations

import json
import logging
from typing import Any

_LOGGER_NAME = "release_relay"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the release_relay hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Configure the release_relay logger with a single console handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations don't duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[release-relay] %(levelname)s %(message)s"))
    logger.addHandler(handler)
    return logger


def _stringify(params: tuple[Any, ...]) -> str:
    return json.dumps(list(params), default=_json_default)


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return {
            key: "***" if "token" in key else value
            for key, value in obj.model_dump(mode="json").items()
        }
    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj), **_error_fields(obj)}
    return str(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields = {k: v for k, v in vars(exc).items() if not k.startswith("_")}
    fields.pop("message", None)
    return fields


def log_debug(logger: logging.Logger, *params: Any) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_stringify(params))


def log_info(logger: logging.Logger, *params: Any) -> None:
    logger.info(_stringify(params))


def log_error(logger: logging.Logger, *params: Any) -> None:
    logger.error(_stringify(params))


__all__ = [
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
]
