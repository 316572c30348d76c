import logging

from fastapi import HTTPException

from render_portal.core.errors import AuthenticationRequired

logger = logging.getLogger(__name__)


def _message(exc: Exception) -> str:
    # KeyError wraps its message in quotes when stringified.
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc)


def as_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, HTTPException):
        return exc
    message = _message(exc)
    if isinstance(exc, AuthenticationRequired):
        return HTTPException(status_code=401, detail=message)
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=message)
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=message)
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=message)
    logger.exception("unhandled error: %s", message)
    return HTTPException(status_code=500, detail="Internal server error")
