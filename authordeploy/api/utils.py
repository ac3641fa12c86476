import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from authordeploy.services.errors import (
    AuthorDeployException,
    DeploymentStateException,
    DispatchException,
    IntegrityException,
    NotFoundException,
    ValidationException,
)

ERROR_STATUS = {
    IntegrityException: 409,
    DeploymentStateException: 409,
    NotFoundException: 404,
    ValidationException: 422,
    DispatchException: 502,
}

logger = logging.getLogger(__name__)


def _error_body(exc: Exception) -> dict:
    body = {"detail": str(exc)}
    if isinstance(exc, ValidationException):
        body.update(field=exc.field, constraint=exc.constraint, kind=exc.kind)
    elif isinstance(exc, DispatchException):
        body.update(category=exc.category, retryable=exc.retryable)
    elif isinstance(exc, DeploymentStateException):
        body.update(status=exc.status)
    return body


def _exception_handler(request: Request, exc: Exception):
    status = ERROR_STATUS.get(type(exc), 500)
    if status >= 500 and not isinstance(exc, DispatchException):
        logger.exception("Unhandled application error for path=%s: %s", request.url.path, exc)
    elif isinstance(exc, ValidationException):
        # User-correctable input, not a fault.
        logger.info("Request rejected path=%s field=%s error=%s", request.url.path, exc.field, exc)
    else:
        logger.warning("Request failed path=%s status=%s error=%s", request.url.path, status, exc)
    return JSONResponse(_error_body(exc), status_code=status)


def register_exception_handlers(app):
    app.exception_handler(AuthorDeployException)(_exception_handler)
