"""Maps kernel exceptions to HTTP responses.

Workflow and data errors carry their structured detail to the caller.
Infrastructure and integrity failures are reported generically and logged
in full.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from acge_kernel.exceptions import (
    AcgeKernelError,
    DossierError,
    DuplicateDossierNumberError,
    GateNotSatisfiedError,
    ImmutabilityError,
    InfrastructureError,
    IntegrityError,
    IntegrityMismatchError,
    InvalidDossierFieldError,
    MissingSynthesisError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedActorError,
)
from acge_kernel.logging_config import get_logger

logger = get_logger("api.errors")

GENERIC_INFRASTRUCTURE_MESSAGE = "Service de base de données indisponible"
GENERIC_INTEGRITY_MESSAGE = "Erreur interne du serveur"

# First match wins; subclasses before their bases.
_STATUS_CODES: tuple[tuple[type[AcgeKernelError], int], ...] = (
    (NotFoundError, 404),
    (PreconditionFailedError, 409),
    (GateNotSatisfiedError, 400),
    (MissingSynthesisError, 400),
    (UnauthorizedActorError, 403),
    (DuplicateDossierNumberError, 409),
    (InvalidDossierFieldError, 400),
    (DossierError, 400),
    (IntegrityMismatchError, 400),
    (IntegrityError, 500),
    (ImmutabilityError, 409),
    (InfrastructureError, 503),
)


def status_code_for(exc: AcgeKernelError) -> int:
    for exc_type, status in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


def error_body(exc: AcgeKernelError) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "code": exc.code, "error": str(exc)}
    if isinstance(exc, PreconditionFailedError):
        body["currentStatus"] = exc.current_status
        body["allowedStatuses"] = list(exc.allowed_statuses)
        body["concurrentModification"] = exc.concurrent_modification
    elif isinstance(exc, GateNotSatisfiedError):
        body["missingValidations"] = list(exc.gates)
        if exc.reason:
            body["reason"] = exc.reason
    elif isinstance(exc, InvalidDossierFieldError):
        body["field"] = exc.field
    elif isinstance(exc, InfrastructureError):
        body["error"] = GENERIC_INFRASTRUCTURE_MESSAGE
    elif isinstance(exc, IntegrityError) and not isinstance(exc, IntegrityMismatchError):
        body["error"] = GENERIC_INTEGRITY_MESSAGE
    return body


async def _kernel_error_handler(request: Request, exc: AcgeKernelError) -> JSONResponse:
    status = status_code_for(exc)
    extra = {"path": request.url.path, "status_code": status, "code": exc.code}
    if status >= 500:
        logger.error("request_failed", extra=extra, exc_info=exc)
    else:
        logger.info("request_rejected", extra={**extra, "detail": str(exc)})
    return JSONResponse(status_code=status, content=error_body(exc))


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "request_failed",
        extra={"path": request.url.path, "status_code": 503},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "code": InfrastructureError.code,
            "error": GENERIC_INFRASTRUCTURE_MESSAGE,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AcgeKernelError, _kernel_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
