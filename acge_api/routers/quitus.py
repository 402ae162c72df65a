"""Public quitus verification endpoint.

``GET /verify-quitus/{numeroQuitus}?hash={hash}`` is the URL printed in
every quitus QR code; its path and query shape must not change.  No
authentication: anyone holding the paper document may verify it.
"""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from acge_kernel.exceptions import InfrastructureError, QuitusNotFoundError
from acge_kernel.logging_config import LogContext, get_logger
from acge_kernel.services.quitus_service import UNKNOWN_CLIENT

logger = get_logger("api.quitus")

quitus_router = APIRouter(tags=["Quitus"])


@quitus_router.get("/verify-quitus/{numero_quitus}")
def verify_quitus(
    numero_quitus: str,
    request: Request,
    provided_hash: str | None = Query(default=None, alias="hash"),
) -> JSONResponse:
    """Check a presented hash against the stored quitus and log the attempt."""
    LogContext.set(quitus_id=numero_quitus)
    if not provided_hash:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "error": "Hash de vérification manquant"},
        )

    ip_address = request.headers.get("x-forwarded-for") or UNKNOWN_CLIENT
    user_agent = request.headers.get("user-agent") or UNKNOWN_CLIENT

    try:
        with request.app.state.unit_of_work() as kernel:
            outcome = kernel.quitus.verify_public(
                numero_quitus, provided_hash, ip_address, user_agent,
            )
    except QuitusNotFoundError:
        logger.info("quitus_not_found", extra={"numero_quitus": numero_quitus})
        return JSONResponse(
            status_code=404,
            content={
                "valid": False,
                "error": "Quitus non trouvé",
                "message": "Ce numéro de quitus n'existe pas dans notre système",
            },
        )
    except (InfrastructureError, SQLAlchemyError):
        logger.error(
            "quitus_verification_unavailable",
            extra={"numero_quitus": numero_quitus},
            exc_info=True,
        )
        return JSONResponse(
            status_code=503,
            content={"valid": False, "error": "Service indisponible"},
        )

    if outcome.valid:
        return JSONResponse(
            status_code=200,
            content={
                "valid": True,
                "message": "Document authentique",
                "quitus": outcome.quitus.contenu,
            },
        )
    return JSONResponse(
        status_code=400,
        content={
            "valid": False,
            "error": "Document non authentique",
            "message": (
                "Le hash de vérification ne correspond pas. "
                "Le document a peut-être été modifié."
            ),
        },
    )
