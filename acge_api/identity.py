"""Identity oracle: resolves the calling actor of an HTTP request.

Authentication itself happens upstream.  The gateway forwards the
authenticated user as ``X-User-Id`` and ``X-User-Role`` headers; this
module only turns them into an explicit ``ActorContext``.
"""

from typing import Protocol

from fastapi import HTTPException, Request

from acge_kernel.domain.dossier import ActorContext, Role
from acge_kernel.logging_config import LogContext, get_logger

logger = get_logger("api.identity")

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


class IdentityOracle(Protocol):
    def resolve(self, request: Request) -> ActorContext | None: ...


class HeaderIdentityOracle:
    """Reads the actor from the gateway headers."""

    def resolve(self, request: Request) -> ActorContext | None:
        user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
        role = (request.headers.get(USER_ROLE_HEADER) or "").strip().upper()
        if not user_id or not role:
            return None
        try:
            return ActorContext(user_id=user_id, role=Role(role))
        except ValueError:
            logger.warning("unknown_role", extra={"role": role})
            return None


def require_actor(request: Request) -> ActorContext:
    """FastAPI dependency: the authenticated actor, or 401."""
    oracle: IdentityOracle = request.app.state.identity_oracle
    actor = oracle.resolve(request)
    if actor is None:
        raise HTTPException(status_code=401, detail="Authentification requise")
    LogContext.set(actor_id=actor.user_id, actor_role=actor.role.value)
    return actor
