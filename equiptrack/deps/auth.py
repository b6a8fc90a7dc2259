from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.security import decode_token
from ..crud.users import get_user
from ..db.session import get_db
from ..middlewares import principal_ctx_var
from ..services.lifecycle import NO_COMPANY_MESSAGE, ActorContext


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def get_actor(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> ActorContext:
    """Resolve the bearer token into the acting user and their company.

    Plain ``def`` so the user lookup runs in the threadpool. A user without a
    company is still returned; transitions report that after their own field
    checks, and read routes go through ``get_company_actor``.
    """

    if not authorization:
        raise _unauthorized("Authorization required")
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        raise _unauthorized("Bearer token required")
    try:
        payload = decode_token(credentials, verify_type="access")
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc

    user = get_user(db, payload.sub)
    if user is None:
        raise _unauthorized("Unknown user")
    _set_principal(request, f"user:{user.id}")
    return ActorContext(user_id=user.id, company_id=user.company_id or None)


def get_company_actor(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if not actor.company_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NO_COMPANY_MESSAGE)
    return actor
