"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

attach_principal() is the soft variant: it resolves the sid cookie to a
Principal or returns None for anonymous requests. It never raises for a
missing, unknown, or expired token.

require_principal() wraps it and raises HTTP 401 when anonymous. Use it as
the guard on protected routes.

The principal is returned as a dependency value and threaded into the route
explicitly -- it is not stashed on request.state or any global.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import BackgroundTasks, Depends, HTTPException, Request

from auth.cookies import read_session_token
from auth.models import Principal
from auth.service import SessionService


def get_session_service(request: Request) -> SessionService:
    return request.app.state.sessions


def attach_principal(
    request: Request,
    background_tasks: BackgroundTasks,
    service: SessionService = Depends(get_session_service),
) -> Principal | None:
    """Resolve the request's session cookie.

    On success the last-activity touch is scheduled as a background task so
    it runs after the response is sent and cannot fail the request.
    """
    principal = service.resolve(read_session_token(request))
    if principal is not None:
        background_tasks.add_task(service.touch, principal.session_id)
    return principal


def require_principal(principal: Principal | None = Depends(attach_principal)) -> Principal:
    """Require a live session. Raises HTTP 401 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(require_principal)): ...
    """
    if principal is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal
