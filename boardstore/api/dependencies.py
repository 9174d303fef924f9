"""FastAPI dependencies for the Boardstore API.

Provides dependency injection for:
- Session context (from request headers)
- The StoreRegistry backing that session
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from boardstore.managers.registry import StoreRegistry
from boardstore.services.session_mode import SessionContext, SessionModeResolver


def get_session_context(
    authorization: str | None = Header(None),
    user_id: str | None = Header(None, alias="X-User-Id"),
    session_id: str | None = Header(None, alias="X-Session-Id"),
) -> SessionContext:
    """Build the session context.

    A request without ``X-User-Id`` is a guest. Guests without
    ``X-Session-Id`` all share the ``anonymous`` namespace.
    """
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:] or None

    return SessionContext(
        session_id=session_id or user_id or "anonymous",
        user_id=user_id,
        access_token=token,
        guest=user_id is None,
    )


def get_resolver(request: Request) -> SessionModeResolver:
    return request.app.state.resolver


def get_registry(
    context: Annotated[SessionContext, Depends(get_session_context)],
    resolver: Annotated[SessionModeResolver, Depends(get_resolver)],
) -> StoreRegistry:
    return resolver.registry_for(context)


SessionContextDep = Annotated[SessionContext, Depends(get_session_context)]
RegistryDep = Annotated[StoreRegistry, Depends(get_registry)]
