"""
Caller identity from the upstream gateway.
The gateway authenticates and forwards X-User-Id / X-User-Role; nothing here checks credentials.
"""
from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from app.core.errors import AuthorizationDenied
from app.logic.identity import Identity, normalize_role


def current_identity(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> Identity:
    role = normalize_role(x_user_role)
    try:
        user_id = int((x_user_id or "").strip())
    except ValueError:
        user_id = None
    if not user_id or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "message": "auth_required"},
        )
    return Identity(id=user_id, role=role)


def require_admin(identity: Identity = Depends(current_identity)) -> Identity:
    if not identity.is_admin:
        raise AuthorizationDenied("Administrator access required")
    return identity
