"""
projecthub/dependencies.py

Reusable FastAPI dependencies for capability enforcement.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends

from projecthub import config
from projecthub.auth_context import AuthContext, require_auth_context
from projecthub.errors import AuthorizationError


def require_capability(capability: str) -> Callable:
    """
    FastAPI dependency factory for role-level capability authorization.

    Capabilities are pre-computed on AuthContext from the user's role. This
    only decides whether the role may call the endpoint at all; per-project
    checks happen in authz.authorize() once the project is loaded.

    Usage in routes:
        @router.get("/alerts")
        def alerts(ctx: AuthContext = Depends(require_capability("budget:view"))):
            ...

    Raises:
        AuthorizationError(403): If the role lacks the capability
    """
    capability = getattr(capability, "value", capability)

    def _check_capability(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if capability not in ctx.capabilities:
            print(f"[AUTHZ] Capability denied: capability={capability}, "
                  f"user_id={ctx.user_id}, role={ctx.role}")
            raise AuthorizationError(
                "Insufficient permissions - this feature is not available for your role"
            )

        if config.IS_DEV:
            print(f"[AUTHZ] Capability granted: capability={capability}, role={ctx.role}")

        return ctx

    return _check_capability
