from __future__ import annotations

from fastapi import APIRouter, Depends

from labtenancy.models.tenancy import User
from labtenancy.schemas.tenancy import MeOut
from labtenancy.security.context import SecurityContext
from labtenancy.security.decorators import tenant_optional
from labtenancy.security.dependencies import get_current_user, get_security_context

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeOut)
@tenant_optional()
def me(
    user: User = Depends(get_current_user),
    context: SecurityContext = Depends(get_security_context),
) -> MeOut:
    return MeOut(
        id=user.id,
        email=user.email,
        user_name=user.user_name,
        is_system_admin=context.is_system_admin,
        lab_id=context.lab_id,
        role=context.role.name.lower() if context.role is not None else None,
    )
