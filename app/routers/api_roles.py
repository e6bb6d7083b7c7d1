from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.errors import PermissionDenied
from ..crud.users import list_roles
from ..db.session import get_db
from ..deps.auth import AuthContext, require_user
from ..schemas.auth import UserRoleOut

router = APIRouter(prefix="/api/v1/user-roles", tags=["roles"])


@router.get("", response_model=list[UserRoleOut])
def api_list_roles(
    user_id: str,
    role: str | None = None,
    ctx: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Role grants of ``user_id``. Only administrators may read other users' grants."""
    if user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDenied("Row-level policy: role grants are only visible to their owner")
    return list_roles(db, user_id, role)
