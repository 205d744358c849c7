from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from coursehub.database import get_db
from coursehub.models.user import User
from coursehub.schemas.user import public_user
from coursehub.services.authz import require_admin

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("")
def list_users(
    role: str | None = None,
    admin: User = Depends(require_admin),
    db: DbSession = Depends(get_db),
):
    q = db.query(User)
    if role:
        q = q.filter(User.role == role)
    rows = q.order_by(User.created_at.desc()).all()
    return {"success": True, "count": len(rows), "users": [public_user(u) for u in rows]}
