from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..crud.patrimonies import (
    create_patrimony,
    delete_patrimonies,
    delete_patrimony,
    get_patrimony,
    list_patrimonies,
    update_patrimony,
    upsert_patrimonies,
)
from ..db.session import get_db
from ..deps.auth import AuthContext, require_user
from ..schemas.patrimony import BulkDeleteResult, PatrimonyCreate, PatrimonyOut, PatrimonyUpdate
from ..services.change_feed import DELETE, INSERT, UPDATE, change_broadcaster

TABLE = "patrimonies"

router = APIRouter(prefix="/api/v1/patrimonies", tags=["patrimonies"])


def _get_or_404(db: Session, item_id: str):
    item = get_patrimony(db, item_id)
    if not item:
        raise NotFound("Not found")
    return item


@router.get("", response_model=list[PatrimonyOut])
def api_list(ctx: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    return list_patrimonies(db)


@router.post("", response_model=PatrimonyOut, status_code=status.HTTP_201_CREATED)
def api_create(payload: PatrimonyCreate, ctx: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    item = create_patrimony(db, payload.model_dump(exclude_none=True), ctx.user_id)
    change_broadcaster.publish_change(INSERT, TABLE, [item.id])
    return item


@router.post("/bulk", response_model=list[PatrimonyOut], status_code=status.HTTP_201_CREATED)
def api_bulk_upsert(
    payload: list[PatrimonyCreate],
    ctx: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    rows = [row.model_dump(exclude_none=True) for row in payload]
    items = upsert_patrimonies(db, rows, ctx.user_id, ctx.is_admin)
    if items:
        change_broadcaster.publish_change(INSERT, TABLE, [item.id for item in items])
    return items


@router.patch("/{item_id}", response_model=PatrimonyOut)
def api_update(
    item_id: str,
    payload: PatrimonyUpdate,
    ctx: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    item = _get_or_404(db, item_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        return item
    item = update_patrimony(db, item, data, ctx.user_id, ctx.is_admin)
    change_broadcaster.publish_change(UPDATE, TABLE, [item.id])
    return item


@router.delete("/{item_id}")
def api_delete(item_id: str, ctx: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    item = _get_or_404(db, item_id)
    delete_patrimony(db, item, ctx.user_id, ctx.is_admin)
    change_broadcaster.publish_change(DELETE, TABLE, [item_id])
    return {"status": "deleted"}


@router.delete("", response_model=BulkDeleteResult)
def api_delete_many(
    ids: list[str] = Query(..., alias="id"),
    ctx: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    deleted = delete_patrimonies(db, ids, ctx.user_id, ctx.is_admin)
    if deleted:
        change_broadcaster.publish_change(DELETE, TABLE, ids)
    return BulkDeleteResult(deleted=deleted)
