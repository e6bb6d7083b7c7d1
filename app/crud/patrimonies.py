# app/crud/patrimonies.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import MutationError, PermissionDenied
from ..core.permissions import can_mutate
from ..models.patrimony import Patrimony, new_id
from ..schemas.patrimony import DUPLICATE_NUMBER_MESSAGE, PatrimonyLocation, to_iso

ROW_POLICY_MESSAGE = "Row-level policy: only the owner or an administrator may change this record"
INSERT_POLICY_MESSAGE = "Row-level policy: records must be owned by the user creating them"

# Columns an update may touch; id, owner and creation time are fixed at insert.
MUTABLE_FIELDS = (
    "number",
    "model",
    "registered_by",
    "observations",
    "status",
    "location",
    "custom_location",
)


def list_patrimonies(db: Session) -> list[Patrimony]:
    """
    Return every record, newest ``registered_at`` first.
    """
    stmt = select(Patrimony).order_by(desc(Patrimony.registered_at), desc(Patrimony.id))
    return list(db.execute(stmt).scalars().all())


def get_patrimony(db: Session, item_id: str) -> Patrimony | None:
    return db.get(Patrimony, item_id)


def create_patrimony(db: Session, payload: dict, principal_id: str) -> Patrimony:
    """
    Insert one record owned by ``principal_id``.
    """
    obj = _new_row(payload, principal_id)
    db.add(obj)
    _commit(db)
    db.refresh(obj)
    return obj


def upsert_patrimonies(
    db: Session,
    rows: Iterable[dict],
    principal_id: str,
    is_elevated: bool = False,
) -> list[Patrimony]:
    """
    Insert many records in one transaction, overwriting rows that already
    exist with the same id. Uploading the same batch twice therefore leaves a
    single copy of each record.
    """
    touched: dict[str, Patrimony] = {}
    try:
        for payload in rows:
            item_id = payload.get("id")
            existing = (touched.get(item_id) or db.get(Patrimony, item_id)) if item_id else None
            if existing is None:
                obj = _new_row(payload, principal_id)
                db.add(obj)
                touched[obj.id] = obj
                continue
            if not can_mutate(principal_id, existing.user_id, is_elevated):
                raise PermissionDenied(ROW_POLICY_MESSAGE, details={"id": existing.id})
            _apply_fields(existing, payload)
            if payload.get("registered_at"):
                existing.registered_at = _timestamp(payload["registered_at"])
            touched[existing.id] = existing
    except PermissionDenied:
        db.rollback()
        raise
    _commit(db)
    for obj in touched.values():
        db.refresh(obj)
    return list(touched.values())


def update_patrimony(
    db: Session,
    item: Patrimony,
    payload: dict,
    principal_id: str,
    is_elevated: bool = False,
) -> Patrimony:
    """
    Update an existing record in-place. Unknown and immutable keys are ignored.
    """
    if not can_mutate(principal_id, item.user_id, is_elevated):
        raise PermissionDenied(ROW_POLICY_MESSAGE, details={"id": item.id})
    _apply_fields(item, payload)
    _commit(db)
    db.refresh(item)
    return item


def delete_patrimony(db: Session, item: Patrimony, principal_id: str, is_elevated: bool = False) -> None:
    if not can_mutate(principal_id, item.user_id, is_elevated):
        raise PermissionDenied(ROW_POLICY_MESSAGE, details={"id": item.id})
    db.delete(item)
    _commit(db)


def delete_patrimonies(db: Session, ids: Iterable[str], principal_id: str, is_elevated: bool = False) -> int:
    """
    Delete every listed record or none of them. Unknown ids are skipped.
    """
    wanted = {item_id for item_id in ids if item_id}
    if not wanted:
        return 0
    items = db.execute(select(Patrimony).where(Patrimony.id.in_(wanted))).scalars().all()
    denied = [item.id for item in items if not can_mutate(principal_id, item.user_id, is_elevated)]
    if denied:
        raise PermissionDenied(ROW_POLICY_MESSAGE, details={"ids": sorted(denied)})
    for item in items:
        db.delete(item)
    _commit(db)
    return len(items)


def _new_row(payload: dict, principal_id: str) -> Patrimony:
    owner = payload.get("user_id") or principal_id
    if owner != principal_id:
        raise PermissionDenied(INSERT_POLICY_MESSAGE)
    obj = Patrimony(
        id=payload.get("id") or new_id(),
        user_id=principal_id,
        registered_at=_timestamp(payload.get("registered_at")),
    )
    _apply_fields(obj, payload)
    if obj.observations is None:
        obj.observations = ""
    return obj


def _apply_fields(item: Patrimony, payload: dict) -> None:
    for key in MUTABLE_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            value = value.strip()
        if key == "custom_location":
            value = value or None
        setattr(item, key, value)
    if item.location != PatrimonyLocation.OTHER.value:
        item.custom_location = None


def _timestamp(value) -> str:
    if value is None or value == "":
        return to_iso()
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return to_iso(value)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise MutationError(_integrity_message(exc)) from exc


def _integrity_message(exc: IntegrityError) -> str:
    text = str(getattr(exc, "orig", exc)).lower()
    if "number" in text:
        return DUPLICATE_NUMBER_MESSAGE
    return "Registro conflita com um registro existente"
