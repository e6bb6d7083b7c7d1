"""CRUD facade over the record store as the client sees it.

``list()`` is the only way records enter client state. Reloads can overlap
(a change event and a post-mutation reload fire together), so each call
takes a ticket and only the newest ticket to finish may replace
``records``; an older response that lands late is dropped.

The repository performs no authorization. Callers run the ownership gate
first.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from ..core.errors import AssetTrackError, LoadError, ValidationFailed, first_error_message
from ..schemas.patrimony import DUPLICATE_NUMBER_MESSAGE, PatrimonyForm, PatrimonyOut
from .ports import RecordStore

logger = logging.getLogger(__name__)


def validate_form(data: PatrimonyForm | Mapping[str, Any]) -> PatrimonyForm:
    """Run the form rules, reporting the first failure as ``ValidationFailed``."""

    if isinstance(data, PatrimonyForm):
        return data
    try:
        return PatrimonyForm.model_validate(dict(data))
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        message = first_error_message(errors) or "Dados inválidos"
        raise ValidationFailed(message, details=[err.get("loc") for err in errors]) from exc


class PatrimonyRepository:
    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.records: tuple[PatrimonyOut, ...] = ()
        self._issued = 0
        self._applied = 0

    async def list(self) -> list[PatrimonyOut]:
        self._issued += 1
        ticket = self._issued
        try:
            rows = await self.store.select_patrimonies()
        except LoadError:
            raise
        except AssetTrackError as exc:
            raise LoadError(exc.message, details=exc.details) from exc
        if ticket < self._applied:
            logger.debug("repository.stale_reload_dropped", extra={"extra_data": {"ticket": ticket}})
            return list(self.records)
        self._applied = ticket
        self.records = tuple(rows)
        return list(self.records)

    def numbers_in_use(self) -> set[str]:
        return {record.number for record in self.records}

    def ensure_number_available(self, number: str) -> None:
        # Advisory only; the store's unique index settles races between sessions.
        if number in self.numbers_in_use():
            raise ValidationFailed(DUPLICATE_NUMBER_MESSAGE)

    def get(self, item_id: str) -> PatrimonyOut | None:
        for record in self.records:
            if record.id == item_id:
                return record
        return None

    async def insert(self, fields: PatrimonyForm | Mapping[str, Any], user_id: str) -> PatrimonyOut:
        form = validate_form(fields)
        self.ensure_number_available(form.number)
        row = form.to_row()
        row["user_id"] = user_id
        return await self.store.insert_patrimony(row)

    async def update(self, item_id: str, fields: PatrimonyForm | Mapping[str, Any]) -> PatrimonyOut:
        form = validate_form(fields)
        return await self.store.update_patrimony(item_id, form.to_row())

    async def delete_one(self, item_id: str) -> None:
        await self.store.delete_patrimony(item_id)

    async def delete_many(self, ids: Iterable[str]) -> int:
        ids = sorted(set(ids))
        if not ids:
            return 0
        return await self.store.delete_patrimonies(ids)
