"""One-time upload of records kept in client-local storage.

Before the shared store existed, records lived under ``patrimonies`` in the
browser's local storage. The first signed-in start uploads them, stamps them
with the principal's id and sets ``patrimonies_migrated_to_cloud`` so it
never happens again. A failed attempt leaves both keys as they were and is
retried on the next start.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from ..core.errors import AssetTrackError, MigrationError
from ..schemas.patrimony import LegacyPatrimony
from .notifications import Notifier
from .ports import LocalStorage, RecordStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "patrimonies"
MIGRATION_KEY = "patrimonies_migrated_to_cloud"

MIGRATION_FAILED_MESSAGE = "Erro ao migrar dados. Tente novamente."


def parse_legacy(raw: str) -> list[LegacyPatrimony]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MigrationError("Dados locais ilegíveis") from exc
    if not isinstance(payload, list):
        raise MigrationError("Dados locais ilegíveis")
    try:
        return [LegacyPatrimony.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise MigrationError("Dados locais ilegíveis", details=exc.errors(include_url=False)) from exc


class LegacyMigrationRunner:
    def __init__(self, storage: LocalStorage, store: RecordStore, notifier: Notifier) -> None:
        self.storage = storage
        self.store = store
        self.notifier = notifier
        self.running = False

    @property
    def completed(self) -> bool:
        return self.storage.get_item(MIGRATION_KEY) == "true"

    def _mark_done(self) -> None:
        self.storage.set_item(MIGRATION_KEY, "true")

    async def run_once(self, principal_id: str) -> int:
        """Upload the legacy collection if it has not been uploaded yet.

        Returns the number of records uploaded. Failures are reported through
        the notifier and leave the marker unset.
        """
        if self.completed:
            return 0
        raw = self.storage.get_item(STORAGE_KEY)
        if not raw:
            self._mark_done()
            return 0

        self.running = True
        try:
            count = await self._upload(raw, principal_id)
        except MigrationError as exc:
            logger.warning(
                "migration.failed",
                extra={"extra_data": {"user_id": principal_id, "error": exc.message}},
            )
            self.notifier.error(MIGRATION_FAILED_MESSAGE)
            return 0
        finally:
            self.running = False

        self._mark_done()
        if count:
            self.notifier.success(f"{count} patrimônio(s) migrado(s) para a nuvem!")
        logger.info("migration.completed", extra={"extra_data": {"user_id": principal_id, "count": count}})
        return count

    async def _upload(self, raw: str, principal_id: str) -> int:
        legacy = parse_legacy(raw)
        if not legacy:
            return 0
        rows = [item.to_row(principal_id) for item in legacy]
        try:
            await self.store.insert_patrimonies(rows)
        except AssetTrackError as exc:
            raise MigrationError(exc.message, details=exc.details) from exc
        return len(rows)
