"""Top-level controller for the records screen.

``PatrimonyView`` owns the state the screen renders: the principal, the
admin flag, the record list, filter and selection, the record being edited
and the inline form error. Components below it are wired in the order a
session comes up: session, role lookup, legacy upload, first load, change
feed.

Every mutation runs the ownership gate before touching the store and ends in
an explicit reload; the change feed triggers the same reload for every other
open session. Failures never escape: they become notifications or, for form
validation, ``form_error``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from ..core.errors import AssetTrackError, LoadError, MutationError, PermissionDenied, ValidationFailed
from ..core.permissions import can_mutate
from ..schemas.auth import UserOut
from ..schemas.patrimony import DUPLICATE_NUMBER_MESSAGE, PatrimonyForm, PatrimonyOut
from .feed import ChangeFeedListener
from .migration import LegacyMigrationRunner
from .notifications import Notifier
from .ports import AuthProvider, LocalStorage, RealtimeChannel, RecordStore
from .repository import PatrimonyRepository, validate_form
from .roles import RoleResolver
from .selection import SelectAllState, SelectionState
from .session import SessionManager

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth"

CREATED_MESSAGE = "Patrimônio cadastrado com sucesso!"
UPDATED_MESSAGE = "Patrimônio atualizado com sucesso!"
SAVE_FAILED_MESSAGE = "Erro ao salvar patrimônio."
EDIT_DENIED_MESSAGE = "Apenas administradores podem editar patrimônios de outros usuários"
DELETE_DENIED_MESSAGE = "Apenas administradores podem deletar patrimônios de outros usuários"
DELETED_MESSAGE = "Patrimônio deletado com sucesso!"
DELETE_FAILED_MESSAGE = "Erro ao deletar patrimônio."
BULK_DELETE_DENIED_MESSAGE = "Você não tem permissão para deletar patrimônios de outros usuários"
BULK_DELETE_FAILED_MESSAGE = "Erro ao deletar patrimônios."
LOAD_FAILED_MESSAGE = "Erro ao carregar dados."


class PatrimonyView:
    def __init__(
        self,
        auth: AuthProvider,
        store: RecordStore,
        channel: RealtimeChannel,
        storage: LocalStorage,
        *,
        notifier: Notifier | None = None,
        on_redirect: Callable[[str], Any] | None = None,
    ) -> None:
        self.notifier = notifier or Notifier()
        self.on_redirect = on_redirect
        self.session = SessionManager(auth, on_signed_in=self._on_signed_in, on_signed_out=self._on_signed_out)
        self.roles = RoleResolver(store)
        self.migration = LegacyMigrationRunner(storage, store, self.notifier)
        self.repository = PatrimonyRepository(store)
        self.feed = ChangeFeedListener(
            channel, self.repository, on_reload=self._apply_records, on_error=self._on_load_error
        )
        self.selection = SelectionState()

        self.principal: UserOut | None = None
        self.is_admin = False
        self.records: tuple[PatrimonyOut, ...] = ()
        self.loading = True
        self.load_failed = False
        self.editing: PatrimonyOut | None = None
        self.form_error: str | None = None
        self.redirect_to: str | None = None
        # Bumped on every principal change; a setup from an older generation stops.
        self._generation = 0

    # ---------- lifecycle ----------

    async def start(self) -> None:
        await self.session.start()

    async def teardown(self) -> None:
        self.feed.stop()
        self.session.teardown()

    async def sign_out(self) -> None:
        await self.session.sign_out()

    async def _on_signed_in(self, principal: UserOut) -> None:
        logger.info("view.signed_in", extra={"extra_data": {"user_id": principal.id}})
        self._generation += 1
        generation = self._generation
        self.principal = principal
        self.redirect_to = None
        self.loading = True
        self.is_admin = await self.roles.resolve(principal.id)
        if not self._is_current(generation):
            return
        await self.migration.run_once(principal.id)
        if not self._is_current(generation):
            return
        await self.reload()
        if not self._is_current(generation):
            return
        self.feed.start()

    def _is_current(self, generation: int) -> bool:
        """False once the principal that started this setup has gone or changed."""
        if generation == self._generation and self.principal is not None:
            return True
        logger.info("view.setup_abandoned", extra={"extra_data": {"generation": generation}})
        return False

    def _on_signed_out(self) -> None:
        self._generation += 1
        self.feed.stop()
        self.principal = None
        self.is_admin = False
        self.records = ()
        self.selection.clear()
        self.editing = None
        self._redirect(LOGIN_PATH)

    def _redirect(self, path: str) -> None:
        self.redirect_to = path
        if self.on_redirect is not None:
            self.on_redirect(path)

    # ---------- loading ----------

    @property
    def migrating(self) -> bool:
        return self.migration.running

    @property
    def blocking(self) -> bool:
        """Full-screen indicator: first load or legacy upload in progress."""
        return self.loading or self.migrating

    async def reload(self) -> bool:
        try:
            return await self.feed.reload()
        finally:
            self.loading = False

    def _apply_records(self, records: Sequence[PatrimonyOut]) -> None:
        self.records = tuple(records)
        self.load_failed = False
        self.selection.prune(record.id for record in self.records)

    def _on_load_error(self, exc: LoadError) -> None:
        self.load_failed = True
        self.notifier.error(LOAD_FAILED_MESSAGE)

    # ---------- filter & selection ----------

    @property
    def filtered_records(self) -> list[PatrimonyOut]:
        return self.selection.filtered(self.records)

    @property
    def select_all_state(self) -> SelectAllState:
        return self.selection.select_all_state(self.records)

    @property
    def selected_ids(self) -> set[str]:
        return set(self.selection.selected)

    def set_filter(self, text: str) -> None:
        self.selection.set_filter(text)

    def toggle_select(self, item_id: str) -> None:
        if any(record.id == item_id for record in self.records):
            self.selection.toggle(item_id)

    def toggle_select_all(self) -> None:
        self.selection.toggle_all(self.records)

    # ---------- ownership gate ----------

    def can_mutate(self, record: PatrimonyOut) -> bool:
        principal_id = self.principal.id if self.principal else None
        return can_mutate(principal_id, record.user_id, self.is_admin)

    def _find(self, item_id: str) -> PatrimonyOut | None:
        for record in self.records:
            if record.id == item_id:
                return record
        return None

    # ---------- mutations ----------

    def open_create(self) -> None:
        self.editing = None
        self.form_error = None

    def request_edit(self, record: PatrimonyOut) -> bool:
        """Open ``record`` in the form, unless the gate says it is locked."""
        if not self.can_mutate(record):
            self.notifier.error(EDIT_DENIED_MESSAGE)
            return False
        self.editing = record
        self.form_error = None
        return True

    def cancel_edit(self) -> None:
        self.editing = None
        self.form_error = None

    async def submit(self, data: PatrimonyForm | Mapping[str, Any]) -> bool:
        self.form_error = None
        if self.principal is None:
            self._redirect(LOGIN_PATH)
            return False
        try:
            form = validate_form(data)
        except ValidationFailed as exc:
            self.form_error = exc.message
            return False

        editing = self.editing
        try:
            if editing is None:
                self.repository.ensure_number_available(form.number)
        except ValidationFailed as exc:
            self.form_error = exc.message
            return False
        if editing is not None and not self.can_mutate(editing):
            self.notifier.error(EDIT_DENIED_MESSAGE)
            return False

        try:
            if editing is not None:
                await self.repository.update(editing.id, form)
                message = UPDATED_MESSAGE
            else:
                await self.repository.insert(form, self.principal.id)
                message = CREATED_MESSAGE
        except MutationError as exc:
            logger.warning("view.save_failed", extra={"extra_data": {"error": exc.message}})
            if exc.message == DUPLICATE_NUMBER_MESSAGE:
                # Another session took the number after our last reload.
                self.form_error = exc.message
            else:
                self.notifier.error(SAVE_FAILED_MESSAGE)
            return False
        except PermissionDenied as exc:
            logger.warning("view.save_denied", extra={"extra_data": {"error": exc.message}})
            self.notifier.error(EDIT_DENIED_MESSAGE)
            return False
        except AssetTrackError as exc:
            logger.warning("view.save_failed", extra={"extra_data": {"error": exc.message}})
            self.notifier.error(SAVE_FAILED_MESSAGE)
            return False

        self.editing = None
        self.notifier.success(message)
        await self.reload()
        return True

    async def delete(self, item_id: str) -> bool:
        record = self._find(item_id)
        if record is None:
            # Already gone from the list, usually deleted by another session.
            self.notifier.error(DELETE_FAILED_MESSAGE)
            return False
        if not self.can_mutate(record):
            self.notifier.error(DELETE_DENIED_MESSAGE)
            return False
        try:
            await self.repository.delete_one(item_id)
        except AssetTrackError as exc:
            logger.warning("view.delete_failed", extra={"extra_data": {"id": item_id, "error": exc.message}})
            self.notifier.error(DELETE_FAILED_MESSAGE)
            return False
        self.selection.discard(item_id)
        self.notifier.success(DELETED_MESSAGE)
        await self.reload()
        return True

    async def delete_selected(self) -> bool:
        ids = set(self.selection.selected)
        if not ids:
            return False
        targets = [record for record in self.records if record.id in ids]
        if not all(self.can_mutate(record) for record in targets):
            self.notifier.error(BULK_DELETE_DENIED_MESSAGE)
            return False
        try:
            await self.repository.delete_many(ids)
        except AssetTrackError as exc:
            logger.warning("view.bulk_delete_failed", extra={"extra_data": {"count": len(ids), "error": exc.message}})
            self.notifier.error(BULK_DELETE_FAILED_MESSAGE)
            return False
        self.selection.clear()
        self.notifier.success(f"{len(ids)} patrimônio(s) deletado(s) com sucesso!")
        await self.reload()
        return True
