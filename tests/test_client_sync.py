import asyncio
import json
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from app.client.migration import MIGRATION_KEY, STORAGE_KEY, LegacyMigrationRunner
from app.client.notifications import ERROR, SUCCESS, Notifier
from app.client.repository import PatrimonyRepository
from app.client.roles import RoleResolver
from app.client.selection import SelectAllState
from app.client.view import (
    BULK_DELETE_DENIED_MESSAGE,
    CREATED_MESSAGE,
    DELETE_DENIED_MESSAGE,
    DELETE_FAILED_MESSAGE,
    DELETED_MESSAGE,
    EDIT_DENIED_MESSAGE,
    LOAD_FAILED_MESSAGE,
    LOGIN_PATH,
    SAVE_FAILED_MESSAGE,
    UPDATED_MESSAGE,
    PatrimonyView,
)
from app.core.errors import LoadError, PermissionDenied, ValidationFailed
from app.schemas.patrimony import CUSTOM_LOCATION_REQUIRED_MESSAGE, DUPLICATE_NUMBER_MESSAGE
from fakes import ANA, BRUNO, FakeAuth, FakeChannel, MemoryStorage, MemoryStore, session_for

FORM = {
    "number": "001",
    "model": "Dell X",
    "registered_by": "Ana",
    "observations": "ok",
    "status": "Em manutenção",
    "location": "Quartinho",
}

LEGACY = [
    {
        "id": "1700000000001",
        "number": "100",
        "model": "Lenovo",
        "registeredBy": "Carla",
        "registeredAt": "2023-11-14T22:13:20.000Z",
        "observations": "teclado",
        "status": "Finalizada",
        "location": "Quartinho",
    },
    {
        "id": "1700000000002",
        "number": "101",
        "model": "HP",
        "registeredBy": "Carla",
        "registeredAt": "2023-11-15T22:13:20.000Z",
        "status": "Em manutenção",
        "location": "Outro",
        "customLocation": "Recepção",
    },
]


def _view(user=ANA, *, admins=(), storage=None, store=None):
    store = store or MemoryStore(admins=admins, principal=user.id if user else None)
    auth = FakeAuth(session_for(user) if user else None)
    channel = FakeChannel()
    storage = storage if storage is not None else MemoryStorage({MIGRATION_KEY: "true"})
    redirects = []
    view = PatrimonyView(auth, store, channel, storage, on_redirect=redirects.append)
    return view, store, auth, channel, storage, redirects


# ---------- session ----------


def test_start_without_session_redirects_to_login():
    view, store, _, channel, _, redirects = _view(user=None)

    asyncio.run(view.start())

    assert redirects == [LOGIN_PATH]
    assert view.principal is None
    assert channel.active == 0
    assert "select" not in store.calls


def test_start_with_session_resolves_role_loads_and_subscribes():
    async def scenario():
        view, store, _, channel, _, _ = _view(admins=[ANA.id])
        store.seed(ANA.id, "001")
        await view.start()
        return view, store, channel

    view, store, channel = asyncio.run(scenario())

    assert view.principal == ANA
    assert view.is_admin is True
    assert view.loading is False
    assert [r.number for r in view.records] == ["001"]
    assert channel.active == 1
    assert store.calls[:2] == ["roles", "select"]


def test_sign_out_clears_state_and_unsubscribes():
    async def scenario():
        view, store, auth, channel, _, redirects = _view()
        store.seed(ANA.id, "001")
        await view.start()
        view.toggle_select_all()
        await view.sign_out()
        return view, auth, channel, redirects

    view, auth, channel, redirects = asyncio.run(scenario())

    assert auth.sign_out_calls == 1
    assert view.principal is None
    assert view.records == ()
    assert view.selected_ids == set()
    assert channel.active == 0
    assert redirects == [LOGIN_PATH]


def test_teardown_releases_every_subscription():
    async def scenario():
        view, _, auth, channel, _, _ = _view()
        await view.start()
        await view.teardown()
        await view.teardown()
        return auth, channel

    auth, channel = asyncio.run(scenario())

    assert channel.active == 0
    assert len(auth.listeners) == 0


def test_switching_principal_reinitialises():
    async def scenario():
        view, _, auth, _, _, _ = _view(admins=[BRUNO.id])
        await view.start()
        first = view.is_admin
        await auth.sign_in(BRUNO.email, "segredo1")
        return view, first

    view, first = asyncio.run(scenario())

    assert first is False
    assert view.principal == BRUNO
    assert view.is_admin is True


class SignOutDuringRoleLookup(MemoryStore):
    """Signs the user out while the role query is still in flight."""

    auth = None

    async def select_user_roles(self, user_id, role=None):
        self.calls.append("roles")
        await self.auth.sign_out()
        return []


def test_sign_out_during_setup_abandons_load_and_feed():
    async def scenario():
        store = SignOutDuringRoleLookup(principal=ANA.id)
        view, store, auth, channel, _, redirects = _view(store=store)
        store.auth = auth
        await view.start()
        return view, store, channel, redirects

    view, store, channel, redirects = asyncio.run(scenario())

    assert view.principal is None
    assert redirects == [LOGIN_PATH]
    assert channel.active == 0
    assert store.calls == ["roles"]


# ---------- roles ----------


def test_role_lookup_failure_means_not_admin():
    store = MemoryStore(admins=[ANA.id])
    store.fail_roles = True

    assert asyncio.run(RoleResolver(store).resolve(ANA.id)) is False


# ---------- migration ----------


def test_migration_uploads_once_and_marks_done():
    storage = MemoryStorage({STORAGE_KEY: json.dumps(LEGACY)})
    store = MemoryStore(principal=ANA.id)
    notifier = Notifier()
    runner = LegacyMigrationRunner(storage, store, notifier)

    async def scenario():
        first = await runner.run_once(ANA.id)
        second = await runner.run_once(ANA.id)
        return first, second

    first, second = asyncio.run(scenario())

    assert (first, second) == (2, 0)
    assert store.calls.count("insert_bulk") == 1
    assert storage.get_item(MIGRATION_KEY) == "true"
    assert {row.user_id for row in store.rows.values()} == {ANA.id}
    assert set(store.rows) == {"1700000000001", "1700000000002"}
    assert notifier.messages(SUCCESS) == ["2 patrimônio(s) migrado(s) para a nuvem!"]
    # Local data is kept; the marker alone gates the upload.
    assert storage.get_item(STORAGE_KEY) is not None


@pytest.mark.parametrize("raw", [None, "", "[]"])
def test_migration_without_legacy_data_sets_marker(raw):
    storage = MemoryStorage({} if raw is None else {STORAGE_KEY: raw})
    store = MemoryStore(principal=ANA.id)
    notifier = Notifier()

    count = asyncio.run(LegacyMigrationRunner(storage, store, notifier).run_once(ANA.id))

    assert count == 0
    assert "insert_bulk" not in store.calls
    assert storage.get_item(MIGRATION_KEY) == "true"
    assert notifier.items == []


def test_failed_upload_leaves_marker_unset_and_retries():
    storage = MemoryStorage({STORAGE_KEY: json.dumps(LEGACY)})
    store = MemoryStore(principal=ANA.id)
    store.fail_writes = True
    notifier = Notifier()
    runner = LegacyMigrationRunner(storage, store, notifier)

    assert asyncio.run(runner.run_once(ANA.id)) == 0
    assert storage.get_item(MIGRATION_KEY) is None
    assert notifier.messages(ERROR) == ["Erro ao migrar dados. Tente novamente."]
    assert runner.running is False

    store.fail_writes = False
    assert asyncio.run(runner.run_once(ANA.id)) == 2
    assert storage.get_item(MIGRATION_KEY) == "true"


def test_unreadable_legacy_data_is_reported_not_marked():
    storage = MemoryStorage({STORAGE_KEY: "{not json"})
    notifier = Notifier()

    asyncio.run(LegacyMigrationRunner(storage, MemoryStore(), notifier).run_once(ANA.id))

    assert storage.get_item(MIGRATION_KEY) is None
    assert notifier.latest.level == ERROR


def test_view_start_runs_migration_before_first_load():
    async def scenario():
        storage = MemoryStorage({STORAGE_KEY: json.dumps(LEGACY)})
        view, store, *_ = _view(storage=storage)
        await view.start()
        return view, store

    view, store = asyncio.run(scenario())

    assert store.calls.index("insert_bulk") < store.calls.index("select")
    assert [r.number for r in view.records] == ["101", "100"]


# ---------- repository ----------


def test_insert_then_list_contains_record_once():
    async def scenario():
        repo = PatrimonyRepository(MemoryStore(principal=ANA.id))
        await repo.list()
        created = await repo.insert(FORM, ANA.id)
        return created, await repo.list()

    created, listed = asyncio.run(scenario())

    assert [r.id for r in listed] == [created.id]
    record = listed[0]
    assert (record.number, record.model, record.registered_by, record.observations) == ("001", "Dell X", "Ana", "ok")
    assert record.status.value == "Em manutenção"
    assert record.location.value == "Quartinho"
    assert record.user_id == ANA.id
    assert record.registered_at is not None


def test_duplicate_number_rejected_before_network():
    store = MemoryStore(principal=ANA.id)
    store.seed(ANA.id, "001")
    repo = PatrimonyRepository(store)

    async def scenario():
        await repo.list()
        store.calls.clear()
        await repo.insert(FORM, ANA.id)

    with pytest.raises(ValidationFailed) as info:
        asyncio.run(scenario())

    assert info.value.message == DUPLICATE_NUMBER_MESSAGE
    assert store.calls == []


def test_list_failure_raises_load_error():
    store = MemoryStore()
    store.fail_reads = True

    with pytest.raises(LoadError):
        asyncio.run(PatrimonyRepository(store).list())


def test_stale_reload_does_not_overwrite_newer_state():
    class SlowFirstStore(MemoryStore):
        def __init__(self):
            super().__init__()
            self.release_first = None
            self.reads = 0

        async def select_patrimonies(self):
            self.reads += 1
            snapshot = await super().select_patrimonies()
            if self.reads == 1:
                await self.release_first.wait()
            return snapshot

    async def scenario():
        store = SlowFirstStore()
        store.release_first = asyncio.Event()
        repo = PatrimonyRepository(store)
        stale = asyncio.create_task(repo.list())
        await asyncio.sleep(0)
        store.seed(ANA.id, "001")
        fresh = await repo.list()
        store.release_first.set()
        await stale
        return fresh, repo.records

    fresh, records = asyncio.run(scenario())

    assert [r.number for r in fresh] == ["001"]
    assert [r.number for r in records] == ["001"]


# ---------- change feed ----------


def test_change_event_reloads_every_session():
    async def scenario():
        store = MemoryStore(principal=ANA.id)
        ana_view, *_ = _view(store=store)
        bruno_view, *_, bruno_channel, _, _ = _view(user=BRUNO, store=store)
        await ana_view.start()
        await bruno_view.start()

        assert await ana_view.submit(FORM)
        assert bruno_view.records == ()
        await bruno_channel.push({"type": "INSERT", "table": "patrimonies", "ids": []})
        return ana_view, bruno_view

    ana_view, bruno_view = asyncio.run(scenario())

    assert [r.number for r in ana_view.records] == ["001"]
    assert [r.number for r in bruno_view.records] == ["001"]


def test_reload_failure_notifies_and_keeps_previous_records():
    async def scenario():
        view, store, _, channel, _, _ = _view()
        store.seed(ANA.id, "001")
        await view.start()
        store.fail_reads = True
        await channel.push({"type": "DELETE", "table": "patrimonies", "ids": []})
        return view

    view = asyncio.run(scenario())

    assert [r.number for r in view.records] == ["001"]
    assert view.load_failed is True
    assert view.notifier.latest.message == LOAD_FAILED_MESSAGE


# ---------- mutations through the view ----------


def test_submit_create_and_edit():
    async def scenario():
        view, *_ = _view()
        await view.start()
        assert await view.submit(FORM)
        created = view.records[0]
        assert view.request_edit(created)
        assert await view.submit({**FORM, "model": "Dell Y"})
        return view

    view = asyncio.run(scenario())

    assert view.notifier.messages(SUCCESS) == [CREATED_MESSAGE, UPDATED_MESSAGE]
    assert view.records[0].model == "Dell Y"
    assert view.editing is None


def test_submit_validation_errors_are_inline():
    async def scenario():
        view, store, *_ = _view()
        store.seed(ANA.id, "001")
        await view.start()
        store.calls.clear()
        other = await view.submit({**FORM, "number": "002", "location": "Outro", "custom_location": ""})
        other_error = view.form_error
        dup = await view.submit(FORM)
        return view, store, other, other_error, dup

    view, store, other, other_error, dup = asyncio.run(scenario())

    assert other is False and other_error == CUSTOM_LOCATION_REQUIRED_MESSAGE
    assert dup is False and view.form_error == DUPLICATE_NUMBER_MESSAGE
    assert "insert" not in store.calls
    assert view.notifier.items == []


class RejectingStore(MemoryStore):
    """Store that refuses writes the client-side checks let through."""

    async def insert_patrimony(self, row):
        self.calls.append("insert")
        raise ValidationFailed("Field required: number")

    async def update_patrimony(self, item_id, row):
        self.calls.append("update")
        raise PermissionDenied("Row-level policy")


def test_store_rejections_become_localised_toasts():
    async def scenario():
        store = RejectingStore(principal=ANA.id)
        view, *_ = _view(store=store)
        mine = store.seed(ANA.id, "001")
        await view.start()
        created = await view.submit({**FORM, "number": "002"})
        create_error = view.form_error
        view.request_edit(view.records[0])
        updated = await view.submit({**FORM, "model": "Dell Y"})
        return view, created, create_error, updated, mine

    view, created, create_error, updated, mine = asyncio.run(scenario())

    assert (created, updated) == (False, False)
    assert create_error is None and view.form_error is None
    assert view.notifier.messages(ERROR) == [SAVE_FAILED_MESSAGE, EDIT_DENIED_MESSAGE]
    assert view.editing == mine


def test_number_taken_by_another_session_is_inline():
    async def scenario():
        view, store, *_ = _view()
        await view.start()
        store.seed(BRUNO.id, "001")
        return view, store, await view.submit(FORM)

    view, store, created = asyncio.run(scenario())

    assert created is False
    assert "insert" in store.calls
    assert view.form_error == DUPLICATE_NUMBER_MESSAGE
    assert view.notifier.items == []


def test_non_admin_cannot_edit_or_delete_others_records():
    async def scenario():
        view, store, *_ = _view(user=BRUNO)
        foreign = store.seed(ANA.id, "001")
        await view.start()
        store.calls.clear()
        record = view.records[0]
        locked = view.can_mutate(record)
        opened = view.request_edit(record)
        deleted = await view.delete(foreign.id)
        return view, store, locked, opened, deleted

    view, store, locked, opened, deleted = asyncio.run(scenario())

    assert (locked, opened, deleted) == (False, False, False)
    assert store.calls == []
    assert view.notifier.messages(ERROR) == [EDIT_DENIED_MESSAGE, DELETE_DENIED_MESSAGE]
    assert len(view.records) == 1


def test_admin_may_delete_any_record():
    async def scenario():
        view, store, *_ = _view(user=BRUNO, admins=[BRUNO.id])
        foreign = store.seed(ANA.id, "001")
        await view.start()
        assert view.can_mutate(view.records[0])
        return view, await view.delete(foreign.id)

    view, deleted = asyncio.run(scenario())

    assert deleted is True
    assert view.records == ()
    assert view.notifier.latest.message == DELETED_MESSAGE


def test_delete_removes_id_from_selection():
    async def scenario():
        view, store, *_ = _view()
        keep = store.seed(ANA.id, "001")
        gone = store.seed(ANA.id, "002")
        await view.start()
        view.toggle_select(keep.id)
        view.toggle_select(gone.id)
        await view.delete(gone.id)
        return view, keep

    view, keep = asyncio.run(scenario())

    assert view.selected_ids == {keep.id}
    assert [r.id for r in view.records] == [keep.id]


def test_bulk_delete_gate_and_success():
    async def scenario():
        view, store, *_ = _view()
        mine = store.seed(ANA.id, "001")
        theirs = store.seed(BRUNO.id, "002")
        await view.start()
        view.toggle_select_all()
        store.calls.clear()
        denied = await view.delete_selected()
        calls_after_denied = list(store.calls)
        view.toggle_select(theirs.id)
        allowed = await view.delete_selected()
        return view, mine, denied, calls_after_denied, allowed

    view, mine, denied, calls_after_denied, allowed = asyncio.run(scenario())

    assert denied is False
    assert calls_after_denied == []
    assert allowed is True
    assert view.notifier.messages(ERROR) == [BULK_DELETE_DENIED_MESSAGE]
    assert view.notifier.latest.message == "1 patrimônio(s) deletado(s) com sucesso!"
    assert view.selected_ids == set()
    assert [r.number for r in view.records] == ["002"]


def test_store_failure_on_delete_is_non_blocking():
    async def scenario():
        view, store, *_ = _view()
        mine = store.seed(ANA.id, "001")
        await view.start()
        store.fail_writes = True
        return view, await view.delete(mine.id)

    view, deleted = asyncio.run(scenario())

    assert deleted is False
    assert view.blocking is False
    assert view.notifier.latest.message == "Erro ao deletar patrimônio."
    assert len(view.records) == 1


def test_delete_of_unlisted_id_notifies():
    async def scenario():
        view, store, *_ = _view()
        await view.start()
        store.calls.clear()
        return view, store, await view.delete("missing-id")

    view, store, deleted = asyncio.run(scenario())

    assert deleted is False
    assert store.calls == []
    assert view.notifier.messages(ERROR) == [DELETE_FAILED_MESSAGE]


# ---------- filter & selection ----------


def test_filter_and_tri_state_select_all():
    async def scenario():
        view, store, *_ = _view()
        for number in ("A-100", "a-200", "B-300"):
            store.seed(ANA.id, number)
        await view.start()
        return view

    view = asyncio.run(scenario())

    view.set_filter("a-")
    assert sorted(r.number for r in view.filtered_records) == ["A-100", "a-200"]
    assert view.select_all_state is SelectAllState.NONE

    view.toggle_select_all()
    assert view.select_all_state is SelectAllState.ALL
    assert len(view.selected_ids) == 2

    view.set_filter("")
    assert view.select_all_state is SelectAllState.SOME

    view.toggle_select_all()
    assert view.select_all_state is SelectAllState.ALL
    view.toggle_select_all()
    assert view.select_all_state is SelectAllState.NONE
    assert view.selected_ids == set()

    view.set_filter("zzz")
    assert view.filtered_records == []
    assert view.select_all_state is SelectAllState.NONE
