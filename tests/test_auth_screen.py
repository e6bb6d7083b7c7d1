import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from app.client.auth_screen import (
    HOME_PATH,
    RESET_FAILED_TITLE,
    RESET_SENT_MESSAGE,
    RESET_SENT_TITLE,
    SIGN_IN_FAILED_TITLE,
    SIGN_UP_FAILED_TITLE,
    SIGNED_IN_MESSAGE,
    SIGNED_UP_MESSAGE,
    SIGNED_UP_TITLE,
    VALIDATION_TITLE,
    AuthMode,
    AuthScreen,
)
from app.client.notifications import ERROR, SUCCESS
from fakes import ANA, FakeAuth, session_for


def _screen(session=None):
    auth = FakeAuth(session)
    redirects = []
    screen = AuthScreen(auth, on_redirect=redirects.append)
    return screen, auth, redirects


def test_existing_session_redirects_home():
    screen, auth, redirects = _screen(session_for(ANA))

    asyncio.run(screen.start())

    assert redirects == [HOME_PATH]
    assert auth.requests == []


def test_session_announced_later_redirects_once():
    async def scenario():
        screen, auth, redirects = _screen()
        await screen.start()
        assert redirects == []
        signed_in = await screen.sign_in({"email": ANA.email, "password": "segredo1"})
        return screen, auth, redirects, signed_in

    screen, auth, redirects, signed_in = asyncio.run(scenario())

    assert signed_in is True
    assert redirects == [HOME_PATH]
    assert auth.requests == [("sign_in", ANA.email, "segredo1")]
    assert screen.notifier.messages(SUCCESS) == [SIGNED_IN_MESSAGE]
    assert screen.busy is False


@pytest.mark.parametrize(
    "data, message",
    [
        ({"email": "não-é-email", "password": "segredo1"}, "Email inválido"),
        ({"email": "a" * 250 + "@example.com", "password": "segredo1"}, "Email muito longo"),
        ({"email": ANA.email, "password": "123"}, "Senha deve ter no mínimo 6 caracteres"),
        ({"email": ANA.email, "password": "x" * 101}, "Senha muito longa"),
        ({"password": "segredo1"}, "Email inválido"),
    ],
)
def test_sign_in_validation_reports_first_problem(data, message):
    screen, auth, redirects = _screen()

    assert asyncio.run(screen.sign_in(data)) is False

    assert auth.requests == []
    assert redirects == []
    note = screen.notifier.latest
    assert (note.level, note.title, note.message) == (ERROR, VALIDATION_TITLE, message)


def test_sign_in_rejection_shows_provider_message():
    async def scenario():
        screen, auth, redirects = _screen()
        await screen.start()
        auth.reject_with = "Invalid login credentials"
        return screen, redirects, await screen.sign_in({"email": f" {ANA.email} ", "password": "errada1"})

    screen, redirects, signed_in = asyncio.run(scenario())

    assert signed_in is False
    assert redirects == []
    note = screen.notifier.latest
    assert (note.level, note.title, note.message) == (ERROR, SIGN_IN_FAILED_TITLE, "Invalid login credentials")
    assert screen.busy is False


def test_sign_up_success_returns_to_login():
    screen, auth, redirects = _screen()
    screen.show(AuthMode.SIGN_UP)

    created = asyncio.run(screen.sign_up({"email": "nova@example.com", "password": "segredo1", "full_name": "  Nova  "}))

    assert created is True
    assert screen.mode is AuthMode.LOGIN
    assert auth.requests == [("sign_up", "nova@example.com", "segredo1", "Nova")]
    note = screen.notifier.latest
    assert (note.level, note.title, note.message) == (SUCCESS, SIGNED_UP_TITLE, SIGNED_UP_MESSAGE)
    assert redirects == []


@pytest.mark.parametrize(
    "full_name, message",
    [("   ", "Nome é obrigatório"), ("n" * 201, "Nome muito longo")],
)
def test_sign_up_name_rules(full_name, message):
    screen, auth, _ = _screen()

    assert asyncio.run(screen.sign_up({"email": "nova@example.com", "password": "segredo1", "full_name": full_name})) is False

    assert auth.requests == []
    assert screen.notifier.messages(ERROR) == [message]


def test_sign_up_rejection_keeps_sign_up_mode():
    screen, auth, _ = _screen()
    screen.show("sign_up")
    auth.reject_with = "Email already registered"

    created = asyncio.run(screen.sign_up({"email": ANA.email, "password": "segredo1", "full_name": "Ana"}))

    assert created is False
    assert screen.mode is AuthMode.SIGN_UP
    assert screen.notifier.titles(ERROR) == [SIGN_UP_FAILED_TITLE]
    assert screen.notifier.messages(ERROR) == ["Email already registered"]


def test_password_reset_request():
    screen, auth, _ = _screen()
    screen.show(AuthMode.RESET)

    sent = asyncio.run(screen.request_password_reset({"email": ANA.email}))

    assert sent is True
    assert screen.mode is AuthMode.LOGIN
    assert auth.requests == [("reset", ANA.email)]
    note = screen.notifier.latest
    assert (note.title, note.message) == (RESET_SENT_TITLE, RESET_SENT_MESSAGE)


def test_password_reset_failure_stays_on_reset_form():
    screen, auth, _ = _screen()
    screen.show(AuthMode.RESET)
    auth.reject_with = "Não foi possível conectar ao servidor"

    sent = asyncio.run(screen.request_password_reset({"email": ANA.email}))

    assert sent is False
    assert screen.mode is AuthMode.RESET
    assert screen.notifier.titles(ERROR) == [RESET_FAILED_TITLE]


def test_teardown_releases_subscription():
    async def scenario():
        screen, auth, redirects = _screen()
        await screen.start()
        screen.teardown()
        screen.teardown()
        await auth.sign_in(ANA.email, "segredo1")
        return auth, redirects

    auth, redirects = asyncio.run(scenario())

    assert len(auth.listeners) == 0
    assert redirects == []
