"""Client synchronisation core.

``create_view`` wires a :class:`PatrimonyView` to a running AssetTrack
service; the login screen is an :class:`AuthScreen` over the same
client. Tests pass in-memory implementations of the ports instead.
"""

from __future__ import annotations

from .auth_screen import AuthScreen
from .backend import BackendClient
from .config import ClientSettings, get_client_settings
from .notifications import Notifier
from .view import PatrimonyView


def create_view(settings: ClientSettings | None = None, **kwargs) -> tuple[PatrimonyView, BackendClient]:
    backend = BackendClient(settings=settings or get_client_settings())
    view = PatrimonyView(backend, backend, backend.channel(), backend.storage, **kwargs)
    return view, backend


__all__ = ["AuthScreen", "BackendClient", "ClientSettings", "Notifier", "PatrimonyView", "create_view"]
