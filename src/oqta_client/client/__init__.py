"""OqtaDrive client components: drive session, sync loop and Qt panel."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["ClientConfig", "DriveSession", "SessionHost", "launch_drive_client", "load_client_config"]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "ClientConfig": ("oqta_client.client.config", "ClientConfig"),
        "DriveSession": ("oqta_client.client.control.session", "DriveSession"),
        "SessionHost": ("oqta_client.client.runtime.engine_thread", "SessionHost"),
        "launch_drive_client": ("oqta_client.client.app.launcher", "launch_drive_client"),
        "load_client_config": ("oqta_client.client.config", "load_client_config"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
