"""Application-facing entry points for the OqtaDrive client."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["launch_drive_client", "main", "run_command"]

_MODULE_MAP = {
    "launch_drive_client": ("oqta_client.client.app.launcher", "launch_drive_client"),
    "main": ("oqta_client.client.app.launcher", "main"),
    "run_command": ("oqta_client.client.app.cli", "run_command"),
}


def _lazy_attr(name: str) -> Any:
    module_path, attr = _MODULE_MAP[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    if name not in _MODULE_MAP:
        raise AttributeError(name)
    return _lazy_attr(name)
