"""Protocol definitions for the drive server REST contract."""

from __future__ import annotations

from .messages import *  # noqa: F401,F403

__all__ = [name for name in globals().keys() if not name.startswith("_")]
