"""Environment-derived configuration for the drive client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping, Optional

from oqta_client.utils.env import env_bool, env_float, env_int, env_str

DEFAULT_ADDRESS = "http://localhost:8888"


def normalize_address(raw: str) -> str:
    """Accept ``host``, ``host:port`` or a full URL and return a base URL."""
    address = raw.strip().rstrip("/")
    if not address:
        return DEFAULT_ADDRESS
    if "://" not in address:
        address = f"http://{address}"
    return address


@dataclass(frozen=True)
class ClientConfig:
    """Resolved settings for ``DriveSession`` and its collaborators."""

    address: str = DEFAULT_ADDRESS
    watch_backoff_s: float = 1.0
    search_debounce_ms: int = 600
    search_min_chars: int = 2
    search_items: int = 25
    request_timeout_s: float = 30.0
    debug: bool = False

    @property
    def search_debounce_s(self) -> float:
        return self.search_debounce_ms / 1000.0

    def with_overrides(self, **overrides) -> "ClientConfig":
        """Return a copy with non-``None`` ``overrides`` applied (command-line flags)."""
        values = {key: value for key, value in overrides.items() if value is not None}
        if "address" in values:
            values["address"] = normalize_address(values["address"])
        return replace(self, **values)


def load_client_config(env: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Resolve ``OQTA_*`` environment variables into a ``ClientConfig``."""

    address = normalize_address(env_str("OQTA_ADDRESS", DEFAULT_ADDRESS, env) or DEFAULT_ADDRESS)
    watch_backoff_s = max(0.0, float(env_float("OQTA_WATCH_BACKOFF_S", 1.0, env)))
    search_debounce_ms = max(0, int(env_float("OQTA_SEARCH_DEBOUNCE_MS", 600.0, env)))
    search_min_chars = max(1, env_int("OQTA_SEARCH_MIN_CHARS", 2, env))
    search_items = max(1, env_int("OQTA_SEARCH_ITEMS", 25, env))
    request_timeout_s = max(0.0, float(env_float("OQTA_REQUEST_TIMEOUT_S", 30.0, env)))
    debug = env_bool("OQTA_CLIENT_DEBUG", False, env)

    return ClientConfig(
        address=address,
        watch_backoff_s=watch_backoff_s,
        search_debounce_ms=search_debounce_ms,
        search_min_chars=search_min_chars,
        search_items=search_items,
        request_timeout_s=request_timeout_s,
        debug=debug,
    )
