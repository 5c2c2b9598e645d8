"""Process-wide cache of confirmed credentials."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .auth.base import Credentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CredentialKey:
    """Identify a credential slot: endpoint authority, realm and auth kind."""

    authority: str
    realm: str | None
    is_proxy: bool

    def describe(self) -> str:
        kind = "proxy" if self.is_proxy else "server"
        realm = self.realm if self.realm is not None else "<no realm>"
        return f"{kind} {self.authority} ({realm})"


@dataclass(frozen=True, slots=True)
class CredentialEntry:
    key: CredentialKey
    credentials: Credentials
    persist: bool = False


class CredentialStore:
    """Thread-safe map of `CredentialKey` to credentials.

    The lock guards the dictionaries only; no network I/O or provider call
    ever happens while it is held. Entries never expire, they are replaced
    on the next successful send or dropped by `invalidate` when rejected.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CredentialKey, CredentialEntry] = {}
        # (authority, is_proxy) -> most recently confirmed key
        self._latest: dict[tuple[str, bool], CredentialKey] = {}

    def get(self, key: CredentialKey) -> Credentials | None:
        with self._lock:
            entry = self._entries.get(key)
        return entry.credentials if entry else None

    def entry(self, key: CredentialKey) -> CredentialEntry | None:
        with self._lock:
            return self._entries.get(key)

    def find(self, authority: str, *, is_proxy: bool = False) -> CredentialEntry | None:
        """Return the latest confirmed entry for ``authority`` regardless of realm."""
        with self._lock:
            key = self._latest.get((authority, is_proxy))
            return self._entries.get(key) if key is not None else None

    def put(self, key: CredentialKey, credentials: Credentials, persist: bool = False) -> None:
        entry = CredentialEntry(key=key, credentials=credentials, persist=persist)
        with self._lock:
            self._entries[key] = entry
            self._latest[(key.authority, key.is_proxy)] = key
        logger.debug("Stored credentials for %s (persist=%s)", key.describe(), persist)

    def invalidate(self, key: CredentialKey, credentials: Credentials | None = None) -> bool:
        """Drop the entry for ``key``.

        When ``credentials`` is given the entry is only dropped if it still
        holds those credentials, so a concurrent caller's newer entry survives.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if credentials is not None and entry.credentials != credentials:
                return False
            del self._entries[key]
            latest_slot = (key.authority, key.is_proxy)
            if self._latest.get(latest_slot) == key:
                del self._latest[latest_slot]
        logger.warning("Invalidated rejected credentials for %s", key.describe())
        return True

    def persisted(self) -> dict[CredentialKey, Credentials]:
        """Return the key -> secret mapping of entries flagged for persistence."""
        with self._lock:
            return {key: entry.credentials for key, entry in self._entries.items() if entry.persist}

    def snapshot(self) -> dict[CredentialKey, Credentials]:
        with self._lock:
            return {key: entry.credentials for key, entry in self._entries.items()}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._latest.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CredentialEntry", "CredentialKey", "CredentialStore"]
