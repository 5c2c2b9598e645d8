"""Bearer token credentials."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field

from .base import Credentials, header_name


@dataclass(frozen=True, slots=True)
class BearerCredentials(Credentials):
    """Apply an already issued bearer token."""

    token: str = field(repr=False)
    persist: bool = field(default=False, compare=False)

    def apply(self, headers: MutableMapping[str, str], *, proxy: bool = False) -> None:
        headers[header_name(proxy=proxy)] = f"Bearer {self.token}"
