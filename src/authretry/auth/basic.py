"""HTTP Basic credentials."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from urllib.parse import quote

from .base import Credentials, header_name


@dataclass(frozen=True, slots=True)
class BasicCredentials(Credentials):
    """Username/password pair sent with the Basic scheme."""

    username: str
    password: str = field(repr=False)
    persist: bool = field(default=False, compare=False)

    def apply(self, headers: MutableMapping[str, str], *, proxy: bool = False) -> None:
        from requests.auth import _basic_auth_str

        headers[header_name(proxy=proxy)] = _basic_auth_str(self.username, self.password)

    def proxy_userinfo(self) -> str | None:
        return f"{quote(self.username, safe='')}:{quote(self.password, safe='')}"
