"""Configuration helpers for the dispatcher."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .exceptions import ConfigurationError

ENV_PREFIX = "AUTHRETRY_"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def parse_bool(value: str, *, name: str) -> bool:
    low = value.strip().lower()
    if low in _TRUTHY:
        return True
    if low in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean (1/0, true/false, yes/no, on/off): {value!r}")


@dataclass(slots=True)
class DispatcherConfig:
    """Typed configuration for `RetryDispatcher`.

    ``max_auth_attempts`` caps the number of sends of one logical call on top
    of the per-key convergence guard.
    """

    timeout: float | tuple[float, float] | None = 30.0
    verify_ssl: bool | str = True
    default_headers: Mapping[str, str] | None = None
    allow_redirects: bool = True
    stream: bool = False
    max_auth_attempts: int = 10

    def __post_init__(self) -> None:
        if self.max_auth_attempts < 1:
            raise ConfigurationError("max_auth_attempts must be at least 1")

    def resolved_headers(self) -> dict[str, str]:
        return dict(self.default_headers or {})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DispatcherConfig:
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        timeout = env.get(f"{ENV_PREFIX}TIMEOUT")
        if timeout:
            try:
                kwargs["timeout"] = float(timeout)
            except ValueError as exc:
                raise ConfigurationError(f"{ENV_PREFIX}TIMEOUT must be a number: {timeout!r}") from exc

        verify: bool | str = True
        raw_verify = env.get(f"{ENV_PREFIX}VERIFY_SSL")
        if raw_verify is not None:
            verify = parse_bool(raw_verify, name=f"{ENV_PREFIX}VERIFY_SSL")
        ca_cert = env.get(f"{ENV_PREFIX}CA_CERT")
        if ca_cert:
            if verify is False:
                raise ConfigurationError("Cannot combine a CA bundle with disabled TLS verification.")
            verify = ca_cert
        kwargs["verify_ssl"] = verify

        attempts = env.get(f"{ENV_PREFIX}MAX_AUTH_ATTEMPTS")
        if attempts:
            try:
                kwargs["max_auth_attempts"] = int(attempts)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{ENV_PREFIX}MAX_AUTH_ATTEMPTS must be an integer: {attempts!r}"
                ) from exc

        return cls(**kwargs)  # type: ignore[arg-type]
