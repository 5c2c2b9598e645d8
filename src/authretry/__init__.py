"""Authentication-retrying HTTP dispatcher entrypoints."""
from .auth import BasicCredentials, BearerCredentials, Credentials
from .cancellation import CancellationToken
from .challenge import AuthChallenge
from .config import DispatcherConfig
from .credential_store import CredentialKey, CredentialStore
from .dispatcher import RetryDispatcher, create_dispatcher
from .exceptions import AuthResolutionFailed, AuthRetryError, Cancelled, ConfigurationError
from .http import TransportStatus, is_cannot_reach_internet_error
from .providers import (
    CallbackCredentialProvider,
    CredentialProvider,
    NullCredentialProvider,
    StaticCredentialProvider,
)
from .proxy_cache import ProxyCache, ProxyDescriptor

__all__ = [
    "AuthChallenge",
    "AuthResolutionFailed",
    "AuthRetryError",
    "BasicCredentials",
    "BearerCredentials",
    "CallbackCredentialProvider",
    "CancellationToken",
    "Cancelled",
    "ConfigurationError",
    "CredentialKey",
    "CredentialProvider",
    "CredentialStore",
    "Credentials",
    "DispatcherConfig",
    "NullCredentialProvider",
    "ProxyCache",
    "ProxyDescriptor",
    "RetryDispatcher",
    "StaticCredentialProvider",
    "TransportStatus",
    "create_dispatcher",
    "is_cannot_reach_internet_error",
]
