"""Credential types understood by the dispatcher."""
from .base import Credentials
from .basic import BasicCredentials
from .bearer import BearerCredentials

__all__ = ["Credentials", "BasicCredentials", "BearerCredentials"]
