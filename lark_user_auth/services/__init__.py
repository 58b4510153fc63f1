"""Service layer exports."""

from .authorization import AuthorizationCoordinator
from .credentials import CredentialLifecycleManager

__all__ = [
    "AuthorizationCoordinator",
    "CredentialLifecycleManager",
]
