"""User access token lifecycle for the Feishu/Lark open platform."""

from lark_user_auth.core.config import AppSettings, get_default_scopes, get_settings
from lark_user_auth.core.errors import (
    CallbackTimeoutError,
    ConfigurationError,
    CsrfValidationError,
    ExchangeError,
    LarkAuthError,
    OAuthFlowError,
    PortConflictError,
    RefreshError,
    UserDeniedError,
)
from lark_user_auth.dependencies import (
    clear_all_tokens,
    get_credential_manager,
    get_user_access_token,
)
from lark_user_auth.models.token import TokenRecord
from lark_user_auth.services import AuthorizationCoordinator, CredentialLifecycleManager

__version__ = "0.1.0"

__all__ = [
    "AppSettings",
    "AuthorizationCoordinator",
    "CallbackTimeoutError",
    "ConfigurationError",
    "CredentialLifecycleManager",
    "CsrfValidationError",
    "ExchangeError",
    "LarkAuthError",
    "OAuthFlowError",
    "PortConflictError",
    "RefreshError",
    "TokenRecord",
    "UserDeniedError",
    "clear_all_tokens",
    "get_credential_manager",
    "get_default_scopes",
    "get_settings",
    "get_user_access_token",
]
