"""Traktr Auth Module.

Identity is delegated to an external provider. This package only verifies the
provider's ID tokens and exposes the resulting principal.
"""

from traktr.auth.identity import (
    get_current_identity,
    get_optional_identity,
    identity_from_token,
    verify_id_token,
)
from traktr.auth.schemas import AuthIdentity, TokenPayload

__all__ = [
    "get_current_identity",
    "get_optional_identity",
    "identity_from_token",
    "verify_id_token",
    "AuthIdentity",
    "TokenPayload",
]
