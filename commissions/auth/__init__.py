"""Authentication module."""

from commissions.auth.dependencies import get_actor, require_authority
from commissions.auth.jwt import create_access_token, verify_token

__all__ = [
    "create_access_token",
    "verify_token",
    "get_actor",
    "require_authority",
]
