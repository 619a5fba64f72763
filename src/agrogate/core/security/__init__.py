"""Security utilities.

Re-exports all security-related functions for convenience.
"""

from src.agrogate.core.security.crypto import (
    ACCESS_TOKEN_TYPE,
    DUMMY_PASSWORD_HASH,
    create_access_token,
    decode_token,
    generate_opaque_token,
    hash_password,
    verify_password,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "DUMMY_PASSWORD_HASH",
    "create_access_token",
    "decode_token",
    "generate_opaque_token",
    "hash_password",
    "verify_password",
]
