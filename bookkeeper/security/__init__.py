"""Client-side encryption."""

from bookkeeper.security.encryption import (
    SENSITIVE_FIELDS,
    EncryptionError,
    EncryptionService,
    FieldCipher,
    derive_key,
    generate_salt,
)

__all__ = [
    "SENSITIVE_FIELDS",
    "EncryptionError",
    "EncryptionService",
    "FieldCipher",
    "derive_key",
    "generate_salt",
]
