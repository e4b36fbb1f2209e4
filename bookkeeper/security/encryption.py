"""
Client-side encryption of sensitive record fields.

Keys are derived from the signed-in user's password with
PBKDF2-HMAC-SHA256 and a per-installation random salt. The salt is not
secret; it is persisted in the local settings store and reused so the
same password always yields the same key on this device.

Values are JSON-serialised, encrypted with AES-GCM under a fresh 12-byte
IV and stored as base64(iv || ciphertext). The GCM tag is part of the
ciphertext, so a wrong key or a tampered token fails to decrypt.
"""

import base64
import binascii
import json
import os
from typing import Any, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from bookkeeper.logger import get_logger


logger = get_logger(__name__)

SALT_BYTES = 16
IV_BYTES = 12
KEY_BYTES = 32
DEFAULT_ITERATIONS = 100_000

# Fields encrypted before a write, per collection
SENSITIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "transactions": ("description", "customer", "vendor"),
    "products": ("description",),
    "services": ("description",),
    "invoices": ("customer_name", "customer_email", "customer_address", "notes"),
    "bills": ("vendor_name", "vendor_email", "notes"),
    "business_config": ("name",),
    "transfers": ("description",),
    "clients": ("name", "email", "phone", "address"),
    "client_files": ("file_name",),
    "file_expenses": ("description", "vendor"),
    "extra_fees": ("description",),
}


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""
    pass


def generate_salt() -> bytes:
    return os.urandom(SALT_BYTES)


def derive_key(password: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
    """Derive a 256-bit AES key from a password."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


class EncryptionService:
    """
    Holds the session credentials and the derived key.

    Credentials live only in memory for the lifetime of the session.
    clear() forgets both the key and the credentials (logout).
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS, salt: Optional[bytes] = None):
        self._iterations = iterations
        self._salt = salt
        self._email: Optional[str] = None
        self._password: Optional[str] = None
        self._key: Optional[bytes] = None

    @property
    def salt(self) -> Optional[bytes]:
        return self._salt

    @property
    def email(self) -> Optional[str]:
        return self._email

    def ensure_salt(self) -> bytes:
        """Return the salt, generating one on first use."""
        if self._salt is None:
            self._salt = generate_salt()
        return self._salt

    def load_salt(self, encoded: str) -> None:
        """Restore a salt previously exported with export_salt()."""
        try:
            salt = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError(f"Stored salt is corrupt: {e}") from e
        if len(salt) != SALT_BYTES:
            raise EncryptionError("Stored salt has the wrong length")
        self._salt = salt

    def export_salt(self) -> str:
        return base64.b64encode(self.ensure_salt()).decode("ascii")

    def set_credentials(self, email: str, password: str) -> None:
        """Remember the credentials and derive the session key."""
        if not password:
            raise EncryptionError("A password is required to derive the encryption key")
        self._email = email
        self._password = password
        self._key = derive_key(password, self.ensure_salt(), self._iterations)
        logger.info("encryption_key_derived", email=email)

    def has_credentials(self) -> bool:
        return self._email is not None and self._password is not None

    def is_authenticated(self) -> bool:
        return self._key is not None

    def clear(self) -> None:
        self._email = None
        self._password = None
        self._key = None
        logger.info("encryption_credentials_cleared")

    def _key_for(self, password: Optional[str]) -> bytes:
        if password is not None:
            return derive_key(password, self.ensure_salt(), self._iterations)
        if self._key is None:
            raise EncryptionError("No password available for encryption")
        return self._key

    def encrypt(self, value: Any, password: Optional[str] = None) -> str:
        """Encrypt any JSON-serialisable value into a base64 token."""
        key = self._key_for(password)
        try:
            plaintext = json.dumps(value).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Value is not JSON serialisable: {e}") from e

        iv = os.urandom(IV_BYTES)
        ciphertext = AESGCM(key).encrypt(iv, plaintext, None)
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, token: str, password: Optional[str] = None) -> Any:
        """Decrypt a token produced by encrypt()."""
        key = self._key_for(password)
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise EncryptionError("Encrypted value is not valid base64") from e

        if len(raw) <= IV_BYTES:
            raise EncryptionError("Encrypted value is too short")

        iv, ciphertext = raw[:IV_BYTES], raw[IV_BYTES:]
        try:
            plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
        except InvalidTag as e:
            raise EncryptionError("Failed to decrypt data: wrong key or corrupt value") from e
        return json.loads(plaintext.decode("utf-8"))


class FieldCipher:
    """
    Encrypts the sensitive fields of a stored document.

    Active only when encryption is enabled and the session holds a key;
    otherwise documents pass through untouched. Documents written while
    active carry encrypted=True so reads know to decrypt them.
    """

    def __init__(
        self,
        service: EncryptionService,
        enabled: bool = True,
        fields: Optional[Mapping[str, tuple[str, ...]]] = None,
    ):
        self._service = service
        self._enabled = enabled
        self._fields = dict(fields or SENSITIVE_FIELDS)

    @property
    def service(self) -> EncryptionService:
        return self._service

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def active(self) -> bool:
        return self._enabled and self._service.is_authenticated()

    def fields_for(self, collection: str) -> tuple[str, ...]:
        return self._fields.get(collection, ())

    def encrypt_document(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        fields = self.fields_for(collection)
        if not fields or not self.active or document.get("encrypted"):
            return document

        encrypted = dict(document)
        for name in fields:
            value = encrypted.get(name)
            if value is not None:
                encrypted[name] = self._service.encrypt(value)
        encrypted["encrypted"] = True
        return encrypted

    def decrypt_document(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        """
        Decrypt a document read from storage.

        Raises EncryptionError when the document is encrypted but the
        session has no key.
        """
        if not document.get("encrypted"):
            return document
        if not self._service.is_authenticated():
            raise EncryptionError(
                f"Record in {collection} is encrypted; sign in to read it"
            )

        decrypted = dict(document)
        for name in self.fields_for(collection):
            value = decrypted.get(name)
            if isinstance(value, str):
                decrypted[name] = self._service.decrypt(value)
        decrypted["encrypted"] = False
        return decrypted
