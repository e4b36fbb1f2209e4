"""
Tests for field encryption.

Uses a low PBKDF2 iteration count so key derivation stays fast.
"""

import base64

import pytest

from bookkeeper.security import EncryptionError, EncryptionService, FieldCipher
from bookkeeper.security.encryption import IV_BYTES, SALT_BYTES, derive_key

from conftest import TEST_ITERATIONS


@pytest.fixture
def signed_in(encryption):
    encryption.set_credentials("owner@example.com", "correct horse")
    return encryption


class TestKeyDerivation:
    """Tests for PBKDF2 key derivation and salts."""

    def test_same_password_and_salt_same_key(self):
        salt = b"s" * SALT_BYTES
        assert derive_key("pw", salt, TEST_ITERATIONS) == derive_key("pw", salt, TEST_ITERATIONS)
        assert len(derive_key("pw", salt, TEST_ITERATIONS)) == 32

    def test_different_salt_different_key(self):
        assert derive_key("pw", b"a" * SALT_BYTES, TEST_ITERATIONS) != derive_key(
            "pw", b"b" * SALT_BYTES, TEST_ITERATIONS
        )

    def test_salt_export_and_load(self, encryption):
        """Test that an exported salt restores into a new service."""
        exported = encryption.export_salt()
        other = EncryptionService(iterations=TEST_ITERATIONS)
        other.load_salt(exported)
        assert other.salt == encryption.salt

    def test_corrupt_salt_rejected(self, encryption):
        with pytest.raises(EncryptionError):
            encryption.load_salt("not base64!!")
        with pytest.raises(EncryptionError):
            encryption.load_salt(base64.b64encode(b"short").decode())


class TestEncryptionService:
    """Tests for value encryption with the session key."""

    def test_round_trip(self, signed_in):
        token = signed_in.encrypt({"amount": "12.50", "tags": ["a"]})
        assert signed_in.decrypt(token) == {"amount": "12.50", "tags": ["a"]}

    def test_fresh_iv_per_encryption(self, signed_in):
        """Test that encrypting the same value twice gives different tokens."""
        assert signed_in.encrypt("same") != signed_in.encrypt("same")

    def test_token_layout(self, signed_in):
        raw = base64.b64decode(signed_in.encrypt("x"))
        assert len(raw) > IV_BYTES

    def test_wrong_password_fails(self, signed_in):
        token = signed_in.encrypt("secret")
        with pytest.raises(EncryptionError, match="wrong key"):
            signed_in.decrypt(token, password="wrong")

    def test_explicit_password_without_session(self, encryption):
        token = encryption.encrypt("secret", password="pw")
        assert encryption.decrypt(token, password="pw") == "secret"

    def test_no_key_raises(self, encryption):
        with pytest.raises(EncryptionError):
            encryption.encrypt("secret")

    def test_garbage_token(self, signed_in):
        with pytest.raises(EncryptionError):
            signed_in.decrypt("%%%")
        with pytest.raises(EncryptionError, match="too short"):
            signed_in.decrypt(base64.b64encode(b"abc").decode())

    def test_empty_password_rejected(self, encryption):
        with pytest.raises(EncryptionError):
            encryption.set_credentials("owner@example.com", "")

    def test_clear_forgets_key(self, signed_in):
        signed_in.clear()
        assert not signed_in.is_authenticated()
        assert not signed_in.has_credentials()
        assert signed_in.email is None


class TestFieldCipher:
    """Tests for per-collection field encryption."""

    def test_inactive_without_key(self, cipher):
        document = {"description": "plain", "amount": "1"}
        assert not cipher.active
        assert cipher.encrypt_document("transactions", document) is document

    def test_disabled_cipher_passes_through(self, signed_in):
        cipher = FieldCipher(signed_in, enabled=False)
        document = {"description": "plain"}
        assert cipher.encrypt_document("transactions", document) == document

    def test_encrypts_only_sensitive_fields(self, signed_in):
        cipher = FieldCipher(signed_in)
        document = {"description": "Sale to Acme", "amount": "150.00", "customer": None}
        encrypted = cipher.encrypt_document("transactions", document)
        assert encrypted["encrypted"] is True
        assert encrypted["description"] != "Sale to Acme"
        assert encrypted["amount"] == "150.00"
        assert encrypted["customer"] is None
        assert document["description"] == "Sale to Acme"

    def test_round_trip(self, signed_in):
        cipher = FieldCipher(signed_in)
        document = {"customer_name": "Acme", "notes": "Net 30", "encrypted": False}
        restored = cipher.decrypt_document("invoices", cipher.encrypt_document("invoices", document))
        assert restored == document

    def test_already_encrypted_not_double_encrypted(self, signed_in):
        cipher = FieldCipher(signed_in)
        once = cipher.encrypt_document("transactions", {"description": "x"})
        assert cipher.encrypt_document("transactions", once) is once

    def test_unlisted_collection_untouched(self, signed_in):
        cipher = FieldCipher(signed_in)
        document = {"name": "Checking"}
        assert cipher.encrypt_document("accounts", document) is document

    def test_encrypted_document_needs_key(self, signed_in):
        """Test that reading encrypted data after sign-out raises."""
        cipher = FieldCipher(signed_in)
        encrypted = cipher.encrypt_document("transactions", {"description": "x"})
        signed_in.clear()
        with pytest.raises(EncryptionError, match="sign in"):
            cipher.decrypt_document("transactions", encrypted)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
