import pytest
from cryptography.exceptions import InvalidTag
from unittest.mock import patch

from dashboard.core.config import Settings
from dashboard.core.crypto import decrypt, encrypt, generate_encryption_key


def test_encrypt_decrypt_with_fresh_iv():
    first = encrypt("ya29.access-token")
    second = encrypt("ya29.access-token")

    assert decrypt(first.encrypted, first.iv, first.auth_tag) == "ya29.access-token"
    assert first.iv != second.iv
    assert len(first.iv) == 32
    assert len(first.auth_tag) == 32


def test_tampered_ciphertext_is_rejected():
    data = encrypt("refresh-token")
    flipped = format(int(data.encrypted[:2], 16) ^ 0xFF, "02x") + data.encrypted[2:]

    with pytest.raises(InvalidTag):
        decrypt(flipped, data.iv, data.auth_tag)


def test_invalid_key_raises_value_error():
    settings = Settings(MAIL_ENCRYPTION_KEY="not-hex")
    with patch("dashboard.core.crypto.get_settings", return_value=settings):
        with pytest.raises(ValueError, match="64 hex characters"):
            encrypt("token")


def test_missing_key_raises_value_error():
    settings = Settings(MAIL_ENCRYPTION_KEY=None)
    with patch("dashboard.core.crypto.get_settings", return_value=settings):
        with pytest.raises(ValueError, match="not configured"):
            encrypt("token")


def test_generate_encryption_key():
    key = generate_encryption_key()
    assert len(key) == 64
    int(key, 16)
