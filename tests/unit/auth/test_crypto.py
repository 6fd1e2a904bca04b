"""Tests for provider-token encryption."""

import base64

import pytest

from sidan.auth.crypto import TokenCipher, generate_key
from sidan.auth.errors import CryptoError, InvalidKeyError


def test_generate_key_is_64_hex_chars():
    key = generate_key()
    assert len(key) == 64
    bytes.fromhex(key)
    assert generate_key() != key


def test_roundtrip_preserves_text():
    cipher = TokenCipher(generate_key())
    for plaintext in ["ya29.a0AfH6SMB", "åäö – ünïcödé", "x" * 4096]:
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext


def test_empty_string_maps_to_empty_string():
    cipher = TokenCipher(generate_key())
    assert cipher.encrypt("") == ""
    assert cipher.decrypt("") == ""


def test_same_plaintext_encrypts_differently():
    cipher = TokenCipher(generate_key())
    assert cipher.encrypt("token") != cipher.encrypt("token")


def test_output_is_nonce_ciphertext_and_tag():
    cipher = TokenCipher(generate_key())
    raw = base64.b64decode(cipher.encrypt("abc"))
    # 12-byte nonce, 3 bytes of ciphertext, 16-byte tag
    assert len(raw) == 12 + 3 + 16


def test_wrong_key_fails():
    sealed = TokenCipher(generate_key()).encrypt("secret")
    with pytest.raises(CryptoError):
        TokenCipher(generate_key()).decrypt(sealed)


def test_tampered_ciphertext_fails():
    cipher = TokenCipher(generate_key())
    raw = bytearray(base64.b64decode(cipher.encrypt("secret")))
    raw[-1] ^= 0x01
    with pytest.raises(CryptoError):
        cipher.decrypt(base64.b64encode(bytes(raw)).decode())


@pytest.mark.parametrize("value", ["not base64!!", base64.b64encode(b"short").decode()])
def test_malformed_or_short_input_fails(value):
    with pytest.raises(CryptoError):
        TokenCipher(generate_key()).decrypt(value)


@pytest.mark.parametrize("key", ["zz" * 32, "abcd", "00" * 16, ""])
def test_constructor_rejects_bad_keys(key):
    with pytest.raises(InvalidKeyError):
        TokenCipher(key)


def test_invalid_key_is_a_crypto_error():
    assert issubclass(InvalidKeyError, CryptoError)
