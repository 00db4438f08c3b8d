"""Fernet cipher and the encrypted credential store."""

import pytest

from app.services.credentials import CredentialStore
from app.services.crypto import Cipher, InvalidToken, generate_key


def test_encrypt_decrypt_and_rotate():
    old, new = generate_key(), generate_key()
    token = Cipher(old).encrypt_str("refresh-1")

    rotated_cipher = Cipher(f"{new},{old}")
    assert rotated_cipher.decrypt_str(token) == "refresh-1"

    rotated = rotated_cipher.rotate_token(token)
    assert Cipher(new).decrypt_str(rotated) == "refresh-1"
    with pytest.raises(InvalidToken):
        Cipher(old).decrypt_str(rotated)


def test_from_keys_without_keys():
    assert Cipher.from_keys("") is None
    with pytest.raises(ValueError):
        Cipher("")


def test_invalid_key_rejected():
    with pytest.raises(ValueError):
        Cipher("not-a-fernet-key")


def test_store_round_trip_and_overwrite(session_factory):
    store = CredentialStore(session_factory, Cipher(generate_key()))
    assert store.persistent
    assert store.load("paycor.refresh_token") is None

    store.save("paycor.refresh_token", "r1")
    store.save("paycor.refresh_token", "r2")

    fresh = CredentialStore(session_factory, store._cipher)
    assert fresh.load("paycor.refresh_token") == "r2"


def test_store_without_cipher_is_memory_only(session_factory):
    store = CredentialStore(session_factory, None)
    store.save("paycor.refresh_token", "r1")
    assert store.load("paycor.refresh_token") == "r1"
    assert CredentialStore(session_factory, None).load("paycor.refresh_token") is None


def test_undecryptable_secret_is_ignored(session_factory):
    CredentialStore(session_factory, Cipher(generate_key())).save("paycor.refresh_token", "r1")
    assert CredentialStore(session_factory, Cipher(generate_key())).load("paycor.refresh_token") is None
