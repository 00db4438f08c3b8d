# app/services/crypto.py
from typing import List, Optional
from cryptography.fernet import Fernet, MultiFernet, InvalidToken

def _normalize_key(k: str) -> bytes:
    """
    Accepts a base64url Fernet key as a string. Returns bytes.
    Strips quotes/whitespace; always encodes to bytes.
    """
    if not isinstance(k, str):
        raise TypeError("Fernet key must be a string")
    k = k.strip().strip('"').strip("'")
    if not k:
        raise ValueError("Empty Fernet key")
    return k.encode("utf-8")

def parse_keys(raw: Optional[str]) -> List[bytes]:
    """
    Split ENCRYPTION_KEYS (comma-separated). First key = primary (used for encrypt).
    All keys used for decrypt/rotate. Raises ValueError on an invalid key.
    """
    parts = [p for p in (x.strip() for x in (raw or "").split(",")) if p]
    keys = [_normalize_key(p) for p in parts]
    # Validate by instantiating (raises if invalid)
    for kb in keys:
        Fernet(kb)
    return keys

def generate_key() -> str:
    """Convenience: create a new Fernet key (base64url string)."""
    return Fernet.generate_key().decode()

class Cipher:
    """Encrypt with the primary key, decrypt with any configured key."""

    def __init__(self, raw_keys: str):
        keys = parse_keys(raw_keys)
        if not keys:
            raise ValueError(
                "ENCRYPTION_KEYS not set. "
                "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
        self._primary = Fernet(keys[0])
        self._multi = MultiFernet([Fernet(k) for k in keys])

    @classmethod
    def from_keys(cls, raw_keys: Optional[str]) -> Optional["Cipher"]:
        return cls(raw_keys) if parse_keys(raw_keys) else None

    def encrypt_str(self, s: str) -> str:
        """Encrypt a UTF-8 string to a Fernet token (string)."""
        return self._primary.encrypt(s.encode("utf-8")).decode("utf-8")

    def decrypt_str(self, token: str) -> str:
        """Decrypt a Fernet token (string) to a UTF-8 string. Raises InvalidToken."""
        return self._multi.decrypt(token.encode("utf-8")).decode("utf-8")

    def rotate_token(self, token: str) -> str:
        """
        Re-encrypt a token with the current primary key while still accepting old keys.
        Useful when you add a new key to ENCRYPTION_KEYS (as the first one).
        """
        return self._multi.rotate(token.encode("utf-8")).decode("utf-8")

__all__ = ["Cipher", "InvalidToken", "generate_key", "parse_keys"]
