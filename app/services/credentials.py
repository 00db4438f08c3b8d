# app/services/credentials.py
from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..models.credential import Credential
from .crypto import Cipher, InvalidToken
from .db import db_session

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Encrypted-at-rest secrets (rotated OAuth refresh tokens).
    Without a cipher, secrets live in memory for the life of the process only.
    """

    def __init__(self, session_factory: sessionmaker, cipher: Optional[Cipher]):
        self._session_factory = session_factory
        self._cipher = cipher
        self._memory: Dict[str, str] = {}

    @property
    def persistent(self) -> bool:
        return self._cipher is not None

    def load(self, provider: str) -> Optional[str]:
        if provider in self._memory:
            return self._memory[provider]
        if not self._cipher:
            return None
        with db_session(self._session_factory) as db:
            row = db.scalar(select(Credential).where(Credential.provider == provider))
            if row is None:
                return None
            try:
                return self._cipher.decrypt_str(row.secret_enc)
            except InvalidToken:
                logger.warning("stored %s secret cannot be decrypted with current keys; ignoring", provider)
                return None

    def save(self, provider: str, secret: str) -> None:
        self._memory[provider] = secret
        if not self._cipher:
            logger.warning("ENCRYPTION_KEYS not set; %s kept in memory only", provider)
            return
        token = self._cipher.encrypt_str(secret)
        with db_session(self._session_factory) as db:
            row = db.scalar(select(Credential).where(Credential.provider == provider))
            if row is None:
                db.add(Credential(provider=provider, secret_enc=token))
            else:
                row.secret_enc = token
