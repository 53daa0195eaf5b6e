# app/core/cookie_codec.py

import base64
import binascii
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.config import settings
from app.utils.dates import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16


class CookieCodec:
    """
    Шифрует и расшифровывает небольшой JSON-пакет реферальной куки.

    Формат токена: base64url(nonce ‖ auth-tag ‖ ciphertext) без паддинга.
    AES-256-GCM: любая подмена токена ломает тег, и decode возвращает None.
    Кодек ничего не знает о ссылках и кликах - только криптография.
    """

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("Cookie key must be exactly 32 bytes")
        self._aesgcm = AESGCM(key)

    def encode(self, payload: Dict[str, Any]) -> str:
        nonce = os.urandom(NONCE_SIZE)
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        # AESGCM возвращает ciphertext ‖ tag, а в куке тег идет перед шифртекстом
        sealed = self._aesgcm.encrypt(nonce, data, None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        token = base64.urlsafe_b64encode(nonce + tag + ciphertext)
        return token.rstrip(b"=").decode("ascii")

    def decode(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Возвращает расшифрованный пакет или None - никаких исключений наружу."""
        if not token:
            return None
        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            if len(raw) <= NONCE_SIZE + TAG_SIZE:
                return None
            nonce = raw[:NONCE_SIZE]
            tag = raw[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
            ciphertext = raw[NONCE_SIZE + TAG_SIZE:]
            data = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
            payload = json.loads(data.decode("utf-8"))
        except (InvalidTag, binascii.Error, ValueError, UnicodeError):
            logger.info("Referral cookie rejected: malformed or tampered token")
            return None

        if not isinstance(payload, dict):
            return None
        if _is_expired(payload.get("expires_at")):
            logger.info("Referral cookie rejected: expired")
            return None
        return payload


def _is_expired(expires_at: Any) -> bool:
    if not expires_at:
        return False
    try:
        expires = datetime.fromisoformat(str(expires_at))
    except ValueError:
        return True
    return to_naive_utc(expires) < utcnow()


def build_cookie_codec() -> CookieCodec:
    """Создает кодек с ключом из настроек."""
    return CookieCodec(settings.COOKIE_KEY_BYTES)
