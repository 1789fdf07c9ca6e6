"""AES-128-CBC with PKCS#7 padding, as used by the gateway firmware."""
import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sim_gateway.errors import DecryptionError

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")


def parse_key_or_iv(text: str) -> bytes:
    """
    Parse a 16-byte key or IV from one of three textual forms:
    ASCII ("1234567890123456"), decimal list ("49,50,...") or hex list ("0x31,0x32,...").
    """
    if not text:
        raise ValueError("AES key/iv must not be empty")
    if "," in text:
        parts = [p.strip() for p in text.split(",")]
        try:
            raw = bytes(int(p, 16) if p.lower().startswith("0x") else int(p, 10) for p in parts)
        except ValueError as e:
            raise ValueError(f"AES key/iv has an invalid byte: {e}") from e
    else:
        raw = text.encode("utf-8")
    if len(raw) != 16:
        raise ValueError(f"AES key/iv must be 16 bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class AesConfig:
    enabled: bool = False
    key: bytes = b""
    iv: bytes = b""

    @classmethod
    def from_settings(cls, settings) -> "AesConfig":
        if not settings.aes_enabled:
            return cls(enabled=False)
        return cls(enabled=True, key=parse_key_or_iv(settings.aes_key), iv=parse_key_or_iv(settings.aes_iv))


def _b64decode_urlsafe(text: str) -> bytes:
    text = text.replace("-", "+").replace("_", "/")
    text += "=" * (-len(text) % 4)
    return base64.b64decode(text, validate=True)


def aes_decrypt(token: str, key: bytes, iv: bytes) -> str:
    """Decrypt a URL-safe Base64 ciphertext to text. Raises DecryptionError."""
    try:
        data = _b64decode_urlsafe(token)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise DecryptionError(f"AES decrypt failed: {e}") from e


def aes_encrypt(text: str, key: bytes, iv: bytes) -> str:
    """Encrypt text to URL-safe Base64, the inverse of aes_decrypt."""
    padder = padding.PKCS7(128).padder()
    padded = padder.update(text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    data = encryptor.update(padded) + encryptor.finalize()
    return base64.urlsafe_b64encode(data).decode("ascii")


def decrypt_payload(data: Mapping[str, Any], aes: AesConfig) -> dict[str, Any]:
    """
    Decrypt an inbound payload.

    A string field ``p`` holds the whole event as encrypted JSON; failure there is fatal.
    Otherwise each string value is decrypted on its own and kept raw if that fails.
    """
    if not aes.enabled:
        return dict(data)

    p = data.get("p")
    if isinstance(p, str) and p:
        plain = aes_decrypt(p, aes.key, aes.iv)
        try:
            decoded = json.loads(plain)
        except json.JSONDecodeError as e:
            raise DecryptionError(f"decrypted payload is not JSON: {e}") from e
        if not isinstance(decoded, dict):
            raise DecryptionError("decrypted payload is not a JSON object")
        logger.debug("Decrypted whole payload: %s", decoded)
        return decoded

    result: dict[str, Any] = {}
    for name, value in data.items():
        if isinstance(value, str) and value:
            try:
                plain = aes_decrypt(value, aes.key, aes.iv)
            except DecryptionError:
                result[name] = value
                continue
            result[name] = int(plain) if _DIGITS.match(plain) else plain
        else:
            result[name] = value
    logger.debug("Decrypted per-field payload: %s", result)
    return result
