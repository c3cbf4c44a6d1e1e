# src/privchat/services/crypto.py
"""Message encryption at rest.

Two ciphers are written for every text message, both keyed by the message
timestamp:

- AES-256-GCM (``cipher_version = 2``): authenticated, random 12-byte IV,
  16-byte tag. The key is the decimal timestamp string repeated to 32 bytes.
- AES-128-ECB (``cipher_version = 1``): unauthenticated and deterministic,
  kept for legacy web readers. The key is the timestamp string zero-padded
  to 16 bytes with PKCS#7 block padding, matching PHP ``openssl_encrypt``.

All binary values travel as standard base64 strings.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from privchat.core.settings import settings
from privchat.models.message import CIPHER_VERSION_ECB, CIPHER_VERSION_GCM

GCM_KEY_BYTES = 32
ECB_KEY_BYTES = 16
IV_BYTES = 12
TAG_BYTES = 16
DEFAULT_PREVIEW_LENGTH = 100


class DecryptionError(Exception):
    """Raised when stored ciphertext cannot be authenticated or decoded."""


class EncryptedRow(Protocol):
    """Columns the codec needs to decrypt a stored message."""

    text: str
    text_ecb: str
    iv: str | None
    tag: str | None
    cipher_version: int
    time: int


@dataclass(frozen=True)
class StoredText:
    """Column values produced by :meth:`MessageCipher.encrypt_for_storage`."""

    text: str
    text_ecb: str
    text_preview: str
    iv: str | None
    tag: str | None
    cipher_version: int

    def as_columns(self) -> dict[str, str | int | None]:
        """Return the values keyed by message column name."""
        return {
            "text": self.text,
            "text_ecb": self.text_ecb,
            "text_preview": self.text_preview,
            "iv": self.iv,
            "tag": self.tag,
            "cipher_version": self.cipher_version,
        }


EMPTY_TEXT = StoredText(
    text="",
    text_ecb="",
    text_preview="",
    iv=None,
    tag=None,
    cipher_version=CIPHER_VERSION_ECB,
)


def gcm_key(timestamp: int) -> bytes:
    """Derive the AES-256 key by repeating the timestamp string to 32 bytes."""
    source = str(timestamp).encode()
    repeats = GCM_KEY_BYTES // len(source) + 1
    return (source * repeats)[:GCM_KEY_BYTES]


def ecb_key(timestamp: int) -> bytes:
    """Derive the AES-128 key by zero-padding the timestamp string to 16 bytes."""
    return str(timestamp).encode()[:ECB_KEY_BYTES].ljust(ECB_KEY_BYTES, b"\0")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _unb64(field: str, data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError(f"Invalid base64 in {field}") from err


class MessageCipher:
    """Encrypt and decrypt message bodies for storage."""

    def __init__(
        self,
        *,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        legacy_enabled: bool = True,
    ) -> None:
        self.preview_length = preview_length
        self.legacy_enabled = legacy_enabled

    @staticmethod
    def encrypt_gcm(plaintext: str, timestamp: int) -> tuple[str, str, str]:
        """Encrypt with AES-256-GCM.

        Returns:
            Tuple of base64 ``(ciphertext, iv, tag)``.
        """
        iv = secrets.token_bytes(IV_BYTES)
        sealed = AESGCM(gcm_key(timestamp)).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return _b64(ciphertext), _b64(iv), _b64(tag)

    @staticmethod
    def decrypt_gcm(ciphertext: str, timestamp: int, iv: str, tag: str) -> str:
        """Decrypt AES-256-GCM ciphertext, verifying the authentication tag.

        Raises:
            DecryptionError: If the tag does not match or any field is malformed.
        """
        iv_bytes = _unb64("iv", iv)
        sealed = _unb64("text", ciphertext) + _unb64("tag", tag)
        try:
            plain = AESGCM(gcm_key(timestamp)).decrypt(iv_bytes, sealed, None)
        except (InvalidTag, ValueError) as err:
            raise DecryptionError("Authentication tag mismatch") from err
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as err:  # pragma: no cover - authenticated data
            raise DecryptionError("Decrypted text is not UTF-8") from err

    @staticmethod
    def encrypt_ecb(plaintext: str, timestamp: int) -> str:
        """Encrypt with AES-128-ECB and PKCS#7 padding, returning base64."""
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(ecb_key(timestamp)), modes.ECB()).encryptor()
        return _b64(encryptor.update(padded) + encryptor.finalize())

    @staticmethod
    def decrypt_ecb(ciphertext: str, timestamp: int) -> str:
        """Decrypt AES-128-ECB ciphertext.

        Raises:
            DecryptionError: If the input is not block aligned or the padding is wrong.
        """
        raw = _unb64("text_ecb", ciphertext)
        decryptor = Cipher(algorithms.AES(ecb_key(timestamp)), modes.ECB()).decryptor()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            padded = decryptor.update(raw) + decryptor.finalize()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as err:
            raise DecryptionError("Legacy ciphertext is corrupt") from err

    def preview(self, plaintext: str) -> str:
        """Return the bounded plaintext preview used for search."""
        return plaintext[: self.preview_length]

    def encrypt_for_storage(self, plaintext: str, timestamp: int) -> StoredText:
        """Produce every text column for a message created at ``timestamp``."""
        if not plaintext:
            return EMPTY_TEXT
        text, iv, tag = self.encrypt_gcm(plaintext, timestamp)
        text_ecb = self.encrypt_ecb(plaintext, timestamp) if self.legacy_enabled else ""
        return StoredText(
            text=text,
            text_ecb=text_ecb,
            text_preview=self.preview(plaintext),
            iv=iv,
            tag=tag,
            cipher_version=CIPHER_VERSION_GCM,
        )

    def decrypt_message(self, row: EncryptedRow) -> str:
        """Return the plaintext of a stored message.

        Rows written before GCM existed carry ECB ciphertext in ``text`` with
        ``cipher_version = 1``.

        Raises:
            DecryptionError: If the stored ciphertext does not decrypt cleanly.
        """
        if not row.text:
            return ""
        if row.cipher_version == CIPHER_VERSION_GCM:
            if not row.iv or not row.tag:
                raise DecryptionError("GCM row is missing iv or tag")
            return self.decrypt_gcm(row.text, row.time, row.iv, row.tag)
        return self.decrypt_ecb(row.text, row.time)

    def decrypt_legacy(self, row: EncryptedRow) -> str:
        """Return the plaintext as a legacy reader sees it, from ``text_ecb``."""
        if not row.text_ecb:
            return ""
        return self.decrypt_ecb(row.text_ecb, row.time)

    def reencrypt(self, row: EncryptedRow, timestamp: int) -> StoredText:
        """Decrypt ``row`` under its own key and encrypt it again for ``timestamp``."""
        return self.encrypt_for_storage(self.decrypt_message(row), timestamp)


def get_message_cipher() -> MessageCipher:
    """Return a cipher configured from application settings."""
    return MessageCipher(
        preview_length=settings.text_preview_length,
        legacy_enabled=settings.legacy_cipher_enabled,
    )
