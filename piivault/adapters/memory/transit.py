"""In-memory Transit emulation for tests and DEV_MODE."""
import base64
import binascii
import hashlib
import hmac
import logging
import os
from typing import List, Optional, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from piivault.domain.crypto.ports import BatchResult, DecryptItem, EncryptItem, KeyServiceClient
from piivault.errors import ContextMismatch, RemoteServiceError

logger = logging.getLogger(__name__)

CIPHERTEXT_PREFIX = "vault:v1:"
NONCE_SIZE = 12


class InMemoryTransitClient(KeyServiceClient):
    """Local AES-256-GCM stand-in for a Transit key service.

    Ciphertext looks like Vault's (``vault:v1:<base64>``) and contains
    colons, like the real thing. The context is bound as AAD, so
    decrypting with a different context fails with ContextMismatch. With
    a context the nonce is derived from context and plaintext (convergent
    encryption): equal inputs give equal ciphertext.
    """

    def __init__(self, key_name: str = "dev", master_key: Optional[str] = None):
        """Derive the AES key from ``master_key``, or from ``key_name`` when unset.

        A 64-char hex secret is taken as the raw 256-bit key; any other
        string is reduced with SHA-256.
        """
        secret = master_key or key_name
        if len(secret) == 64 and all(c in "0123456789abcdef" for c in secret.lower()):
            self._key = binascii.unhexlify(secret)
        else:
            self._key = hashlib.sha256(secret.encode()).digest()

        self._key_name = key_name
        self._aesgcm = AESGCM(self._key)
        self._nonce_key = hashlib.sha256(self._key + b"-convergent").digest()
        self.calls: List[str] = []

    @property
    def key_name(self) -> str:
        return self._key_name

    async def encrypt(self, plaintext: bytes, context: str = "") -> str:
        self.calls.append("encrypt")
        return self._seal(plaintext, context)

    async def decrypt(self, ciphertext: str, context: str = "") -> bytes:
        self.calls.append("decrypt")
        return self._unseal(ciphertext, context)

    async def encrypt_batch(self, items: Sequence[EncryptItem]) -> List[BatchResult]:
        self.calls.append("encrypt_batch")
        return [BatchResult(ciphertext=self._seal(item.plaintext, item.context)) for item in items]

    async def decrypt_batch(self, items: Sequence[DecryptItem]) -> List[BatchResult]:
        self.calls.append("decrypt_batch")
        results = []
        for item in items:
            try:
                results.append(BatchResult(plaintext=self._unseal(item.ciphertext, item.context)))
            except RemoteServiceError as e:
                results.append(BatchResult(error=str(e)))
        return results

    def _seal(self, plaintext: bytes, context: str) -> str:
        aad = context.encode() if context else None
        if context:
            nonce = hmac.new(self._nonce_key, aad + b"\x00" + plaintext, hashlib.sha256).digest()[:NONCE_SIZE]
        else:
            nonce = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext, aad)
        return CIPHERTEXT_PREFIX + base64.b64encode(nonce + sealed).decode("ascii")

    def _unseal(self, ciphertext: str, context: str) -> bytes:
        if not ciphertext.startswith(CIPHERTEXT_PREFIX):
            raise RemoteServiceError("invalid ciphertext: no version prefix")
        try:
            raw = base64.b64decode(ciphertext[len(CIPHERTEXT_PREFIX):], validate=True)
        except (binascii.Error, ValueError) as e:
            raise RemoteServiceError("invalid ciphertext: bad base64") from e
        if len(raw) <= NONCE_SIZE:
            raise RemoteServiceError("invalid ciphertext: too short")

        aad = context.encode() if context else None
        try:
            return self._aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], aad)
        except InvalidTag:
            # Mask internal error to avoid leaking details, but log for debugging
            logger.debug(f"Decryption failed for key {self._key_name}")
            raise ContextMismatch("cipher: message authentication failed")
