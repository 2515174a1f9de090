"""Integrity tags over remote ciphertext.

Tags are HMAC-SHA256 over the ciphertext returned by the key service,
rendered as lowercase hex. They let us reject tampered or corrupted values
before spending a remote decrypt call.
"""
import hashlib
import hmac
import logging
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

TAG_HEX_LENGTH = 64
SECRET_SUFFIX = "-hmac-secret"


def derive_integrity_secret(key_name: str) -> bytes:
    """Derive the HMAC secret from the named remote key."""
    return hashlib.sha256((key_name + SECRET_SUFFIX).encode("utf-8")).digest()


def compute_tag(secret: bytes, ciphertext: str) -> str:
    return hmac.new(secret, ciphertext.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_tag(secret: bytes, ciphertext: str, tag: str) -> bool:
    """Constant-time comparison of a provided tag against the expected one."""
    expected = compute_tag(secret, ciphertext)
    return hmac.compare_digest(expected.encode("ascii"), tag.lower().encode("ascii", "replace"))


class IntegrityKeyring:
    """Integrity secrets for signing and verifying ciphertext.

    New tags are always computed with the primary secret. Verification
    tries the primary secret, then each previous secret in order, so tags
    written before a rotation keep verifying during the rotation window.
    """

    def __init__(self, primary_key_name: str, previous_key_names: Optional[Sequence[str]] = None):
        if not primary_key_name:
            raise ValueError("primary_key_name must not be empty")
        self._key_names: List[str] = [primary_key_name]
        for name in previous_key_names or ():
            if name and name not in self._key_names:
                self._key_names.append(name)
        self._secrets: List[bytes] = [derive_integrity_secret(n) for n in self._key_names]

    @property
    def primary_key_name(self) -> str:
        return self._key_names[0]

    @property
    def key_names(self) -> List[str]:
        return list(self._key_names)

    def sign(self, ciphertext: str) -> str:
        return compute_tag(self._secrets[0], ciphertext)

    def verify(self, ciphertext: str, tag: str) -> bool:
        for position, secret in enumerate(self._secrets):
            if verify_tag(secret, ciphertext, tag):
                if position > 0:
                    logger.info(f"Integrity tag verified with previous key '{self._key_names[position]}'")
                return True
        return False

    def __repr__(self) -> str:
        return f"IntegrityKeyring(key_names={self._key_names!r})"
