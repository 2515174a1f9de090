"""Deterministic search hashes for encrypted columns.

The digest is stored in a sibling column next to the envelope and used
for exact-match queries only. It links equal plaintexts, so
only fields explicitly marked searchable get one.
"""
import hashlib
import hmac

from piivault.errors import ConfigurationMissing


class SearchHasher:
    """HMAC-SHA256 over plaintext with a static, process-wide secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationMissing(["SEARCH_HASH_SECRET"])
        self._secret = secret.encode("utf-8")

    def hash(self, value: str) -> str:
        return hmac.new(self._secret, value.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, value: str, digest: str) -> bool:
        return hmac.compare_digest(self.hash(value).encode("ascii"), digest.lower().encode("utf-8"))

    def __repr__(self) -> str:
        return "SearchHasher(secret=[REDACTED])"
