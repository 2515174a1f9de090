"""Ciphertext envelope: the string stored in place of plaintext.

Format: ``<remote-ciphertext>`` (legacy, untagged) or
``<remote-ciphertext>:<64-hex-hmac>``. Remote ciphertext may itself
contain colons (``vault:v1:...``), so only the suffix after the last
colon is considered, and only when it looks like a tag.
"""
import re
from dataclasses import dataclass
from typing import Optional

from piivault.errors import EmptyAfterTagStrip

TAG_PATTERN = re.compile(r"[0-9a-fA-F]{64}")
SEPARATOR = ":"


@dataclass(frozen=True)
class CiphertextEnvelope:
    remote_ciphertext: str
    tag: Optional[str] = None

    @property
    def is_tagged(self) -> bool:
        return self.tag is not None

    @property
    def is_empty(self) -> bool:
        return self.remote_ciphertext == ""

    def serialize(self) -> str:
        if self.tag is None:
            return self.remote_ciphertext
        return f"{self.remote_ciphertext}{SEPARATOR}{self.tag}"

    def __str__(self) -> str:
        return self.serialize()

    @classmethod
    def parse(cls, value: str) -> "CiphertextEnvelope":
        """Split a stored string into remote ciphertext and optional tag.

        Raises:
            EmptyAfterTagStrip: a tag-like suffix with nothing to protect.
        """
        if value == "":
            return cls("")

        head, sep, suffix = value.rpartition(SEPARATOR)
        if not sep or not TAG_PATTERN.fullmatch(suffix):
            return cls(value)

        if head == "":
            raise EmptyAfterTagStrip("invalid ciphertext format: tag without ciphertext")
        return cls(head, suffix)
