"""Key Service Ports (Interfaces)."""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from pydantic import BaseModel


class EncryptItem(BaseModel):
    plaintext: bytes
    context: str = ""


class DecryptItem(BaseModel):
    ciphertext: str
    context: str = ""


class BatchResult(BaseModel):
    """One slot of a remote batch response; exactly one field is set."""
    ciphertext: Optional[str] = None
    plaintext: Optional[bytes] = None
    error: Optional[str] = None


class KeyServiceClient(ABC):
    """Abstract Port for a remote encrypt/decrypt service.

    The key never leaves the service. Ciphertext is an opaque provider
    string. ``context`` scopes derived-key encryption; an empty string
    means no context.
    """

    @property
    @abstractmethod
    def key_name(self) -> str:
        """Name of the remote key used for every operation."""
        ...

    @abstractmethod
    async def encrypt(self, plaintext: bytes, context: str = "") -> str:
        """Encrypt plaintext, returning provider ciphertext."""
        ...

    @abstractmethod
    async def decrypt(self, ciphertext: str, context: str = "") -> bytes:
        """Decrypt provider ciphertext. Context must match encryption."""
        ...

    @abstractmethod
    async def encrypt_batch(self, items: Sequence[EncryptItem]) -> List[BatchResult]:
        """Encrypt many items in one call. Results align with items."""
        ...

    @abstractmethod
    async def decrypt_batch(self, items: Sequence[DecryptItem]) -> List[BatchResult]:
        """Decrypt many items in one call. Results align with items."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
