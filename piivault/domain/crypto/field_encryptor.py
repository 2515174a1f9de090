"""Field-level encryption over a remote key service.

Envelopes produced here are always ``<remote-ciphertext>:<hmac>``. The
HMAC is checked before any remote decrypt; a mismatch fails closed.
Empty strings are never sent to the key service and map back to empty
strings.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, List, Optional, Sequence, TypeVar

from piivault.domain.crypto.envelope import CiphertextEnvelope
from piivault.domain.crypto.integrity import IntegrityKeyring
from piivault.domain.crypto.ports import BatchResult, DecryptItem, EncryptItem, KeyServiceClient
from piivault.domain.sink import SecurityEventSink
from piivault.errors import (
    IntegrityViolation,
    LengthMismatch,
    MalformedEnvelope,
    NoCiphertextReturned,
    RemoteServiceError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FieldEncryptor:
    """Encrypt and decrypt individual PII fields.

    Build one per process in the composition root and pass it to every
    repository that stores encrypted columns.
    """

    def __init__(
        self,
        client: KeyServiceClient,
        keyring: IntegrityKeyring,
        sink: Optional[SecurityEventSink] = None
    ):
        self._client = client
        self._keyring = keyring
        self._sink = sink

    @property
    def key_name(self) -> str:
        return self._client.key_name

    async def encrypt(self, plaintext: str, *, timeout: Optional[float] = None) -> str:
        return await self.encrypt_with_context(plaintext, "", timeout=timeout)

    async def encrypt_with_context(
        self,
        plaintext: str,
        context: str,
        *,
        timeout: Optional[float] = None
    ) -> str:
        """Encrypt under an encryption context, returning a tagged envelope."""
        if plaintext == "":
            return ""

        ciphertext = await self._remote(self._client.encrypt(plaintext.encode("utf-8"), context), timeout)
        return self._seal(ciphertext)

    async def decrypt(self, envelope: str, *, timeout: Optional[float] = None) -> str:
        return await self.decrypt_with_context(envelope, "", timeout=timeout)

    async def decrypt_with_context(
        self,
        envelope: str,
        context: str,
        *,
        timeout: Optional[float] = None
    ) -> str:
        """Verify the envelope tag, then decrypt remotely.

        The context must be the one used at encryption time; a mismatch
        is reported by the key service as ContextMismatch.

        Raises:
            IntegrityViolation: tag present and wrong. No remote call is made.
            MalformedEnvelope: the stored value is structurally invalid.
            RemoteServiceError: the key service failed.
        """
        if envelope == "":
            return ""

        ciphertext = await self._open(envelope, context)
        plaintext = await self._remote(self._client.decrypt(ciphertext, context), timeout)
        return self._decode(plaintext)

    async def encrypt_batch(
        self,
        plaintexts: Sequence[str],
        contexts: Optional[Sequence[str]] = None,
        *,
        timeout: Optional[float] = None
    ) -> List[str]:
        """Encrypt many values in a single remote call.

        Empty values keep their slot and are left out of the remote batch.
        Output index i always corresponds to input index i.
        """
        contexts = self._align_contexts(plaintexts, contexts)
        envelopes = [""] * len(plaintexts)
        slots = [i for i, value in enumerate(plaintexts) if value != ""]
        if not slots:
            return envelopes

        items = [EncryptItem(plaintext=plaintexts[i].encode("utf-8"), context=contexts[i]) for i in slots]
        results = await self._remote(self._client.encrypt_batch(items), timeout)
        self._check_results(results, slots, "encrypt")

        for index, result in zip(slots, results):
            if result.error is not None:
                raise RemoteServiceError(f"batch encrypt item {index} failed: {result.error}", index=index)
            envelopes[index] = self._seal(result.ciphertext, index=index)
        return envelopes

    async def decrypt_batch(
        self,
        envelopes: Sequence[str],
        contexts: Optional[Sequence[str]] = None,
        *,
        timeout: Optional[float] = None
    ) -> List[str]:
        """Decrypt many envelopes in a single remote call.

        Every tag is verified before the remote call; one bad tag fails
        the whole batch. Any per-item remote error also fails the whole
        batch so partial PII is never returned.
        """
        contexts = self._align_contexts(envelopes, contexts)
        plaintexts = [""] * len(envelopes)
        slots = [i for i, value in enumerate(envelopes) if value != ""]
        if not slots:
            return plaintexts

        items = []
        for index in slots:
            ciphertext = await self._open(envelopes[index], contexts[index], index=index)
            items.append(DecryptItem(ciphertext=ciphertext, context=contexts[index]))

        results = await self._remote(self._client.decrypt_batch(items), timeout)
        self._check_results(results, slots, "decrypt")

        for index, result in zip(slots, results):
            if result.error is not None:
                raise RemoteServiceError(f"batch decrypt item {index} failed: {result.error}", index=index)
            if result.plaintext is None:
                raise NoCiphertextReturned(f"batch decrypt item {index} returned no plaintext", index=index)
            plaintexts[index] = self._decode(result.plaintext, index=index)
        return plaintexts

    async def decrypt_or_default(
        self,
        envelope: str,
        context: str = "",
        *,
        default: str = "",
        timeout: Optional[float] = None
    ) -> str:
        """Best-effort decrypt for decorative reads (reports, dashboards).

        Only key-service failures fall back to ``default``. Integrity
        violations, malformed data and cancellation still propagate. Never
        use this for identity, authorization or financial fields.
        """
        try:
            return await self.decrypt_with_context(envelope, context, timeout=timeout)
        except RemoteServiceError as e:
            logger.warning(f"Decrypt failed for context '{context}', continuing with placeholder: {e.code}")
            return default

    def _seal(self, ciphertext: Optional[str], index: Optional[int] = None) -> str:
        if not ciphertext:
            raise NoCiphertextReturned("key service returned no ciphertext", index=index)
        return CiphertextEnvelope(ciphertext, self._keyring.sign(ciphertext)).serialize()

    async def _open(self, envelope: str, context: str, index: Optional[int] = None) -> str:
        try:
            parsed = CiphertextEnvelope.parse(envelope)
        except MalformedEnvelope as e:
            e.index = index
            raise
        if parsed.is_tagged and not self._keyring.verify(parsed.remote_ciphertext, parsed.tag):
            await self._report_violation(context, index)
            raise IntegrityViolation(index=index)
        return parsed.remote_ciphertext

    async def _report_violation(self, context: str, index: Optional[int]) -> None:
        where = f" (batch item {index})" if index is not None else ""
        logger.error(f"Integrity tag mismatch for key '{self.key_name}', context '{context}'{where}")
        if self._sink is None:
            return
        await self._sink.emit({
            "event": "integrity_violation",
            "key_name": self.key_name,
            "context": context,
            "index": index,
            "occurred_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
        })

    @staticmethod
    async def _remote(call: Awaitable[T], timeout: Optional[float]) -> T:
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout)

    @staticmethod
    def _align_contexts(values: Sequence[str], contexts: Optional[Sequence[str]]) -> List[str]:
        if contexts is None:
            return [""] * len(values)
        if len(contexts) != len(values):
            raise LengthMismatch(f"got {len(values)} values but {len(contexts)} contexts")
        return list(contexts)

    @staticmethod
    def _check_results(results: List[BatchResult], slots: List[int], operation: str) -> None:
        if len(results) != len(slots):
            raise RemoteServiceError(
                f"key service batch {operation} returned {len(results)} results for {len(slots)} items"
            )

    @staticmethod
    def _decode(plaintext: bytes, index: Optional[int] = None) -> str:
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RemoteServiceError("key service returned non UTF-8 plaintext", index=index) from e
