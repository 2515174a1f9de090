"""HashiCorp Vault Transit client.

POST /v1/<mount>/encrypt/<key>, POST /v1/<mount>/decrypt/<key>
"""
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from piivault.domain.crypto.ports import BatchResult, DecryptItem, EncryptItem, KeyServiceClient
from piivault.errors import ContextMismatch, NoCiphertextReturned, RemoteServiceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MOUNT = "transit"

# Vault error fragments that mean the context did not match the ciphertext
CONTEXT_ERROR_MARKERS = (
    "message authentication failed",
    "missing 'context'",
    "context for key derivation",
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class VaultTransitClient(KeyServiceClient):
    """Key service client for the Vault Transit secrets engine."""

    def __init__(
        self,
        address: str,
        token: str,
        key_name: str,
        mount: str = DEFAULT_MOUNT,
        namespace: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        headers = {"X-Vault-Token": token}
        if namespace:
            headers["X-Vault-Namespace"] = namespace

        self._key_name = key_name
        self._mount = mount.strip("/")
        self._http = httpx.AsyncClient(
            base_url=address.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def key_name(self) -> str:
        return self._key_name

    async def encrypt(self, plaintext: bytes, context: str = "") -> str:
        data = await self._write("encrypt", self._encrypt_payload(plaintext, context))
        ciphertext = data.get("ciphertext")
        if not ciphertext:
            raise NoCiphertextReturned("vault encrypt returned no ciphertext")
        return ciphertext

    async def decrypt(self, ciphertext: str, context: str = "") -> bytes:
        data = await self._write("decrypt", self._decrypt_payload(ciphertext, context))
        plaintext = data.get("plaintext")
        if plaintext is None:
            raise NoCiphertextReturned("vault decrypt returned no plaintext")
        return self._decode_plaintext(plaintext)

    async def encrypt_batch(self, items: Sequence[EncryptItem]) -> List[BatchResult]:
        if not items:
            return []
        payload = {"batch_input": [self._encrypt_payload(i.plaintext, i.context) for i in items]}
        raw_results = await self._write_batch("encrypt", payload, len(items))

        results = []
        for raw in raw_results:
            if raw.get("error"):
                results.append(BatchResult(error=str(raw["error"])))
            elif raw.get("ciphertext"):
                results.append(BatchResult(ciphertext=raw["ciphertext"]))
            else:
                results.append(BatchResult(error="no ciphertext returned"))
        return results

    async def decrypt_batch(self, items: Sequence[DecryptItem]) -> List[BatchResult]:
        if not items:
            return []
        payload = {"batch_input": [self._decrypt_payload(i.ciphertext, i.context) for i in items]}
        raw_results = await self._write_batch("decrypt", payload, len(items))

        results = []
        for raw in raw_results:
            if raw.get("error"):
                results.append(BatchResult(error=str(raw["error"])))
                continue
            if raw.get("plaintext") is None:
                results.append(BatchResult(error="no plaintext returned"))
                continue
            try:
                results.append(BatchResult(plaintext=self._decode_plaintext(raw["plaintext"])))
            except RemoteServiceError as e:
                results.append(BatchResult(error=str(e)))
        return results

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _encrypt_payload(plaintext: bytes, context: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"plaintext": _b64(plaintext)}
        if context:
            payload["context"] = _b64(context.encode("utf-8"))
        return payload

    @staticmethod
    def _decrypt_payload(ciphertext: str, context: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ciphertext": ciphertext}
        if context:
            payload["context"] = _b64(context.encode("utf-8"))
        return payload

    @staticmethod
    def _decode_plaintext(value: str) -> bytes:
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise RemoteServiceError("failed to decode plaintext") from e

    async def _post(self, operation: str, payload: Dict[str, Any]) -> httpx.Response:
        path = f"/v1/{self._mount}/{operation}/{self._key_name}"
        try:
            return await self._http.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise RemoteServiceError(f"vault {operation} timed out") from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"vault {operation} failed: {e.__class__.__name__}") from e

    async def _write(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._post(operation, payload)
        if response.status_code >= 400:
            self._raise_for_response(operation, response)
        return self._data(operation, response)

    async def _write_batch(self, operation: str, payload: Dict[str, Any], expected: int) -> List[Dict[str, Any]]:
        response = await self._post(operation, payload)
        # Vault answers 400 with per-item errors when any batch item fails
        if response.status_code >= 400 and not (response.status_code == 400 and self._has_batch_results(response)):
            self._raise_for_response(operation, response)

        batch_results = self._data(operation, response).get("batch_results")
        if not isinstance(batch_results, list):
            raise NoCiphertextReturned(f"vault batch {operation} returned no results")
        if len(batch_results) != expected:
            raise RemoteServiceError(
                f"vault batch {operation} returned {len(batch_results)} results for {expected} items"
            )
        return [r if isinstance(r, dict) else {"error": "malformed result"} for r in batch_results]

    @staticmethod
    def _has_batch_results(response: httpx.Response) -> bool:
        try:
            body = response.json()
        except ValueError:
            return False
        data = body.get("data") if isinstance(body, dict) else None
        return isinstance(data, dict) and isinstance(data.get("batch_results"), list)

    @staticmethod
    def _data(operation: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteServiceError(f"vault {operation} returned invalid JSON") from e
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise NoCiphertextReturned(f"vault {operation} returned no data")
        return data

    def _raise_for_response(self, operation: str, response: httpx.Response) -> None:
        try:
            errors = response.json().get("errors") or []
        except (ValueError, AttributeError):
            errors = []
        message = "; ".join(str(e) for e in errors) or response.reason_phrase

        if response.status_code == 400 and any(m in message.lower() for m in CONTEXT_ERROR_MARKERS):
            raise ContextMismatch(f"vault {operation} rejected context for key '{self._key_name}'")

        logger.warning(f"Vault {operation} returned {response.status_code} for key '{self._key_name}'")
        raise RemoteServiceError(f"vault {operation} failed with status {response.status_code}: {message}")
