"""Encrypted column sets for repositories.

A repository declares which columns of a record hold PII, the context
each column is encrypted under, and whether the column also gets a
search hash. Contexts follow the ``<entity>:<field>`` convention, e.g.
``user:email`` or ``session:ip_address``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from piivault.domain.crypto.field_encryptor import FieldEncryptor
from piivault.domain.crypto.search import SearchHasher

logger = logging.getLogger(__name__)

HASH_SUFFIX = "_hash"


def field_context(entity: str, field: str) -> str:
    return f"{entity}:{field}"


@dataclass(frozen=True)
class FieldSpec:
    """One encrypted column.

    ``critical`` columns (identity, credentials, amounts) always propagate
    decrypt failures; non-critical ones fall back to an empty value.
    """
    name: str
    context: str
    searchable: bool = False
    critical: bool = True

    @property
    def hash_column(self) -> str:
        return self.name + HASH_SUFFIX


class EncryptedFieldMap:
    """Encrypt and decrypt the PII columns of plain dict records."""

    def __init__(
        self,
        encryptor: FieldEncryptor,
        specs: Sequence[FieldSpec],
        hasher: Optional[SearchHasher] = None
    ):
        names = [s.name for s in specs]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate encrypted field in {names}")
        if hasher is None and any(s.searchable for s in specs):
            raise ValueError("Searchable fields require a SearchHasher")
        self._encryptor = encryptor
        self._specs = list(specs)
        self._hasher = hasher

    @classmethod
    def for_entity(
        cls,
        encryptor: FieldEncryptor,
        entity: str,
        fields: Sequence[str],
        searchable: Sequence[str] = (),
        non_critical: Sequence[str] = (),
        hasher: Optional[SearchHasher] = None
    ) -> "EncryptedFieldMap":
        specs = [
            FieldSpec(
                name=f,
                context=field_context(entity, f),
                searchable=f in searchable,
                critical=f not in non_critical,
            )
            for f in fields
        ]
        return cls(encryptor, specs, hasher)

    @property
    def specs(self) -> List[FieldSpec]:
        return list(self._specs)

    def search_hash(self, name: str, value: str) -> str:
        """Digest to query the sibling hash column of a searchable field."""
        spec = self._spec(name)
        if not spec.searchable:
            raise ValueError(f"Field '{name}' is not searchable")
        return self._hasher.hash(value)

    async def encrypt_record(self, record: Mapping[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Return a copy of ``record`` with its PII columns encrypted.

        All columns go out in one batch call. Searchable columns also get
        ``<name>_hash`` computed from the plaintext.
        """
        result = dict(record)
        present = [s for s in self._specs if isinstance(result.get(s.name), str)]
        if not present:
            return result

        values = [result[s.name] for s in present]
        envelopes = await self._encryptor.encrypt_batch(values, [s.context for s in present], timeout=timeout)

        for spec, value, envelope in zip(present, values, envelopes):
            if spec.searchable:
                result[spec.hash_column] = self._hasher.hash(value) if value else ""
            result[spec.name] = envelope
        return result

    async def decrypt_record(self, record: Mapping[str, Any], *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Return a copy of ``record`` with its PII columns decrypted."""
        result = dict(record)
        present = [s for s in self._specs if isinstance(result.get(s.name), str)]
        critical = [s for s in present if s.critical]

        if critical:
            plaintexts = await self._encryptor.decrypt_batch(
                [result[s.name] for s in critical],
                [s.context for s in critical],
                timeout=timeout,
            )
            for spec, plaintext in zip(critical, plaintexts):
                result[spec.name] = plaintext

        for spec in present:
            if spec.critical:
                continue
            result[spec.name] = await self._encryptor.decrypt_or_default(
                result[spec.name], spec.context, timeout=timeout
            )
        return result

    def _spec(self, name: str) -> FieldSpec:
        for spec in self._specs:
            if spec.name == name:
                return spec
        raise KeyError(name)
