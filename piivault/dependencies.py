"""Dependency Injection Module.

Composition root: builds the key-service client, integrity keyring,
field encryptor and search hasher once per process. The getters double
as FastAPI dependencies (``Depends(get_field_encryptor)``).
"""
import logging
import threading
from typing import Optional

from piivault.adapters.memory.transit import InMemoryTransitClient
from piivault.adapters.vault.client import VaultTransitClient
from piivault.domain.crypto.field_encryptor import FieldEncryptor
from piivault.domain.crypto.integrity import IntegrityKeyring
from piivault.domain.crypto.ports import KeyServiceClient
from piivault.domain.crypto.search import SearchHasher
from piivault.domain.sink import LoggingSink, SecurityEventSink
from piivault.settings import Settings, settings

logger = logging.getLogger(__name__)


def build_key_service_client(cfg: Settings) -> KeyServiceClient:
    cfg.require_key_service()
    if cfg.DEV_MODE and not cfg.VAULT_ADDR:
        logger.warning("Using in-memory transit key service. DO NOT USE IN PRODUCTION.")
        return InMemoryTransitClient(key_name=cfg.transit_key)

    return VaultTransitClient(
        address=cfg.VAULT_ADDR,
        token=cfg.VAULT_TOKEN,
        key_name=cfg.transit_key,
        mount=cfg.VAULT_TRANSIT_MOUNT,
        namespace=cfg.VAULT_NAMESPACE,
        timeout=cfg.VAULT_TIMEOUT_SECONDS,
    )


def build_integrity_keyring(cfg: Settings) -> IntegrityKeyring:
    return IntegrityKeyring(cfg.transit_key, cfg.previous_integrity_keys)


def build_field_encryptor(
    cfg: Settings,
    client: Optional[KeyServiceClient] = None,
    sink: Optional[SecurityEventSink] = None
) -> FieldEncryptor:
    client = client or build_key_service_client(cfg)
    keyring = build_integrity_keyring(cfg)
    logger.info(f"Field encryptor ready (key '{client.key_name}', {len(keyring.key_names)} integrity key(s))")
    return FieldEncryptor(client, keyring, sink or LoggingSink())


def build_search_hasher(cfg: Settings) -> SearchHasher:
    return SearchHasher(cfg.search_hash_secret)


# --- Process-wide instances (lazy, initialized once) ---

_instance_lock = threading.Lock()
_field_encryptor_instance: Optional[FieldEncryptor] = None
_search_hasher_instance: Optional[SearchHasher] = None


def get_field_encryptor() -> FieldEncryptor:
    global _field_encryptor_instance
    if _field_encryptor_instance is None:
        with _instance_lock:
            if _field_encryptor_instance is None:
                _field_encryptor_instance = build_field_encryptor(settings)
    return _field_encryptor_instance


def get_search_hasher() -> SearchHasher:
    global _search_hasher_instance
    if _search_hasher_instance is None:
        with _instance_lock:
            if _search_hasher_instance is None:
                _search_hasher_instance = build_search_hasher(settings)
    return _search_hasher_instance


def reset_dependencies() -> None:
    """Drop cached instances (tests, reconfiguration)."""
    global _field_encryptor_instance, _search_hasher_instance
    with _instance_lock:
        _field_encryptor_instance = None
        _search_hasher_instance = None
