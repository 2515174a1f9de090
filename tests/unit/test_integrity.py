import hashlib
import hmac
import logging

import pytest

from piivault.domain.crypto.integrity import (
    IntegrityKeyring,
    compute_tag,
    derive_integrity_secret,
    verify_tag,
)


def test_secret_derived_from_key_name():
    assert derive_integrity_secret("pii-key") == hashlib.sha256(b"pii-key-hmac-secret").digest()
    assert derive_integrity_secret("pii-key") != derive_integrity_secret("other-key")


def test_compute_tag_is_pure_hmac():
    secret = derive_integrity_secret("pii-key")
    expected = hmac.new(secret, b"vault:v1:abc", hashlib.sha256).hexdigest()

    assert compute_tag(secret, "vault:v1:abc") == expected
    assert compute_tag(secret, "vault:v1:abc") == compute_tag(secret, "vault:v1:abc")
    assert len(expected) == 64


def test_verify_tag():
    secret = derive_integrity_secret("pii-key")
    tag = compute_tag(secret, "vault:v1:abc")

    assert verify_tag(secret, "vault:v1:abc", tag)
    assert verify_tag(secret, "vault:v1:abc", tag.upper())
    assert not verify_tag(secret, "vault:v1:abd", tag)
    assert not verify_tag(secret, "vault:v1:abc", "0" * 64)
    assert not verify_tag(secret, "vault:v1:abc", "")


def test_keyring_signs_with_primary():
    keyring = IntegrityKeyring("current", ["old"])
    assert keyring.primary_key_name == "current"
    assert keyring.sign("ct") == compute_tag(derive_integrity_secret("current"), "ct")


def test_keyring_verifies_previous_keys(caplog):
    old_tag = IntegrityKeyring("old").sign("ct")

    # 1. Without the previous key the old tag is rejected
    assert not IntegrityKeyring("current").verify("ct", old_tag)

    # 2. During a rotation window it is accepted
    with caplog.at_level(logging.INFO):
        assert IntegrityKeyring("current", ["old"]).verify("ct", old_tag)
    assert "previous key 'old'" in caplog.text


def test_keyring_deduplicates_names():
    keyring = IntegrityKeyring("current", ["old", "current", "", "old"])
    assert keyring.key_names == ["current", "old"]


def test_keyring_requires_primary():
    with pytest.raises(ValueError, match="primary_key_name"):
        IntegrityKeyring("")


def test_keyring_repr_has_no_secrets():
    keyring = IntegrityKeyring("current")
    assert repr(keyring) == "IntegrityKeyring(key_names=['current'])"
