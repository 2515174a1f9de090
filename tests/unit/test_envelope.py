import pytest

from piivault.domain.crypto.envelope import CiphertextEnvelope
from piivault.errors import EmptyAfterTagStrip, MalformedEnvelope

TAG = "ab" * 32


def test_parse_tagged_vault_ciphertext():
    # Vault ciphertext carries its own colons; only the last segment is the tag
    envelope = CiphertextEnvelope.parse(f"vault:v1:Zm9vYmFy:{TAG}")
    assert envelope.remote_ciphertext == "vault:v1:Zm9vYmFy"
    assert envelope.tag == TAG
    assert envelope.is_tagged


def test_parse_legacy_untagged():
    envelope = CiphertextEnvelope.parse("vault:v1:Zm9vYmFy")
    assert envelope.remote_ciphertext == "vault:v1:Zm9vYmFy"
    assert envelope.tag is None
    assert not envelope.is_tagged


@pytest.mark.parametrize("suffix", [
    "ab" * 31 + "a",       # 63 chars
    "ab" * 32 + "a",       # 65 chars
    "zz" * 32,             # not hex
    "ab" * 32 + "\n",      # trailing newline
])
def test_parse_non_tag_suffix_is_legacy(suffix):
    value = f"vault:v1:{suffix}"
    envelope = CiphertextEnvelope.parse(value)
    assert envelope.tag is None
    assert envelope.remote_ciphertext == value


def test_parse_uppercase_tag():
    envelope = CiphertextEnvelope.parse(f"vault:v1:abc:{TAG.upper()}")
    assert envelope.tag == TAG.upper()


def test_parse_bare_hex_without_separator_is_legacy():
    envelope = CiphertextEnvelope.parse(TAG)
    assert envelope.remote_ciphertext == TAG
    assert envelope.tag is None


def test_parse_tag_without_ciphertext():
    with pytest.raises(EmptyAfterTagStrip, match="tag without ciphertext"):
        CiphertextEnvelope.parse(f":{TAG}")

    # Still a MalformedEnvelope for callers that catch the broad class
    with pytest.raises(MalformedEnvelope):
        CiphertextEnvelope.parse(f":{TAG}")


def test_parse_empty():
    envelope = CiphertextEnvelope.parse("")
    assert envelope.is_empty
    assert envelope.serialize() == ""


def test_serialize():
    assert CiphertextEnvelope("vault:v1:abc", TAG).serialize() == f"vault:v1:abc:{TAG}"
    assert str(CiphertextEnvelope("vault:v1:abc")) == "vault:v1:abc"

    value = f"vault:v1:abc:{TAG}"
    assert CiphertextEnvelope.parse(value).serialize() == value
