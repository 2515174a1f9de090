import pytest

from piivault.domain.crypto.fields import EncryptedFieldMap, FieldSpec, field_context
from piivault.errors import RemoteServiceError


@pytest.fixture
def user_fields(encryptor, hasher):
    return EncryptedFieldMap.for_entity(
        encryptor,
        "user",
        ["email", "phone", "nickname"],
        searchable=["email"],
        non_critical=["nickname"],
        hasher=hasher,
    )


def test_field_context():
    assert field_context("user", "email") == "user:email"
    assert field_context("session", "ip_address") == "session:ip_address"


def test_for_entity_builds_specs(user_fields):
    specs = {s.name: s for s in user_fields.specs}

    assert specs["email"] == FieldSpec("email", "user:email", searchable=True, critical=True)
    assert specs["phone"].context == "user:phone"
    assert not specs["phone"].searchable
    assert not specs["nickname"].critical
    assert specs["email"].hash_column == "email_hash"


@pytest.mark.asyncio
async def test_record_round_trip(user_fields, encryptor, hasher, transit):
    record = {"id": 7, "email": "user@example.com", "phone": "", "nickname": "Bo", "role": "admin"}

    stored = await user_fields.encrypt_record(record)

    assert stored["id"] == 7 and stored["role"] == "admin"
    assert stored["phone"] == ""
    assert stored["email"] != "user@example.com"
    assert stored["email_hash"] == hasher.hash("user@example.com")
    assert "phone_hash" not in stored
    # Input record is not mutated
    assert record["email"] == "user@example.com"
    assert transit.calls == ["encrypt_batch"]

    # Each column is bound to its own context
    assert await encryptor.decrypt_with_context(stored["email"], "user:email") == "user@example.com"

    loaded = await user_fields.decrypt_record(stored)
    assert loaded["email"] == "user@example.com"
    assert loaded["phone"] == ""
    assert loaded["nickname"] == "Bo"
    assert loaded["email_hash"] == stored["email_hash"]


@pytest.mark.asyncio
async def test_missing_and_null_columns_untouched(user_fields, transit):
    stored = await user_fields.encrypt_record({"id": 1, "email": None})

    assert stored == {"id": 1, "email": None}
    assert transit.calls == []


@pytest.mark.asyncio
async def test_empty_searchable_value_gets_empty_hash(user_fields):
    stored = await user_fields.encrypt_record({"email": ""})
    assert stored == {"email": "", "email_hash": ""}


@pytest.mark.asyncio
async def test_non_critical_failure_falls_back(user_fields, encryptor):
    stored = await user_fields.encrypt_record({"email": "user@example.com", "nickname": "Bo"})
    # Nickname written under some other context
    stored["nickname"] = await encryptor.encrypt_with_context("Bo", "order:nickname")

    loaded = await user_fields.decrypt_record(stored)
    assert loaded["email"] == "user@example.com"
    assert loaded["nickname"] == ""


@pytest.mark.asyncio
async def test_critical_failure_propagates(user_fields):
    stored = await user_fields.encrypt_record({"email": "user@example.com", "phone": "0812345678"})
    stored["email"], stored["phone"] = stored["phone"], stored["email"]

    with pytest.raises(RemoteServiceError):
        await user_fields.decrypt_record(stored)


def test_search_hash(user_fields, hasher):
    assert user_fields.search_hash("email", "user@example.com") == hasher.hash("user@example.com")

    with pytest.raises(ValueError, match="not searchable"):
        user_fields.search_hash("phone", "0812345678")

    with pytest.raises(KeyError):
        user_fields.search_hash("address", "x")


def test_invalid_definitions(encryptor):
    with pytest.raises(ValueError, match="Duplicate"):
        EncryptedFieldMap(encryptor, [FieldSpec("email", "user:email"), FieldSpec("email", "user:email")])

    with pytest.raises(ValueError, match="SearchHasher"):
        EncryptedFieldMap.for_entity(encryptor, "user", ["email"], searchable=["email"])
