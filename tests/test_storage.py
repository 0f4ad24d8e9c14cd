import asyncio
import pytest

from conftest import make_options
from fieldcrypt_core.controller import plugin
from fieldcrypt_core.errors import KeyMaterialError, SelectionError, ValidationError
from fieldcrypt_core.record import NestedRecord, Record
from fieldcrypt_core.schema import Schema
from fieldcrypt_core.storage import InMemoryRecordStore, SQLiteRecordStore, load_record_store


def schemas(**extra):
    options = make_options(**extra)
    address = Schema.from_dict({"street": {"encrypt": "separated"}, "city": {}}, name="address")
    plugin(address, options)
    person = Schema.from_dict({
        "_id": {},
        "name": {"required": True},
        "ssn": {"encrypt": "separated"},
        "profile": {"encrypt": "aggregated"},
        "addresses": [address],
    }, name="person")
    plugin(person, options)
    return person, address


@pytest.fixture(params=["memory", "sqlite"])
def store_factory(request, tmp_path):
    def make(schema):
        if request.param == "memory":
            return InMemoryRecordStore(schema)
        return SQLiteRecordStore(schema, str(tmp_path / "records.db"))
    return make


def test_save_stores_ciphertext_and_keeps_plaintext_in_memory(store_factory):
    person, address = schemas()
    store = store_factory(person)
    child = NestedRecord(address, {"street": "1 Main", "city": "Springfield"})
    record = Record(person, {"name": "Ada", "ssn": "123-45-6789",
                             "profile": {"income": 50000, "notes": "ok"}, "addresses": [child]})

    asyncio.run(store.save(record))

    # in memory: plaintext everywhere, nested included
    assert record["ssn"] == "123-45-6789"
    assert record["profile"] == {"income": 50000, "notes": "ok"}
    assert child["street"] == "1 Main"
    assert record.is_new is False

    raw = store.raw(record.record_id)
    assert "ssn" not in raw and "profile" not in raw
    assert isinstance(raw["aggregated_cipher"], bytes)
    assert "ssn" in raw["separated_cipher_map"]
    assert "street" not in raw["addresses"][0]
    assert raw["addresses"][0]["city"] == "Springfield"


def test_load_returns_decrypted_record(store_factory):
    person, address = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123", "profile": {"a": [1, 2]},
                             "addresses": [NestedRecord(address, {"street": "1 Main"})]})
    asyncio.run(store.save(record))

    loaded = store.load(record.record_id)

    assert loaded["ssn"] == "123"
    assert loaded["profile"] == {"a": [1, 2]}
    assert loaded["addresses"][0]["street"] == "1 Main"
    assert "aggregated_cipher" not in loaded
    assert store.load("missing") is None


def test_resave_loaded_record(store_factory):
    person, _ = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "1", "profile": {"a": 1}})
    asyncio.run(store.save(record))

    loaded = store.load(record.record_id)
    loaded["profile"] = {"a": 2}
    asyncio.run(store.save(loaded))

    again = store.load(record.record_id)
    assert again["profile"] == {"a": 2}
    assert again["ssn"] == "1"
    assert "profile" not in store.raw(record.record_id)


def test_partial_load_save_keeps_unselected_ciphertext(store_factory):
    person, _ = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "1", "profile": {"a": 1}})
    asyncio.run(store.save(record))

    partial = store.load(record.record_id, fields=["name"])
    assert dict(partial) == {"_id": record.record_id, "name": "Ada"}
    partial["name"] = "Ada L."
    asyncio.run(store.save(partial))

    full = store.load(record.record_id)
    assert full["name"] == "Ada L."
    assert full["profile"] == {"a": 1}
    assert full["ssn"] == "1"


@pytest.mark.parametrize("storage", ["side_map", "inline"])
def test_partial_load_of_encrypted_field_decrypts_and_resaves(store_factory, storage):
    person, _ = schemas(separated_storage=storage)
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123", "profile": {"a": 1}})
    asyncio.run(store.save(record))

    partial = store.load(record.record_id, fields=["ssn"])
    assert partial["ssn"] == "123"
    # encrypted fields share their ciphertext holders and load together
    assert partial["profile"] == {"a": 1}
    assert "name" not in partial

    partial["ssn"] = "999"
    asyncio.run(store.save(partial))
    assert partial["ssn"] == "999"

    full = store.load(record.record_id)
    assert full["ssn"] == "999"
    assert full["profile"] == {"a": 1}
    assert full["name"] == "Ada"


def test_partial_save_never_stores_plaintext_beside_ciphertext(store_factory):
    person, _ = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123"})
    asyncio.run(store.save(record))

    partial = store.load(record.record_id, fields=["name", "ssn"])
    partial["ssn"] = "999"
    asyncio.run(store.save(partial))

    raw = store.raw(record.record_id)
    assert "ssn" not in raw
    assert set(raw["separated_cipher_map"]) == {"ssn"}
    assert store.load(record.record_id)["ssn"] == "999"


def test_partial_save_drops_removed_encrypted_fields(store_factory):
    person, _ = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123", "profile": {"a": 1}})
    asyncio.run(store.save(record))

    partial = store.load(record.record_id, fields=["ssn"])
    del partial["ssn"]
    del partial["profile"]
    asyncio.run(store.save(partial))

    raw = store.raw(record.record_id)
    assert "separated_cipher_map" not in raw
    assert "aggregated_cipher" not in raw
    assert dict(store.load(record.record_id)) == {"_id": record.record_id, "name": "Ada"}


@pytest.mark.parametrize("storage", ["side_map", "inline"])
def test_setting_unloaded_encrypted_field_aborts_write(store_factory, storage):
    person, _ = schemas(separated_storage=storage)
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123"})
    asyncio.run(store.save(record))

    partial = store.load(record.record_id, fields=["name"])
    partial["ssn"] = "999"
    with pytest.raises(SelectionError):
        asyncio.run(store.save(partial))

    assert store.load(record.record_id)["ssn"] == "123"


def test_validation_failure_restores_nested_records(store_factory):
    person, address = schemas()
    store = store_factory(person)
    child = NestedRecord(address, {"street": "1 Main"})
    record = Record(person, {"ssn": "1", "addresses": [child]})

    with pytest.raises(ValidationError) as exc:
        asyncio.run(store.save(record))

    assert "name" in exc.value.errors
    assert child["street"] == "1 Main"
    assert "separated_cipher_map" not in child
    assert record["ssn"] == "1"
    assert store.raw(record.record_id) is None

    # fixing the error and saving again loses nothing
    record["name"] = "Ada"
    asyncio.run(store.save(record))
    assert store.load(record.record_id)["addresses"][0]["street"] == "1 Main"


def test_encrypt_failure_aborts_write(tmp_path):
    def broken(n):
        raise OSError("entropy gone")

    person = Schema.from_dict({"name": {}, "profile": {"encrypt": "aggregated"}}, name="person")
    plugin(person, make_options(), random_source=broken)
    store = InMemoryRecordStore(person)
    record = Record(person, {"name": "Ada", "profile": {"a": 1}})

    with pytest.raises(KeyMaterialError):
        asyncio.run(store.save(record))
    assert store.docs == {}
    assert record["profile"] == {"a": 1}


def test_inline_variant_through_store(store_factory):
    person, _ = schemas(separated_storage="inline")
    store = store_factory(person)
    record = Record(person, {"name": "Ada", "ssn": "123"})
    asyncio.run(store.save(record))

    raw = store.raw(record.record_id)
    assert raw["ssn"] != "123"
    assert raw["separated_inline_fields"] == ["ssn"]
    assert store.load(record.record_id)["ssn"] == "123"


def test_delete(store_factory):
    person, _ = schemas()
    store = store_factory(person)
    record = Record(person, {"name": "Ada"})
    asyncio.run(store.save(record))
    assert store.delete(record.record_id) is True
    assert store.delete(record.record_id) is False
    assert store.load(record.record_id) is None


def test_store_rejects_foreign_record():
    person, address = schemas()
    store = InMemoryRecordStore(person)
    with pytest.raises(ValueError):
        asyncio.run(store.save(Record(address, {"street": "x"})))


def test_load_record_store_modes(monkeypatch, tmp_path):
    person, _ = schemas()
    monkeypatch.delenv("FIELDCRYPT_STORE", raising=False)
    assert isinstance(load_record_store(person), InMemoryRecordStore)

    monkeypatch.setenv("FIELDCRYPT_STORE", "sqlite")
    monkeypatch.setenv("FIELDCRYPT_DB_PATH", str(tmp_path / "env.db"))
    store = load_record_store(person)
    assert isinstance(store, SQLiteRecordStore)
    store.close()

    with pytest.raises(ValueError):
        load_record_store(person, {"provider": "firestore"})
