"""Tests for KeyValueRepository: save/read pipeline, finders and encryption."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from itertools import count
from unittest.mock import MagicMock

import pytest

from kvmapper.domain.exceptions import ConfigurationError, MigrationError, UnindexedFieldError
from kvmapper.domain.models.entity import Entity
from kvmapper.domain.models.records import IndexRange, SaveRequest, SaveResult, StoredItem
from kvmapper.domain.repositories.config import EntityConfig
from kvmapper.domain.services.migrations import VERSION_KEY, Migration
from kvmapper.infrastructure.encryption import (
    EnvelopeDecryptor,
    FernetEncryptionKey,
    StaticKeyProvider,
)
from kvmapper.infrastructure.persistence.repositories.keyvalue import KeyValueRepository
from kvmapper.infrastructure.persistence.stores.memory import MemoryDataStore

UTC = timezone.utc
T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class User(Entity):
    name: str
    email: str | None = None
    age: int | None = None


class Person(Entity):
    first_name: str
    last_name: str


class SplitName(Migration):
    version = 1

    def migrate(self, attributes):
        first, _, last = attributes.pop("name").partition(" ")
        attributes["first_name"] = first
        attributes["last_name"] = last
        return attributes


class Doc(Entity):
    title: str
    version: int


class AddTitle(Migration):
    version = 1

    def migrate(self, attributes):
        attributes.setdefault("title", "untitled")
        return attributes


class Secret(Entity):
    pin: str | None = None
    owner: str | None = None
    # Present so an undecrypted envelope can still be loaded and inspected.
    encryption_key_id: str | None = None
    encrypted_data: str | None = None


def _ticking_clock(start=T0, step=timedelta(seconds=1)):
    ticks = count()
    return lambda: start + step * next(ticks)


def _store():
    seq = count(1)
    return MemoryDataStore(key_factory=lambda: f"k{next(seq)}")


def _users(store=None, clock=None, **options):
    options.setdefault("indexed_fields", ("email", "age"))
    return KeyValueRepository(
        store if store is not None else _store(),
        EntityConfig(User, **options),
        clock=clock or _ticking_clock(),
    )


def _mock_store(key="k1"):
    store = MagicMock()
    store.save.return_value = SaveResult(key=key)
    return store


def _sent_request(store) -> SaveRequest:
    return store.save.call_args.args[0]


# ---------------------------------------------------------------------------
# save
# ---------------------------------------------------------------------------


class TestSave:
    def test_new_entity_gets_store_assigned_id(self):
        user = _users().save(User(name="alice"))
        assert user.id == "k1"

    def test_new_entity_sends_keyless_request(self):
        store = _mock_store()
        _users(store).save(User(name="alice"))
        assert _sent_request(store).key is None

    def test_existing_entity_overwrites_its_key(self):
        store = _mock_store(key="ignored")
        user = _users(store).save(User(id="k2", name="alice"))
        assert _sent_request(store).key == "k2"
        assert user.id == "k2"

    def test_returns_the_same_object(self):
        user = User(name="alice")
        assert _users().save(user) is user

    def test_request_targets_collection(self):
        store = _mock_store()
        _users(store).save(User(name="alice"))
        assert _sent_request(store).collection == "users"

    def test_first_save_sets_created_equal_to_updated(self):
        user = _users().save(User(name="alice"))
        assert user.created_at is not None
        assert user.created_at == user.updated_at

    def test_second_save_advances_updated_at_only(self):
        users = _users()
        user = users.save(User(name="alice"))
        created, first_update = user.created_at, user.updated_at
        users.save(user)
        assert user.created_at == created
        assert user.updated_at > first_update

    def test_value_drops_unset_attributes(self):
        store = _mock_store()
        _users(store).save(User(name="alice"))
        value = _sent_request(store).value
        assert value["name"] == "alice"
        assert "email" not in value
        assert "age" not in value
        assert "id" not in value

    def test_value_carries_canonical_timestamps(self):
        store = _mock_store()
        _users(store, clock=lambda: T0).save(User(name="alice"))
        value = _sent_request(store).value
        assert value["created_at"] == "2024-01-01T12:00:00.000000Z"
        assert value["updated_at"] == "2024-01-01T12:00:00.000000Z"

    def test_index_contains_declared_fields_and_timestamps(self):
        store = _mock_store()
        _users(store, clock=lambda: T0).save(User(name="alice", email="a@x", age=30))
        assert _sent_request(store).index == {
            "email": "a@x",
            "age": 30,
            "created_at": "2024-01-01T12:00:00.000000Z",
            "updated_at": "2024-01-01T12:00:00.000000Z",
        }

    def test_index_is_recomputed_on_every_save(self):
        store = _mock_store()
        users = _users(store)
        user = users.save(User(name="alice", email="old@x"))
        user.email = "new@x"
        users.save(user)
        assert _sent_request(store).index["email"] == "new@x"

    def test_declared_timestamp_index_is_shadowed(self):
        store = _mock_store()
        created = datetime(2020, 5, 5, tzinfo=UTC)
        users = _users(store, clock=lambda: T0, indexed_fields=("created_at",))
        users.save(User(name="alice", created_at=created))
        assert _sent_request(store).index["created_at"] == "2020-05-05T00:00:00.000000Z"

    def test_store_failure_propagates_unchanged(self):
        store = MagicMock()
        store.save.side_effect = ConnectionError("store down")
        user = User(name="alice")
        with pytest.raises(ConnectionError, match="store down"):
            _users(store).save(user)
        assert user.id is None

    def test_version_stamped_when_migrations_registered(self):
        store = _mock_store()
        people = KeyValueRepository(store, EntityConfig(Person, migrations=(SplitName(),)))
        people.save(Person(first_name="Ada", last_name="Lovelace"))
        assert _sent_request(store).value[VERSION_KEY] == 1

    def test_version_absent_without_migrations(self):
        store = _mock_store()
        _users(store).save(User(name="alice"))
        assert VERSION_KEY not in _sent_request(store).value

    def test_entity_field_named_version_survives_round_trip(self):
        store = _store()
        docs = KeyValueRepository(store, EntityConfig(Doc, migrations=(AddTitle(),)))
        saved = docs.save(Doc(title="spec", version=7))

        data = store.find_by_key("docs", saved.id).data
        assert data[VERSION_KEY] == 1
        assert data["version"] == 7
        assert docs.find_by_id(saved.id).version == 7


# ---------------------------------------------------------------------------
# delete / find_by_id
# ---------------------------------------------------------------------------


class TestDeleteAndFindById:
    def test_find_by_id_round_trip(self):
        users = _users()
        saved = users.save(User(name="alice", email="a@x", age=30))
        found = users.find_by_id(saved.id)
        assert found.model_dump() == saved.model_dump()

    def test_find_by_id_missing_returns_none(self):
        assert _users().find_by_id("nope") is None

    def test_delete_removes_record(self):
        users = _users()
        user = users.save(User(name="alice"))
        users.delete(user)
        assert users.find_by_id(user.id) is None

    def test_delete_passes_collection_and_key(self):
        store = MagicMock()
        _users(store).delete(User(id="k9", name="alice"))
        store.delete.assert_called_once_with("users", "k9")

    def test_find_by_id_failure_propagates(self):
        store = MagicMock()
        store.find_by_key.side_effect = TimeoutError()
        with pytest.raises(TimeoutError):
            _users(store).find_by_id("k1")


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_scenario_create_then_update():
    users = _users()

    alice = users.save(User(name="alice"))
    assert alice.id == "k1"
    found = users.find_by_id("k1")
    assert found.name == "alice"
    assert found.created_at is not None
    assert found.created_at == found.updated_at

    created, updated = alice.created_at, alice.updated_at
    alice.name = "bob"
    users.save(alice)
    assert alice.updated_at > updated
    assert alice.created_at == created

    found = users.find_by_id("k1")
    assert found.name == "bob"
    assert found.created_at == created
    assert found.updated_at == alice.updated_at


def test_scenario_concurrent_saves_to_same_id_never_merge():
    store = MemoryDataStore()
    users = KeyValueRepository(store, EntityConfig(User), clock=lambda: T0)
    barrier = threading.Barrier(2)

    def _save(user):
        barrier.wait()
        users.save(user)

    writes = [
        User(id="k2", name="alice", email="a@x"),
        User(id="k2", name="bob", age=41),
    ]
    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(_save, writes))

    stored = store.find_by_key("users", "k2").data
    assert stored in [
        {"name": "alice", "email": "a@x", "created_at": stored["created_at"], "updated_at": stored["updated_at"]},
        {"name": "bob", "age": 41, "created_at": stored["created_at"], "updated_at": stored["updated_at"]},
    ]


# ---------------------------------------------------------------------------
# Index finders
# ---------------------------------------------------------------------------


class TestIndexFinders:
    @pytest.fixture
    def users(self):
        users = _users()
        users.save(User(name="alice", email="shared@x", age=30))
        users.save(User(name="bob", email="shared@x", age=41))
        users.save(User(name="carol", email="carol@x", age=30))
        return users

    def test_find_by_generic(self, users):
        assert [u.name for u in users.find_by("email", "shared@x")] == ["alice", "bob"]

    def test_find_by_named_method(self, users):
        assert [u.name for u in users.find_by_age(30)] == ["alice", "carol"]

    def test_find_first_by_named_method(self, users):
        assert users.find_first_by_email("shared@x").name == "alice"

    def test_find_first_by_generic(self, users):
        assert users.find_first_by("email", "carol@x").name == "carol"

    def test_find_by_no_match_is_empty(self, users):
        assert users.find_by_email("nobody@x") == []

    def test_find_first_by_no_match_is_none(self, users):
        assert users.find_first_by_email("nobody@x") is None

    def test_results_carry_ids(self, users):
        assert [u.id for u in users.find_by_email("shared@x")] == ["k1", "k2"]

    def test_values_must_match_stored_representation(self, users):
        assert users.find_by_age("30") == []

    def test_unindexed_field_via_generic_raises(self, users):
        with pytest.raises(UnindexedFieldError) as excinfo:
            users.find_by("name", "alice")
        assert excinfo.value.field == "name"
        assert excinfo.value.collection == "users"

    def test_unindexed_field_via_named_method_is_attribute_error(self, users):
        with pytest.raises(AttributeError):
            users.find_by_name("alice")

    def test_indexed_fields_exposed(self, users):
        assert users.indexed_fields == ("email", "age")

    def test_store_absent_result_is_empty_list(self):
        store = MagicMock()
        store.find_by_index.return_value = None
        users = _users(store)
        assert users.find_by_email("a@x") == []
        assert users.find_first_by_email("a@x") is None

    def test_finder_delegates_field_and_value(self):
        store = MagicMock()
        store.find_by_index.return_value = []
        _users(store).find_by_email("a@x")
        store.find_by_index.assert_called_once_with("users", "email", "a@x")

    def test_repositories_share_the_config_finder_table(self):
        store = _store()
        config = EntityConfig(User, indexed_fields=("email",))
        first = KeyValueRepository(store, config)
        second = KeyValueRepository(store, config)
        first.save(User(name="alice", email="a@x"))

        assert first.config.finders is second.config.finders
        assert "_finders" not in vars(first)
        assert second.find_first_by_email("a@x").name == "alice"


# ---------------------------------------------------------------------------
# Timestamp range queries
# ---------------------------------------------------------------------------


class TestRangeQueries:
    @pytest.fixture
    def users(self):
        # Saves happen at T0, T0+1h, T0+2h.
        users = _users(clock=_ticking_clock(step=timedelta(hours=1)))
        for name in ("first", "second", "third"):
            users.save(User(name=name))
        return users

    def test_created_at_range_is_inclusive(self, users):
        found = users.find_by_created_at(T0, T0 + timedelta(hours=1))
        assert [u.name for u in found] == ["first", "second"]

    def test_created_at_range_excludes_outside(self, users):
        found = users.find_by_created_at(T0 + timedelta(minutes=30), T0 + timedelta(hours=5))
        assert [u.name for u in found] == ["second", "third"]

    def test_range_results_are_chronological(self):
        store = _store()
        users = _users(store, clock=_ticking_clock(step=-timedelta(hours=1)))
        for name in ("late", "middle", "early"):
            users.save(User(name=name))
        found = users.find_by_created_at(T0 - timedelta(days=1), T0)
        assert [u.name for u in found] == ["early", "middle", "late"]

    def test_updated_at_range_tracks_latest_save(self, users):
        record = users.find_by_created_at(T0, T0)[0]
        users.save(record)  # re-saved at T0+3h
        found = users.find_by_updated_at(T0 + timedelta(hours=3), T0 + timedelta(hours=3))
        assert [u.name for u in found] == ["first"]
        assert found[0].created_at == T0

    def test_range_bounds_are_canonicalised(self):
        store = MagicMock()
        store.find_by_index.return_value = []
        naive_start = datetime(2024, 1, 1)
        _users(store).find_by_created_at(naive_start, T0)
        store.find_by_index.assert_called_once_with(
            "users",
            "created_at",
            IndexRange(start="2024-01-01T00:00:00.000000Z", end="2024-01-01T12:00:00.000000Z"),
        )


# ---------------------------------------------------------------------------
# Read-time migration
# ---------------------------------------------------------------------------


class TestMigrationOnRead:
    @pytest.fixture
    def store(self):
        store = _store()
        store.save(
            SaveRequest(
                collection="people",
                key="p1",
                value={
                    "name": "Ada Lovelace",
                    "created_at": "2020-01-01T00:00:00.000000Z",
                    "updated_at": "2020-06-01T00:00:00.000000Z",
                },
                index={},
            )
        )
        return store

    @pytest.fixture
    def people(self, store):
        return KeyValueRepository(store, EntityConfig(Person, migrations=(SplitName(),)))

    def test_old_record_is_migrated(self, people):
        ada = people.find_by_id("p1")
        assert (ada.first_name, ada.last_name) == ("Ada", "Lovelace")

    def test_timestamps_come_from_stored_record(self, people):
        ada = people.find_by_id("p1")
        assert ada.created_at == datetime(2020, 1, 1, tzinfo=UTC)
        assert ada.updated_at == datetime(2020, 6, 1, tzinfo=UTC)

    def test_resave_writes_current_shape(self, people, store):
        people.save(people.find_by_id("p1"))
        data = store.find_by_key("people", "p1").data
        assert data[VERSION_KEY] == 1
        assert "name" not in data
        assert people.find_by_id("p1").first_name == "Ada"

    def test_resave_keeps_original_created_at(self, people):
        ada = people.save(people.find_by_id("p1"))
        assert ada.created_at == datetime(2020, 1, 1, tzinfo=UTC)

    def test_unreadable_record_fails_loudly(self, store, people):
        store.save(SaveRequest(collection="people", key="p2", value={"nickname": "x"}, index={}))
        with pytest.raises(MigrationError):
            people.find_by_id("p2")


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


class TestEncryption:
    @pytest.fixture
    def provider(self):
        return StaticKeyProvider([FernetEncryptionKey.generate("key-1")], active_id="key-1")

    def test_encrypted_config_requires_key_provider(self):
        with pytest.raises(ConfigurationError, match="no key provider"):
            KeyValueRepository(_store(), EntityConfig(Secret, encrypted=True))

    def test_stored_value_is_only_the_envelope(self, provider):
        store = _store()
        secrets = KeyValueRepository(store, EntityConfig(Secret, encrypted=True), provider)
        secret = secrets.save(Secret(pin="pin-8392-1746", owner="alice-in-wonderland"))

        data = store.find_by_key("secrets", secret.id).data
        assert set(data) == {"encryption_key_id", "encrypted_data"}
        assert data["encryption_key_id"] == "key-1"
        rendered = json.dumps(data)
        # Base64 text never contains quotes, dashes or underscores.
        for plaintext in ('"pin"', '"owner"', "created_at", "pin-8392-1746", "alice-in-wonderland"):
            assert plaintext not in rendered

    def test_envelope_uses_key_active_at_save_time(self, provider):
        store = _store()
        secrets = KeyValueRepository(store, EntityConfig(Secret, encrypted=True), provider)
        provider.rotate(FernetEncryptionKey.generate("key-2"))
        secret = secrets.save(Secret(pin="1234"))
        assert store.find_by_key("secrets", secret.id).data["encryption_key_id"] == "key-2"

    def test_index_map_stays_plain(self, provider):
        store = MagicMock()
        store.save.return_value = SaveResult(key="s1")
        config = EntityConfig(Secret, encrypted=True, indexed_fields=("owner",))
        KeyValueRepository(store, config, provider).save(Secret(pin="1", owner="alice"))
        assert _sent_request(store).index["owner"] == "alice"

    def test_read_without_decrypt_step_sees_envelope(self, provider):
        store = _store()
        secrets = KeyValueRepository(store, EntityConfig(Secret, encrypted=True), provider)
        secret = secrets.save(Secret(pin="1234"))

        loaded = secrets.find_by_id(secret.id)
        assert loaded.pin is None
        assert loaded.encryption_key_id == "key-1"
        assert loaded.encrypted_data is not None
        assert loaded.created_at is None

    def test_read_with_caller_supplied_decrypt_step(self, provider):
        store = _store()
        config = EntityConfig(Secret, encrypted=True, decrypt=EnvelopeDecryptor(provider))
        secrets = KeyValueRepository(store, config, provider, clock=lambda: T0)
        secret = secrets.save(Secret(pin="1234", owner="alice"))

        loaded = secrets.find_by_id(secret.id)
        assert loaded.pin == "1234"
        assert loaded.owner == "alice"
        assert loaded.created_at == T0

    def test_decrypt_step_receives_raw_stored_data(self):
        decrypt = MagicMock(return_value={"pin": "9"})
        store = MagicMock()
        store.find_by_key.return_value = StoredItem(key="s1", data={"encrypted_data": "x", "encryption_key_id": "k"})
        secrets = KeyValueRepository(
            store, EntityConfig(Secret, decrypt=decrypt)
        )
        assert secrets.find_by_id("s1").pin == "9"
        decrypt.assert_called_once_with({"encrypted_data": "x", "encryption_key_id": "k"})
