"""
Tests for the vault store: entry lifecycle, derived categories and export.
"""

import pytest

from securevault.core.errors import InvalidInput, MissingFields, NotFound
from securevault.core.models import EntryCreate, EntryUpdate


def fields(**overrides) -> EntryCreate:
    data = {"url": "https://x.com", "username": "a", "passwordEncrypted": "ct1"}
    data.update(overrides)
    return EntryCreate.model_validate(data)


@pytest.fixture
def alice(make_user):
    make_user("alice")
    return "alice"


@pytest.fixture
def bob(make_user):
    make_user("bob")
    return "bob"


class TestAddEntry:
    def test_assigns_identity_and_timestamps(self, vault, alice, clock):
        entry = vault.add_entry(alice, fields(note="hello", faviconUrl="https://x.com/favicon.ico"))
        assert entry.id
        assert entry.owner == "alice"
        assert entry.created_at == entry.updated_at == clock()
        assert entry.password_encrypted == "ct1"
        assert entry.favicon_url == "https://x.com/favicon.ico"
        assert vault.list_entries(alice) == [entry]

    @pytest.mark.parametrize("missing", ["url", "username", "passwordEncrypted"])
    def test_required_fields(self, vault, alice, missing):
        with pytest.raises(MissingFields):
            vault.add_entry(alice, fields(**{missing: None}))
        with pytest.raises(MissingFields):
            vault.add_entry(alice, fields(**{missing: ""}))
        assert vault.list_entries(alice) == []

    def test_owner_comes_from_caller_not_payload(self, vault, alice, bob):
        entry = vault.add_entry(alice, fields(owner="bob"))
        assert entry.owner == "alice"
        assert vault.list_entries(bob) == []

    def test_ids_are_unique(self, vault, alice):
        ids = {vault.add_entry(alice, fields()).id for _ in range(10)}
        assert len(ids) == 10

    def test_tags_are_an_ordered_set(self, vault, alice):
        entry = vault.add_entry(alice, fields(tags=["b", "a", "b", "c", "a"]))
        assert entry.tags == ["b", "a", "c"]

    def test_non_list_tags_are_dropped(self, vault, alice):
        assert vault.add_entry(alice, fields(tags="work")).tags == []

    def test_newest_first(self, vault, alice, clock):
        first = vault.add_entry(alice, fields(url="https://one"))
        clock.advance(seconds=1)
        second = vault.add_entry(alice, fields(url="https://two"))
        assert [e.id for e in vault.list_entries(alice)] == [second.id, first.id]


class TestUpdateEntry:
    def test_partial_update(self, vault, alice, clock):
        entry = vault.add_entry(alice, fields(tags=["work"]))
        clock.advance(minutes=1)
        updated = vault.update_entry(alice, entry.id, EntryUpdate.model_validate({"note": "n"}))
        assert updated.note == "n"
        assert updated.tags == ["work"]
        assert updated.updated_at > entry.updated_at

    def test_clear_optional_field(self, vault, alice):
        entry = vault.add_entry(alice, fields(note="old"))
        updated = vault.update_entry(alice, entry.id, EntryUpdate.model_validate({"note": None}))
        assert updated.note is None

    def test_null_tags_become_empty(self, vault, alice):
        entry = vault.add_entry(alice, fields(tags=["x"]))
        assert vault.update_entry(alice, entry.id, EntryUpdate.model_validate({"tags": None})).tags == []

    @pytest.mark.parametrize("name", ["url", "username", "passwordEncrypted"])
    def test_required_fields_cannot_be_blanked(self, vault, alice, name):
        entry = vault.add_entry(alice, fields())
        with pytest.raises(InvalidInput):
            vault.update_entry(alice, entry.id, EntryUpdate.model_validate({name: ""}))

    def test_unknown_entry(self, vault, alice):
        with pytest.raises(NotFound):
            vault.update_entry(alice, "missing", EntryUpdate())


class TestOwnership:
    def test_other_owner_cannot_see_update_or_delete(self, vault, alice, bob):
        entry = vault.add_entry(alice, fields())
        assert vault.list_entries(bob) == []
        with pytest.raises(NotFound):
            vault.update_entry(bob, entry.id, EntryUpdate(note="mine now"))
        with pytest.raises(NotFound):
            vault.delete_entry(bob, entry.id)
        assert vault.list_entries(alice) == [entry]

    def test_delete(self, vault, alice):
        entry = vault.add_entry(alice, fields())
        vault.delete_entry(alice, entry.id)
        assert vault.list_entries(alice) == []
        with pytest.raises(NotFound):
            vault.delete_entry(alice, entry.id)


class TestCategories:
    def test_derived_from_tags(self, vault, alice, bob):
        vault.add_entry(alice, fields(tags=["work", "mail"]))
        vault.add_entry(alice, fields(tags=["work", ""]))
        vault.add_entry(alice, fields())
        vault.add_entry(bob, fields(tags=["private"]))
        assert vault.list_categories(alice) == {"work", "mail"}
        assert vault.list_categories(bob) == {"private"}

    def test_empty_vault_has_no_categories(self, vault, alice):
        assert vault.list_categories(alice) == set()

    def test_declare_has_no_side_effect(self, vault, alice):
        entry = vault.add_entry(alice, fields(tags=["work"]))
        assert vault.declare_category("travel") == "travel"
        assert vault.list_categories(alice) == {"work"}
        assert vault.list_entries(alice) == [entry]

    @pytest.mark.parametrize("name", ["", "   ", None, 5])
    def test_declare_rejects_blank(self, vault, name):
        with pytest.raises(InvalidInput):
            vault.declare_category(name)

    def test_delete_strips_tag_only(self, vault, alice, clock):
        tagged = vault.add_entry(alice, fields(tags=["work", "mail"], note="keep"))
        other = vault.add_entry(alice, fields(tags=["home"]))
        clock.advance(minutes=1)

        vault.delete_category(alice, "work")

        by_id = {e.id: e for e in vault.list_entries(alice)}
        assert by_id[tagged.id].tags == ["mail"]
        assert by_id[tagged.id].note == "keep"
        assert by_id[tagged.id].updated_at == clock()
        assert by_id[other.id] == other
        assert vault.list_categories(alice) == {"mail", "home"}

    def test_delete_unknown_category_is_noop(self, vault, alice, clock):
        entry = vault.add_entry(alice, fields(tags=["home"]))
        clock.advance(minutes=1)
        vault.delete_category(alice, "work")
        assert vault.list_entries(alice) == [entry]


def test_export(vault, alice, bob, clock):
    first = vault.add_entry(alice, fields(url="https://one"))
    clock.advance(seconds=1)
    second = vault.add_entry(alice, fields(url="https://two"))
    vault.add_entry(bob, fields())

    bundle = vault.export(alice)
    assert bundle.version == 1
    assert bundle.username == "alice"
    assert bundle.exported_at == clock()
    assert bundle.entries == [second, first]

    dumped = bundle.model_dump(mode="json", by_alias=True)
    assert set(dumped) == {"version", "username", "exportedAt", "entries"}
    assert "passwordEncrypted" in dumped["entries"][0]
