"""Tests for the merge engine and Vault.merge.

Covers last-writer-wins resolution, tombstone handling, name resolution,
idempotence and the two-device fixture scenario.
"""

import pytest

from swifty_vault.exceptions import MalformedVaultError
from swifty_vault.vault import Box, Vault, VaultDocument
from swifty_vault.vault.merge import merge_vaults, union_tombstones

from conftest import T0, T1, FakeClock, SequentialIds, load_fixture, write_vault_file

LATER = 1641168000000  # 2022-01-03T00:00:00Z


def _box(box_id, updated_at=100, title=None, created_at=100):
    return Box.load({
        "id": box_id,
        "type": "note",
        "title": title or box_id,
        "createdAt": created_at,
        "updatedAt": updated_at,
    })


def _doc(contents=(), deleted=(), name="Personal", updated_at=100):
    return VaultDocument(
        id="v", name=name, contents=list(contents), deleted=list(deleted),
        created_at=100, updated_at=updated_at,
    )


# ── merge_vaults ────────────────────────────────────────────────────


class TestUnionTombstones:

    def test_keeps_local_order_then_remote_only(self):
        assert union_tombstones(["a", "b"], ["c", "a", "d"]) == ["a", "b", "c", "d"]

    def test_drops_duplicates(self):
        assert union_tombstones(["a", "a"], ["a"]) == ["a"]


class TestLastWriterWins:
    """Boxes present on both sides."""

    def test_newer_remote_replaces_local(self):
        local = _doc([_box("x", 100, "local")])
        remote = _doc([_box("x", 200, "remote")])

        result = merge_vaults(local, remote)

        assert result.contents == [_box("x", 200, "remote")]
        assert result.replaced == ["x"]

    def test_tie_keeps_local(self):
        local = _doc([_box("x", 100, "local")])
        remote = _doc([_box("x", 100, "remote")])

        result = merge_vaults(local, remote)

        assert result.contents[0].title == "local"
        assert result.contents[0] is local.contents[0]
        assert result.replaced == []

    def test_older_remote_is_ignored(self):
        local = _doc([_box("x", 200, "local")])
        remote = _doc([_box("x", 100, "remote")])

        assert merge_vaults(local, remote).contents[0].title == "local"

    def test_replacement_keeps_local_position(self):
        local = _doc([_box("a"), _box("b"), _box("c")])
        remote = _doc([_box("c"), _box("b", 300, "newer b"), _box("a")])

        result = merge_vaults(local, remote)

        assert [b.id for b in result.contents] == ["a", "b", "c"]
        assert result.contents[1].title == "newer b"

    def test_remote_boxes_are_copied(self):
        remote_box = _box("x", 200)
        result = merge_vaults(_doc([_box("x", 100)]), _doc([remote_box]))

        assert result.contents[0] == remote_box
        assert result.contents[0] is not remote_box


class TestOneSided:
    """Boxes present on only one side."""

    def test_remote_only_box_is_added_at_the_end(self):
        local = _doc([_box("a")])
        remote = _doc([_box("b"), _box("a")])

        result = merge_vaults(local, remote)

        assert [b.id for b in result.contents] == ["a", "b"]
        assert result.added == ["b"]

    def test_local_only_box_is_kept(self):
        result = merge_vaults(_doc([_box("a"), _box("b")]), _doc([_box("a")]))
        assert [b.id for b in result.contents] == ["a", "b"]

    def test_local_box_tombstoned_remotely_is_dropped(self):
        local = _doc([_box("a"), _box("b")])
        remote = _doc([_box("a")], deleted=["b"])

        result = merge_vaults(local, remote)

        assert [b.id for b in result.contents] == ["a"]
        assert result.dropped == ["b"]
        assert result.deleted == ["b"]

    def test_remote_box_tombstoned_locally_is_not_resurrected(self):
        local = _doc([_box("a")], deleted=["b"])
        remote = _doc([_box("a"), _box("b", 500)])

        result = merge_vaults(local, remote)

        assert [b.id for b in result.contents] == ["a"]
        assert result.added == []


class TestTombstoneLaw:
    """No tombstoned id survives a merge, whichever side carries it."""

    def test_tombstone_beats_box_on_both_sides(self):
        local = _doc([_box("a", 100)], deleted=["a"])
        remote = _doc([_box("a", 900)])

        result = merge_vaults(local, remote)

        assert result.contents == []
        assert result.dropped == ["a"]

    @pytest.mark.parametrize("swap", [False, True])
    def test_result_never_contains_a_tombstone(self, swap):
        left = _doc([_box("a"), _box("b"), _box("c", 150)], deleted=["d"])
        right = _doc([_box("c", 300), _box("d"), _box("e")], deleted=["b", "e"])
        local, remote = (right, left) if swap else (left, right)

        result = merge_vaults(local, remote)

        ids = {b.id for b in result.contents}
        assert ids.isdisjoint(result.deleted)
        assert ids == {"a", "c"}
        assert set(result.deleted) == {"b", "d", "e"}

    def test_outcome_is_commutative(self):
        left = _doc([_box("a"), _box("c", 150, "old c")], deleted=["d"])
        right = _doc([_box("c", 300, "new c"), _box("d"), _box("e")], deleted=[])

        forward = merge_vaults(left, right)
        backward = merge_vaults(right, left)

        by_id = lambda boxes: {b.id: b.serialize() for b in boxes}
        assert by_id(forward.contents) == by_id(backward.contents)
        assert set(forward.deleted) == set(backward.deleted)


class TestNameResolution:

    def test_newer_remote_name_wins(self):
        result = merge_vaults(_doc(name="Local", updated_at=100), _doc(name="Remote", updated_at=200))
        assert result.name == "Remote"

    def test_tie_keeps_local_name(self):
        result = merge_vaults(_doc(name="Local", updated_at=100), _doc(name="Remote", updated_at=100))
        assert result.name == "Local"

    def test_older_remote_name_is_ignored(self):
        result = merge_vaults(_doc(name="Local", updated_at=300), _doc(name="Remote", updated_at=200))
        assert result.name == "Local"


# ── Vault.merge ─────────────────────────────────────────────────────


class TestVaultMerge:
    """Merge through the Vault API, with persistence."""

    def test_idempotent_with_identical_copy(self, vault, tmp_path, key, clock):
        a = vault.add({"type": "note", "title": "A"}, key)
        vault.add({"type": "note", "title": "B"}, key)
        vault.remove(a.id, key)
        copy = Vault.load(tmp_path, vault.id, key)
        before = vault.to_dict()
        clock.set(T1)

        result = vault.merge(copy, key)

        after = vault.to_dict()
        assert after["contents"] == before["contents"]
        assert after["deleted"] == before["deleted"]
        assert after["updatedAt"] == T1
        assert not result.changed

    def test_merge_with_itself(self, vault, key):
        vault.add({"type": "note", "title": "A"}, key)
        before = vault.to_dict()

        vault.merge(vault, key)

        assert vault.to_dict()["contents"] == before["contents"]

    def test_merge_persists(self, vault, tmp_path, key):
        remote = vault.to_dict()
        remote["contents"] = [{"id": "r1", "type": "note", "title": "From laptop"}]

        vault.merge(remote, key)

        assert Vault.load(tmp_path, vault.id, key).get("r1").title == "From laptop"

    def test_local_edits_do_not_touch_remote_vault(self, tmp_path, key, clock, store):
        ids = SequentialIds("dev")
        local = Vault.initialize(tmp_path / "phone", "P", key, clock=clock, id_factory=ids)
        write_vault_file(tmp_path / "laptop", local.to_dict(), key, store)
        remote = Vault.load(tmp_path / "laptop", local.id, key, clock=clock, id_factory=ids)
        box = remote.add({"type": "note", "title": "Shared"}, key)

        local.merge(remote, key)
        clock.set(T1)
        local.update(box.id, {"title": "Edited on phone"}, key)

        assert remote.get(box.id).title == "Shared"

    def test_two_devices_converge(self, tmp_path, key, other_key, store):
        clock = FakeClock(T0)
        ids = SequentialIds("dev")
        phone = Vault.initialize(tmp_path / "phone", "Personal", key, clock=clock, id_factory=ids)
        shared = phone.add({"type": "login", "title": "Github", "password": "one"}, key)
        doomed = phone.add({"type": "note", "title": "Temp"}, key)

        laptop_dir = tmp_path / "laptop"
        write_vault_file(laptop_dir, phone.to_dict(), other_key, store)
        laptop = Vault.load(laptop_dir, phone.id, other_key, clock=clock, id_factory=ids)

        clock.set(T0 + 1000)
        phone.remove(doomed.id, key)
        clock.set(T0 + 2000)
        laptop.update(shared.id, {"password": "two"}, other_key)
        laptop_note = laptop.add({"type": "note", "title": "Laptop only"}, other_key)

        phone.merge(laptop, key)
        laptop.merge(phone, other_key)

        for device in (phone, laptop):
            assert [b.id for b in device.contents] == [shared.id, laptop_note.id]
            assert device.get(shared.id)["password"] == "two"
            assert device.deleted == [doomed.id]

    def test_invalid_remote_document_raises(self, vault, key):
        with pytest.raises(MalformedVaultError):
            vault.merge({"id": "v"}, key)

    def test_other_vault_is_rejected(self, vault, tmp_path, key, clock):
        vault.add({"type": "note", "title": "Mine"}, key)
        before = vault.serialize()
        stranger = Vault.initialize(
            tmp_path / "other", "Work", key, clock=clock, id_factory=SequentialIds("other")
        )
        stranger.add({"type": "note", "title": "Theirs"}, key)
        clock.set(T1)

        with pytest.raises(MalformedVaultError):
            vault.merge(stranger, key)
        with pytest.raises(MalformedVaultError):
            vault.merge(stranger.to_dict(), key)

        assert vault.serialize() == before
        assert Vault.load(tmp_path, vault.id, key).serialize() == before


class TestFixtureScenario:
    """Local vault with BOX_1..BOX_5, remote with newer BOX_2 and BOX_3."""

    @pytest.fixture
    def local_vault(self, tmp_path, key, store):
        write_vault_file(tmp_path, load_fixture("local.json"), key, store)
        return Vault.load(tmp_path, "VAULT_1", key, store=store, clock=FakeClock(LATER))

    @pytest.fixture
    def remote(self):
        return load_fixture("remote.json")

    def test_merges_contents_of_vaults(self, local_vault, remote, key):
        local_before = load_fixture("local.json")["contents"]

        local_vault.merge(remote, key)

        contents = [box.serialize() for box in local_vault.contents]
        assert len(contents) == 5
        assert [c["id"] for c in contents] == ["BOX_1", "BOX_2", "BOX_3", "BOX_4", "BOX_5"]
        assert contents[0] == local_before[0]
        assert contents[1] == remote["contents"][1]
        assert contents[1]["title"] == "Github Updated"
        assert contents[1]["updatedAt"] == 1641081660000
        assert contents[2] == remote["contents"][2]
        assert contents[2]["password"] == "google_password_updated"
        assert contents[2]["updatedAt"] == 1641081720000
        assert contents[3] == local_before[3]
        assert contents[4] == local_before[4]

    def test_remembers_deleted_items(self, local_vault, remote, key):
        local_vault.merge(remote, key)
        assert local_vault.deleted == ["BOX_6", "BOX_7"]

    def test_reports_what_changed(self, local_vault, remote, key):
        result = local_vault.merge(remote, key)

        assert result.replaced == ["BOX_2", "BOX_3"]
        assert result.added == []
        assert result.dropped == []

    def test_bumps_updated_at(self, local_vault, remote, key):
        local_vault.merge(remote, key)
        assert local_vault.updated_at == LATER
