from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.test import override_settings

from registry import services
from registry.errors import (
    AlreadyPaused,
    DuplicateKey,
    Forbidden,
    Frozen,
    InvalidArgument,
    NotFound,
    OutOfRange,
)
from registry.models import Entry, Moderator, OwnerKey, RegistryState
from registry.tests.base import ADMIN, RegistryTestCase


def owner_keys(owner):
    return [services.get_key_by_owner(owner, i) for i in range(services.get_key_count(owner))]


class CreateEntryTests(RegistryTestCase):
    def test_create_then_get_returns_first_version(self):
        services.create_entry("alice", "hotline:region1", "tel:123-456")

        entry = services.get_entry("hotline:region1")
        self.assertEqual(entry.value, "tel:123-456")
        self.assertEqual(entry.owner, "alice")
        self.assertEqual(entry.version, 1)
        self.assertFalse(entry.frozen)
        self.assertEqual(entry.created_at, entry.updated_at)
        self.assertGreaterEqual(entry.created_at, 1)

    def test_empty_value_is_allowed(self):
        entry = services.create_entry("alice", "blank", "")
        self.assertEqual(entry.value, "")

    def test_empty_key_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", "", "x")
        self.assertFalse(Entry.objects.exists())

    def test_non_string_key_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", None, "x")

    def test_value_length_bound(self):
        services.create_entry("alice", "fits", "x" * 16)
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", "too-long", "x" * 17)
        self.assertFalse(Entry.objects.filter(key="too-long").exists())

    def test_key_length_bound(self):
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", "k" * 33, "v")

    def test_duplicate_key_is_rejected(self):
        services.create_entry("alice", "k1", "v1")
        with self.assertRaises(DuplicateKey):
            services.create_entry("bob", "k1", "other")

        entry = services.get_entry("k1")
        self.assertEqual(entry.owner, "alice")
        self.assertEqual(entry.value, "v1")
        self.assertEqual(services.get_key_count("bob"), 0)

    def test_create_appends_to_owner_index(self):
        services.create_entry("alice", "a", "1")
        services.create_entry("alice", "b", "2")
        self.assertEqual(owner_keys("alice"), ["a", "b"])


class UpdateEntryTests(RegistryTestCase):
    def setUp(self):
        super().setUp()
        self.created = services.create_entry("alice", "k1", "v1")

    def test_each_update_bumps_version_by_one(self):
        for expected_version, value in enumerate(["v2", "v3", "v4"], start=2):
            entry = services.update_entry("alice", "k1", value)
            self.assertEqual(entry.version, expected_version)

        entry = services.get_entry("k1")
        self.assertEqual(entry.value, "v4")
        self.assertEqual(entry.version, 4)
        self.assertEqual(entry.created_at, self.created.created_at)
        self.assertGreater(entry.updated_at, entry.created_at)

    def test_missing_key(self):
        with self.assertRaises(NotFound):
            services.update_entry("alice", "missing", "v")

    def test_non_owner_is_forbidden(self):
        with self.assertRaises(Forbidden):
            services.update_entry("bob", "k1", "v2")
        self.assertEqual(services.get_entry("k1").version, 1)

    def test_oversized_value_leaves_entry_untouched(self):
        with self.assertRaises(InvalidArgument):
            services.update_entry("alice", "k1", "x" * 17)
        entry = services.get_entry("k1")
        self.assertEqual(entry.value, "v1")
        self.assertEqual(entry.version, 1)

    def test_checks_run_in_order(self):
        services.add_moderator(ADMIN, "mod")
        services.set_key_frozen("mod", "k1", True)

        # Ownership is checked before the freeze, the freeze before the value.
        with self.assertRaises(Forbidden):
            services.update_entry("bob", "k1", "v2")
        with self.assertRaises(Frozen):
            services.update_entry("alice", "k1", "x" * 17)


class DeleteEntryTests(RegistryTestCase):
    def test_delete_removes_entry_and_index_slot(self):
        services.create_entry("alice", "k1", "v1")
        services.delete_entry("alice", "k1")

        with self.assertRaises(NotFound):
            services.get_entry("k1")
        self.assertEqual(services.get_key_count("alice"), 0)
        self.assertFalse(OwnerKey.objects.exists())

    def test_deleted_key_can_be_registered_again(self):
        services.create_entry("alice", "k1", "v1")
        services.update_entry("alice", "k1", "v2")
        services.delete_entry("alice", "k1")

        entry = services.create_entry("bob", "k1", "fresh")
        self.assertEqual(entry.version, 1)
        self.assertEqual(entry.owner, "bob")

    def test_non_owner_is_forbidden(self):
        services.create_entry("alice", "k1", "v1")
        with self.assertRaises(Forbidden):
            services.delete_entry("bob", "k1")
        self.assertEqual(services.get_key_count("alice"), 1)

    def test_missing_key(self):
        with self.assertRaises(NotFound):
            services.delete_entry("alice", "missing")


class TransferEntryTests(RegistryTestCase):
    def test_ownership_follows_transfer(self):
        services.create_entry("alice", "k1", "v1")
        self.assertEqual(services.get_entry("k1").version, 1)
        self.assertEqual(services.update_entry("alice", "k1", "v2").version, 2)

        services.transfer_entry("alice", "k1", "bob")
        self.assertEqual(services.update_entry("bob", "k1", "v3").version, 3)
        with self.assertRaises(Forbidden):
            services.update_entry("alice", "k1", "v4")
        with self.assertRaises(Forbidden):
            services.delete_entry("alice", "k1")
        with self.assertRaises(Forbidden):
            services.transfer_entry("alice", "k1", "alice")

    def test_transfer_keeps_value_and_version(self):
        services.create_entry("alice", "k1", "v1")
        services.update_entry("alice", "k1", "v2")
        before = services.get_entry("k1")

        entry = services.transfer_entry("alice", "k1", "bob")
        self.assertEqual(entry.value, "v2")
        self.assertEqual(entry.version, 2)
        self.assertEqual(entry.owner, "bob")
        self.assertGreater(entry.updated_at, before.updated_at)

    def test_transfer_moves_index_slot(self):
        services.create_entry("alice", "k1", "v1")
        services.create_entry("bob", "b1", "v1")
        services.transfer_entry("alice", "k1", "bob")

        self.assertEqual(services.get_key_count("alice"), 0)
        self.assertEqual(owner_keys("bob"), ["b1", "k1"])

    def test_empty_new_owner_is_rejected(self):
        services.create_entry("alice", "k1", "v1")
        with self.assertRaises(InvalidArgument):
            services.transfer_entry("alice", "k1", "")
        self.assertEqual(services.get_entry("k1").owner, "alice")

    def test_transfer_to_self_moves_key_to_end(self):
        for key in ("a", "b", "c"):
            services.create_entry("alice", key, "v")
        services.transfer_entry("alice", "a", "alice")
        self.assertEqual(owner_keys("alice"), ["c", "b", "a"])


class PauseTests(RegistryTestCase):
    def setUp(self):
        super().setUp()
        services.create_entry("alice", "existing", "v1")

    def test_only_admin_can_pause(self):
        with self.assertRaises(Forbidden):
            services.set_paused("alice", True)
        self.assertFalse(services.get_registry_status()["paused"])

    def test_pause_blocks_creation_for_everyone(self):
        services.set_paused(ADMIN, True)
        with self.assertRaises(AlreadyPaused):
            services.create_entry("bob", "new", "v")
        with self.assertRaises(AlreadyPaused):
            services.create_entry(ADMIN, "new", "v")

        services.set_paused(ADMIN, False)
        entry = services.create_entry("bob", "new", "v")
        self.assertEqual(entry.version, 1)

    def test_pause_does_not_block_existing_entries(self):
        services.add_moderator(ADMIN, "mod")
        services.create_entry("alice", "doomed", "v")
        services.set_paused(ADMIN, True)

        self.assertEqual(services.update_entry("alice", "existing", "v2").version, 2)
        services.set_key_frozen("mod", "existing", True)
        services.set_key_frozen("mod", "existing", False)
        services.transfer_entry("alice", "existing", "bob")
        services.delete_entry("alice", "doomed")
        self.assertEqual(owner_keys("bob"), ["existing"])

    def test_invalid_arguments_are_reported_before_pause(self):
        services.set_paused(ADMIN, True)
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", "", "v")


class ModerationTests(RegistryTestCase):
    def setUp(self):
        super().setUp()
        services.create_entry("erin", "counselor:slot:2025010109", "available")
        self.key = "counselor:slot:2025010109"

    def test_only_admin_manages_moderators(self):
        with self.assertRaises(Forbidden):
            services.add_moderator("erin", "erin")
        with self.assertRaises(Forbidden):
            services.remove_moderator("erin", "dave")
        self.assertFalse(services.is_moderator("erin"))

    def test_add_moderator_is_idempotent(self):
        first = services.add_moderator(ADMIN, "dave")
        second = services.add_moderator(ADMIN, "dave")
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Moderator.objects.count(), 1)

    def test_empty_moderator_identity_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            services.add_moderator(ADMIN, "")

    def test_freeze_blocks_owner_until_unfrozen(self):
        services.add_moderator(ADMIN, "dave")
        services.set_key_frozen("dave", self.key, True)
        self.assertTrue(services.get_entry(self.key).frozen)

        with self.assertRaises(Frozen):
            services.update_entry("erin", self.key, "busy")
        with self.assertRaises(Frozen):
            services.delete_entry("erin", self.key)
        with self.assertRaises(Frozen):
            services.transfer_entry("erin", self.key, ADMIN)
        self.assertEqual(services.get_key_count("erin"), 1)

        services.set_key_frozen("dave", self.key, False)
        entry = services.update_entry("erin", self.key, "busy")
        self.assertEqual(entry.version, 2)
        self.assertFalse(entry.frozen)

    def test_freeze_leaves_version_and_timestamps(self):
        services.add_moderator(ADMIN, "dave")
        before = services.get_entry(self.key)
        entry = services.set_key_frozen("dave", self.key, True)
        self.assertEqual(entry.version, before.version)
        self.assertEqual(entry.updated_at, before.updated_at)

    def test_owner_cannot_freeze_own_entry(self):
        with self.assertRaises(Forbidden):
            services.set_key_frozen("erin", self.key, True)
        self.assertFalse(services.get_entry(self.key).frozen)

    def test_admin_is_not_implicitly_a_moderator(self):
        with self.assertRaises(Forbidden):
            services.set_key_frozen(ADMIN, self.key, True)

    def test_missing_key_reported_before_authorization(self):
        with self.assertRaises(NotFound):
            services.set_key_frozen("nobody", "missing", True)

    def test_removed_moderator_loses_authority(self):
        services.add_moderator(ADMIN, "dave")
        services.remove_moderator(ADMIN, "dave")
        services.remove_moderator(ADMIN, "dave")
        self.assertFalse(services.is_moderator("dave"))
        with self.assertRaises(Forbidden):
            services.set_key_frozen("dave", self.key, True)


class OwnerIndexTests(RegistryTestCase):
    def test_count_and_positional_lookup(self):
        for i in range(3):
            services.create_entry("carol", f"resource:{i}", "link")

        self.assertEqual(services.get_key_count("carol"), 3)
        for i in range(3):
            self.assertEqual(services.get_key_by_owner("carol", i), f"resource:{i}")
        with self.assertRaises(OutOfRange):
            services.get_key_by_owner("carol", 3)

    def test_unknown_owner_has_no_keys(self):
        self.assertEqual(services.get_key_count("nobody"), 0)
        with self.assertRaises(OutOfRange):
            services.get_key_by_owner("nobody", 0)

    def test_negative_index_is_out_of_range(self):
        services.create_entry("carol", "k", "v")
        with self.assertRaises(OutOfRange):
            services.get_key_by_owner("carol", -1)

    def test_middle_removal_swaps_in_last_key(self):
        for key in ("a", "b", "c", "d"):
            services.create_entry("carol", key, "v")
        self.assertEqual(owner_keys("carol"), ["a", "b", "c", "d"])

        services.delete_entry("carol", "b")
        self.assertEqual(owner_keys("carol"), ["a", "d", "c"])

        services.transfer_entry("carol", "a", "dan")
        self.assertEqual(owner_keys("carol"), ["c", "d"])
        self.assertEqual(owner_keys("dan"), ["a"])

    def test_last_removal_keeps_other_positions(self):
        for key in ("a", "b", "c"):
            services.create_entry("carol", key, "v")
        services.delete_entry("carol", "c")
        self.assertEqual(owner_keys("carol"), ["a", "b"])

    def test_index_matches_entries_after_mixed_operations(self):
        services.add_moderator(ADMIN, "mod")
        for i in range(6):
            services.create_entry("carol" if i % 2 else "dan", f"k{i}", "v")
        services.transfer_entry("carol", "k1", "dan")
        services.delete_entry("dan", "k2")
        services.set_key_frozen("mod", "k3", True)
        with self.assertRaises(Frozen):
            services.transfer_entry("carol", "k3", "dan")
        services.transfer_entry("dan", "k0", "erin")
        services.delete_entry("carol", "k5")

        for owner in ("carol", "dan", "erin"):
            owned = set(Entry.objects.filter(owner=owner).values_list("key", flat=True))
            self.assertEqual(services.get_key_count(owner), len(owned))
            self.assertEqual(set(owner_keys(owner)), owned)
        self.assertEqual(OwnerKey.objects.count(), Entry.objects.count())

    def test_list_owner_keys_pages(self):
        for i in range(5):
            services.create_entry("carol", f"k{i}", "v")

        keys, next_offset, has_more = services.list_owner_keys("carol", limit=2)
        self.assertEqual(keys, ["k0", "k1"])
        self.assertTrue(has_more)
        self.assertEqual(next_offset, 2)

        keys, next_offset, has_more = services.list_owner_keys("carol", offset=4, limit=2)
        self.assertEqual(keys, ["k4"])
        self.assertFalse(has_more)
        self.assertIsNone(next_offset)

    def test_list_owner_keys_rejects_bad_bounds(self):
        with self.assertRaises(InvalidArgument):
            services.list_owner_keys("carol", offset=-1)
        with self.assertRaises(InvalidArgument):
            services.list_owner_keys("carol", limit=0)


class RegistryStateTests(RegistryTestCase):
    def test_lazy_initialization_uses_configured_admin(self):
        self.assertFalse(RegistryState.objects.exists())
        status = services.get_registry_status()
        self.assertEqual(status["admin"], ADMIN)
        self.assertFalse(status["paused"])
        self.assertEqual(status["sequence"], 0)

    def test_initialize_fixes_admin(self):
        state, created = services.initialize_registry("root")
        self.assertTrue(created)
        self.assertEqual(state.admin, "root")

        _, created = services.initialize_registry("root")
        self.assertFalse(created)
        with self.assertRaises(Forbidden):
            services.initialize_registry("mallory")
        self.assertEqual(services.get_registry_status()["admin"], "root")

        # The configured admin has no say once another admin is fixed.
        with self.assertRaises(Forbidden):
            services.set_paused(ADMIN, True)
        services.set_paused("root", True)

    def test_initialize_rejects_empty_admin(self):
        with self.assertRaises(InvalidArgument):
            services.initialize_registry("")

    @override_settings(REGISTRY_ADMIN="")
    def test_missing_admin_configuration(self):
        with self.assertRaises(ImproperlyConfigured):
            services.create_entry("alice", "k", "v")

    def test_sequence_advances_only_on_committed_calls(self):
        services.create_entry("alice", "k1", "v1")
        services.update_entry("alice", "k1", "v2")
        with self.assertRaises(Forbidden):
            services.update_entry("bob", "k1", "v3")
        with self.assertRaises(DuplicateKey):
            services.create_entry("bob", "k1", "v")

        status = services.get_registry_status()
        self.assertEqual(status["sequence"], 2)
        self.assertEqual(status["entry_count"], 1)
        self.assertEqual(services.get_entry("k1").updated_at, 2)

    def test_status_lists_moderators(self):
        services.add_moderator(ADMIN, "zed")
        services.add_moderator(ADMIN, "amy")
        self.assertEqual(services.get_registry_status()["moderators"], ["amy", "zed"])


class EntryCacheTests(RegistryTestCase):
    def read_committed(self, key):
        # Reads populate the cache once the surrounding transaction commits.
        with self.captureOnCommitCallbacks(execute=True):
            return services.get_entry(key)

    def test_repeated_reads_hit_cache(self):
        services.create_entry("alice", "hot", "v1")
        self.read_committed("hot")
        with self.assertNumQueries(0):
            self.assertEqual(services.get_entry("hot").value, "v1")

    def test_writes_invalidate_cached_entry(self):
        services.add_moderator(ADMIN, "mod")
        services.create_entry("alice", "hot", "v1")

        self.read_committed("hot")
        services.update_entry("alice", "hot", "v2")
        self.assertEqual(self.read_committed("hot").value, "v2")
        services.set_key_frozen("mod", "hot", True)
        self.assertTrue(self.read_committed("hot").frozen)
        services.set_key_frozen("mod", "hot", False)
        services.transfer_entry("alice", "hot", "bob")
        self.assertEqual(self.read_committed("hot").owner, "bob")
        services.delete_entry("bob", "hot")
        with self.assertRaises(NotFound):
            services.get_entry("hot")

    def test_rolled_back_write_is_never_served(self):
        services.create_entry("alice", "k", "v1")
        self.read_committed("k")

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(RuntimeError):
                with transaction.atomic():
                    services.update_entry("alice", "k", "v2")
                    self.assertEqual(services.get_entry("k").value, "v2")
                    raise RuntimeError("abort")

        self.assertIsNone(cache.get(services._get_cache_key("k")))
        entry = self.read_committed("k")
        self.assertEqual(entry.value, "v1")
        self.assertEqual(entry.version, 1)
        self.assertEqual(services.get_entry("k").value, "v1")

    def test_commit_drops_copy_cached_during_the_write(self):
        services.create_entry("alice", "k", "v1")
        stale = self.read_committed("k")

        with self.captureOnCommitCallbacks(execute=True):
            services.update_entry("alice", "k", "v2")
            # Another worker reads the old committed row before this commit.
            cache.set(services._get_cache_key("k"), stale, services.CACHE_TIMEOUT)

        entry = services.get_entry("k")
        self.assertEqual(entry.value, "v2")
        self.assertEqual(entry.version, 2)


class KeyLengthConfigurationTests(RegistryTestCase):
    @override_settings(REGISTRY_MAX_KEY_LENGTH=300)
    def test_bound_above_key_column_is_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            services.create_entry("alice", "k", "v")
        self.assertFalse(Entry.objects.exists())

    @override_settings(REGISTRY_MAX_KEY_LENGTH=255)
    def test_bound_equal_to_key_column_is_accepted(self):
        services.create_entry("alice", "k" * 255, "v")
        with self.assertRaises(InvalidArgument):
            services.create_entry("alice", "k" * 256, "v")

class ConcatKeysTests(RegistryTestCase):
    def test_joins_parts(self):
        self.assertEqual(services.concat_keys("hotline", "region1"), "hotline:region1")
        self.assertEqual(services.concat_keys("counselor", "slot", "2025010109"), "counselor:slot:2025010109")

    def test_rejects_bad_parts(self):
        with self.assertRaises(InvalidArgument):
            services.concat_keys("only")
        with self.assertRaises(InvalidArgument):
            services.concat_keys("a", "")
        with self.assertRaises(InvalidArgument):
            services.concat_keys("a" * 20, "b" * 20)
