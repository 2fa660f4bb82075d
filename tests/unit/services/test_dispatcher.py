"""
Unit tests for OperationDispatcher.

The store call is a MagicMock so each test can assert whether the store was
consulted and in which order relative to the cache.
"""

from unittest.mock import MagicMock

import pytest

from cachesync.domain.value_objects import ChangeSet, OperationKind
from cachesync.services.cache.dispatcher import OperationDispatcher
from tests.fixtures.entities import Account, AuditNote, Item, Member, Player, Tag


def store_call(return_value=None, side_effect=None):
    return MagicMock(return_value=return_value, side_effect=side_effect)


class TestPassThrough:
    def test_no_kind_is_plain_invoke(self, dispatcher, cache):
        invoke = store_call("result")
        assert dispatcher.dispatch(None, invoke, Player(player_id=1)) == "result"
        invoke.assert_called_once_with()
        assert sum(cache.calls.values()) == 0

    def test_disabled_dispatcher_is_plain_invoke(self, cache, resolver):
        dispatcher = OperationDispatcher(cache, resolver=resolver, enabled=False)
        invoke = store_call(Player(player_id=1))

        dispatcher.dispatch(OperationKind.INSERT, invoke, Player(player_id=1))
        dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=1))

        assert invoke.call_count == 2
        assert sum(cache.calls.values()) == 0

    @pytest.mark.parametrize(
        "kind",
        [
            OperationKind.INSERT_BATCH,
            OperationKind.UPDATE_BATCH,
            OperationKind.DELETE_BATCH,
        ],
    )
    def test_empty_batch_returns_empty_without_store(self, dispatcher, cache, kind):
        invoke = store_call()
        assert dispatcher.dispatch(kind, invoke, []) == []
        invoke.assert_not_called()
        assert sum(cache.calls.values()) == 0


class TestInsert:
    def test_store_then_cache(self, dispatcher, cache):
        player = Player(player_id=1, name="ann")
        order = []
        invoke = store_call(side_effect=lambda: order.append("store") or player)
        cache_set = cache.set_object

        def tracking_set(key, entity):
            order.append("cache")
            cache_set(key, entity)

        cache.set_object = tracking_set

        assert dispatcher.dispatch(OperationKind.INSERT, invoke, player) is player
        assert order == ["store", "cache"]
        assert "test:Player:1" in cache.hashes

    def test_store_failure_skips_cache(self, dispatcher, cache):
        invoke = store_call(side_effect=RuntimeError("constraint violated"))

        with pytest.raises(RuntimeError, match="constraint violated"):
            dispatcher.dispatch(OperationKind.INSERT, invoke, Player(player_id=1))

        assert cache.write_calls == 0

    def test_cache_failure_is_swallowed(self, dispatcher, cache):
        cache.fail_writes = True
        player = Player(player_id=1)

        result = dispatcher.dispatch(OperationKind.INSERT, store_call(player), player)

        assert result is player
        assert cache.calls["set_object"] == 1

    def test_unshaped_entity_only_hits_store(self, dispatcher, cache):
        note = AuditNote(note_id=1)
        invoke = store_call(note)
        assert dispatcher.dispatch(OperationKind.INSERT, invoke, note) is note
        invoke.assert_called_once()
        assert cache.write_calls == 0


class TestUpdate:
    def test_writes_only_changed_fields(self, dispatcher, cache):
        dispatcher.dispatch(
            OperationKind.INSERT,
            store_call(),
            Player(player_id=1, name="ann", level=1, gold=5),
        )

        stale = Player(player_id=1, name="someone else", level=2, gold=5)
        dispatcher.dispatch(
            OperationKind.UPDATE, store_call(stale), stale, ChangeSet(level=2)
        )

        cached = cache.get_object("test:Player:1", Player)
        assert cached == Player(player_id=1, name="ann", level=2, gold=5)

    def test_uses_change_tracker_when_changes_omitted(self, dispatcher, cache, tracker):
        player = tracker.track(Player(player_id=1, name="ann", level=1))
        dispatcher.dispatch(OperationKind.INSERT, store_call(), player)

        player.gold = 99
        dispatcher.dispatch(OperationKind.UPDATE, store_call(player), player)

        assert cache.get_object("test:Player:1", Player).gold == 99
        assert cache.calls["merge_fields"] == 1

    def test_empty_change_set_writes_nothing(self, dispatcher, cache):
        invoke = store_call()
        dispatcher.dispatch(
            OperationKind.UPDATE, invoke, Player(player_id=1), ChangeSet.empty()
        )
        invoke.assert_called_once()
        assert cache.write_calls == 0

    def test_collection_member_replaced_whole(self, dispatcher, cache):
        item = Item(owner_id=1, item_id=2, count=3)
        dispatcher.dispatch(
            OperationKind.UPDATE, store_call(item), item, ChangeSet(count=3)
        )
        assert cache.get_collection("test:Item:list:1", Item) == {"2": item}

    def test_store_failure_skips_cache(self, dispatcher, cache):
        invoke = store_call(side_effect=LookupError("missing"))
        with pytest.raises(LookupError):
            dispatcher.dispatch(
                OperationKind.UPDATE, invoke, Player(player_id=1), ChangeSet(level=2)
            )
        assert cache.write_calls == 0


class TestQuery:
    def test_hit_skips_store(self, dispatcher, cache):
        dispatcher.dispatch(
            OperationKind.INSERT, store_call(), Player(player_id=1, name="ann")
        )
        invoke = store_call()

        result = dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=1))

        assert result == Player(player_id=1, name="ann")
        invoke.assert_not_called()

    def test_miss_reads_store_and_populates_cache(self, dispatcher, cache):
        loaded = Player(player_id=2, name="bo")
        invoke = store_call(loaded)

        first = dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=2))
        second = dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=2))

        assert first == second == loaded
        invoke.assert_called_once()

    def test_miss_with_no_row_does_not_write(self, dispatcher, cache):
        result = dispatcher.dispatch(
            OperationKind.QUERY, store_call(None), Player(player_id=3)
        )
        assert result is None
        assert cache.write_calls == 0

    def test_read_failure_falls_back_to_store(self, dispatcher, cache):
        cache.fail_reads = True
        loaded = Player(player_id=1)
        invoke = store_call(loaded)

        assert dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=1)) == loaded
        invoke.assert_called_once()

    def test_collection_entity_is_shape_mismatch(self, dispatcher, cache):
        item = Item(owner_id=1, item_id=1)
        invoke = store_call(item)

        assert dispatcher.dispatch(OperationKind.QUERY, invoke, item) is item
        invoke.assert_called_once()
        assert cache.calls["get_object"] == 0

    def test_partial_hash_is_treated_as_miss(self, dispatcher, cache):
        # A merge onto an uncached key leaves only the changed field
        dispatcher.dispatch(
            OperationKind.UPDATE, store_call(), Player(player_id=1), ChangeSet(level=9)
        )
        loaded = Player(player_id=1, name="ann", level=9)
        invoke = store_call(loaded)

        result = dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=1))

        assert result == loaded
        invoke.assert_called_once()
        assert cache.get_object("test:Player:1", Player) == loaded


class TestQueryList:
    @pytest.fixture
    def members(self):
        return [
            Member(group_id=1, member_id=1, a=1, b=2),
            Member(group_id=1, member_id=2, a=1, b=3),
            Member(group_id=1, member_id=3, a=2, b=2),
        ]

    def test_miss_populates_collection(self, dispatcher, cache, members):
        invoke = store_call(members)
        template = Member(group_id=1, member_id=0)

        first = dispatcher.dispatch(OperationKind.QUERY_LIST, invoke, template, ChangeSet())
        second = dispatcher.dispatch(OperationKind.QUERY_LIST, invoke, template, ChangeSet())

        assert first == members
        assert sorted(m.member_id for m in second) == [1, 2, 3]
        invoke.assert_called_once()

    def test_hit_with_constraints_filters(self, dispatcher, cache, members):
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), members)
        invoke = store_call()
        template = Member(group_id=1, member_id=0)

        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, template, ChangeSet(a=1)
        )
        assert sorted(m.member_id for m in result) == [1, 2]

        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, template, ChangeSet(a=1, b=3)
        )
        assert [m.member_id for m in result] == [2]
        invoke.assert_not_called()

    def test_hit_without_constraints_returns_all(self, dispatcher, cache, members):
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), members)
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST,
            store_call(),
            Member(group_id=1, member_id=0),
            ChangeSet.empty(),
        )
        assert len(result) == 3

    def test_constraints_from_tracker(self, dispatcher, cache, tracker, members):
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), members)
        template = tracker.track(Member(group_id=1, member_id=0))
        template.b = 2

        result = dispatcher.dispatch(OperationKind.QUERY_LIST, store_call(), template)

        assert sorted(m.member_id for m in result) == [1, 3]

    def test_constrained_miss_is_not_backfilled(self, dispatcher, cache, members):
        invoke = store_call(members[:2])
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST,
            invoke,
            Member(group_id=1, member_id=0),
            ChangeSet(a=1),
        )
        assert result == members[:2]
        assert cache.write_calls == 0

    def test_unfiltered_query_after_filtered_miss_reads_store(
        self, dispatcher, cache, members
    ):
        template = Member(group_id=1, member_id=0)
        dispatcher.dispatch(
            OperationKind.QUERY_LIST, store_call(members[:2]), template, ChangeSet(a=1)
        )

        invoke = store_call(members)
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, template, ChangeSet()
        )

        assert result == members
        invoke.assert_called_once()

    def test_singleton_entity_is_shape_mismatch(self, dispatcher, cache):
        players = [Player(player_id=1)]
        invoke = store_call(players)

        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, Player(player_id=1), ChangeSet()
        )

        assert result == players
        invoke.assert_called_once()
        assert cache.calls["get_collection"] == 0

    def test_read_failure_falls_back_to_store(self, dispatcher, cache, members):
        cache.fail_reads = True
        invoke = store_call(members)
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, Member(group_id=1, member_id=0), ChangeSet()
        )
        assert result == members
        invoke.assert_called_once()


class TestDelete:
    def test_delete_then_query_goes_to_store(self, dispatcher, cache):
        player = Player(player_id=1)
        dispatcher.dispatch(OperationKind.INSERT, store_call(), player)
        dispatcher.dispatch(OperationKind.DELETE, store_call(True), player)

        invoke = store_call(None)
        result = dispatcher.dispatch(OperationKind.QUERY, invoke, Player(player_id=1))

        assert result is None
        invoke.assert_called_once()

    def test_store_failure_keeps_cache(self, dispatcher, cache):
        player = Player(player_id=1)
        dispatcher.dispatch(OperationKind.INSERT, store_call(), player)

        with pytest.raises(RuntimeError):
            dispatcher.dispatch(
                OperationKind.DELETE, store_call(side_effect=RuntimeError()), player
            )
        assert "test:Player:1" in cache.hashes

    def test_delete_collection_member(self, dispatcher, cache):
        items = [Item(owner_id=1, item_id=i) for i in range(2)]
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), items)
        dispatcher.dispatch(OperationKind.DELETE, store_call(True), items[0])

        assert set(cache.hashes["test:Item:list:1"]) == {"1"}


class TestBatches:
    def test_insert_batch_then_query_list_returns_all(self, dispatcher, cache):
        items = [Item(owner_id=5, item_id=i, kind=f"k{i}") for i in range(4)]
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(items), items)

        invoke = store_call()
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, Item(owner_id=5, item_id=0), ChangeSet()
        )

        assert sorted(result, key=lambda item: item.item_id) == items
        invoke.assert_not_called()

    def test_update_batch_with_change_sets(self, dispatcher, cache):
        players = [Player(player_id=i, level=1) for i in range(2)]
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), players)

        players[1].level = 7
        dispatcher.dispatch(
            OperationKind.UPDATE_BATCH,
            store_call(players),
            players,
            [ChangeSet.empty(), ChangeSet(level=7)],
        )

        assert cache.get_object("test:Player:1", Player).level == 7
        assert cache.calls["merge_fields"] == 1

    def test_update_batch_misaligned_change_sets(self, dispatcher):
        invoke = store_call()
        with pytest.raises(ValueError):
            dispatcher.dispatch(
                OperationKind.UPDATE_BATCH,
                invoke,
                [Player(player_id=1), Player(player_id=2)],
                [ChangeSet(level=2)],
            )
        invoke.assert_not_called()

    def test_delete_batch(self, dispatcher, cache):
        players = [Player(player_id=i) for i in range(3)]
        dispatcher.dispatch(OperationKind.INSERT_BATCH, store_call(), players)
        dispatcher.dispatch(OperationKind.DELETE_BATCH, store_call(2), players[:2])

        assert set(cache.hashes) == {"test:Player:2"}

    def test_batch_store_failure_skips_cache(self, dispatcher, cache):
        with pytest.raises(RuntimeError):
            dispatcher.dispatch(
                OperationKind.INSERT_BATCH,
                store_call(side_effect=RuntimeError()),
                [Player(player_id=1)],
            )
        assert cache.write_calls == 0


class TestConcurrentWriters:
    def test_last_cache_write_wins(self, dispatcher, cache):
        first = Player(player_id=1, name="first")
        second = Player(player_id=1, name="second")

        # Store commits first then second; cache writes land in reverse
        dispatcher.dispatch(OperationKind.INSERT, store_call(second), second)
        dispatcher.dispatch(OperationKind.INSERT, store_call(first), first)

        cached = dispatcher.dispatch(OperationKind.QUERY, store_call(), Player(player_id=1))
        assert cached.name == "first"


class TestFreeTextIdentities:
    def test_query_with_whitespace_identity(self, dispatcher, cache):
        loaded = Account(username="john doe", credits=5)
        invoke = store_call(loaded)

        first = dispatcher.dispatch(OperationKind.QUERY, invoke, Account("john doe"))
        second = dispatcher.dispatch(OperationKind.QUERY, invoke, Account("john doe"))

        assert first == second == loaded
        invoke.assert_called_once()
        assert "test:Account:john%20doe" in cache.hashes

    def test_insert_with_whitespace_identity(self, dispatcher, cache):
        account = Account(username="john doe", credits=5)

        result = dispatcher.dispatch(OperationKind.INSERT, store_call(account), account)

        assert result is account
        assert cache.get_object("test:Account:john%20doe", Account) == account

    def test_empty_member_identity(self, dispatcher, cache):
        tag = Tag(owner=1, label="", weight=3)
        dispatcher.dispatch(OperationKind.INSERT, store_call(tag), tag)

        invoke = store_call()
        result = dispatcher.dispatch(
            OperationKind.QUERY_LIST, invoke, Tag(owner=1, label="x"), ChangeSet()
        )

        assert result == [tag]
        invoke.assert_not_called()

    def test_delete_with_empty_member_identity(self, dispatcher, cache):
        tag = Tag(owner=1, label="")
        dispatcher.dispatch(OperationKind.INSERT, store_call(tag), tag)
        dispatcher.dispatch(OperationKind.DELETE, store_call(True), tag)
        assert "test:Tag:list:1" not in cache.hashes

    def test_unusable_key_falls_back_to_store(self, dispatcher, cache):
        account = Account(username="x" * 600)
        invoke = store_call(account)

        assert dispatcher.dispatch(OperationKind.QUERY, invoke, account) is account
        assert dispatcher.dispatch(OperationKind.QUERY, invoke, account) is account
        assert invoke.call_count == 2
        assert cache.write_calls == 0

    def test_unusable_key_does_not_fail_committed_write(self, dispatcher, cache):
        account = Account(username="x" * 600)
        invoke = store_call(account)

        assert dispatcher.dispatch(OperationKind.INSERT, invoke, account) is account
        assert dispatcher.dispatch(OperationKind.DELETE, store_call(True), account) is True
        invoke.assert_called_once()
        assert cache.write_calls == 0
