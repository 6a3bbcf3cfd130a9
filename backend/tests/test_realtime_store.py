"""Unit tests for realtime_store.py: paths, subscriptions, transactions, on-disconnect writes."""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from realtime_store import RealtimeStore


class Recorder:
    def __init__(self):
        self.values = []

    async def __call__(self, value):
        self.values.append(value)


# ---------------------------------------------------------------------------
# Reads & writes
# ---------------------------------------------------------------------------

class TestReadWrite:
    @pytest.mark.asyncio
    async def test_get_missing_is_none(self, store):
        assert await store.get("rooms/room1") is None

    @pytest.mark.asyncio
    async def test_set_then_get_nested(self, store):
        await store.set("rooms/room1", {"players": {"p1": {"presence": True}}})
        assert await store.get("rooms/room1/players/p1/presence") is True
        assert await store.get("rooms") == {"room1": {"players": {"p1": {"presence": True}}}}

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        await store.set("rooms/room1", {"scores": {"p1": 0}})
        snapshot = await store.get("rooms/room1")
        snapshot["scores"]["p1"] = 999
        assert await store.get("rooms/room1/scores/p1") == 0

    @pytest.mark.asyncio
    async def test_set_none_deletes_and_prunes_parents(self, store):
        await store.set("rooms/room1/selections/p1", {"text": "A"})
        await store.set("rooms/room1/selections/p1", None)
        assert await store.get("rooms/room1/selections") is None
        assert await store.get("rooms") is None

    @pytest.mark.asyncio
    async def test_none_leaves_and_empty_maps_are_dropped(self, store):
        await store.set("rooms/room1", {"forfeitedBy": None, "selections": {"p1": None}, "gameOver": False})
        assert await store.get("rooms/room1") == {"gameOver": False}

    @pytest.mark.asyncio
    async def test_update_multi_path(self, store):
        await store.set("rooms/room1", {"timeLeft": 30, "players": {"p2": {"presence": False}}})
        await store.update("rooms/room1", {"timeLeft": 29, "players/p2/presence": True})
        room = await store.get("rooms/room1")
        assert room["timeLeft"] == 29
        assert room["players"]["p2"]["presence"] is True


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_initial_value_delivered(self, store):
        await store.set("rooms/room1/timeLeft", 30)
        rec = Recorder()
        await store.subscribe("rooms/room1", rec)
        assert rec.values == [{"timeLeft": 30}]

    @pytest.mark.asyncio
    async def test_descendant_write_notifies_ancestor(self, store):
        rec = Recorder()
        await store.subscribe("rooms/room1", rec)
        await store.set("rooms/room1/selections/p1", {"text": "A"})
        assert rec.values[-1] == {"selections": {"p1": {"text": "A"}}}

    @pytest.mark.asyncio
    async def test_ancestor_write_notifies_descendant(self, store):
        rec = Recorder()
        await store.subscribe("rooms/room1/players/p2/presence", rec)
        await store.set("rooms/room1", {"players": {"p2": {"presence": True}}})
        assert rec.values == [None, True]

    @pytest.mark.asyncio
    async def test_unrelated_path_not_notified(self, store):
        rec = Recorder()
        await store.subscribe("rooms/room1", rec)
        await store.set("rooms/room2/timeLeft", 10)
        await store.set("users/01", {"energy": 10})
        assert rec.values == [None]

    @pytest.mark.asyncio
    async def test_unchanged_write_not_notified(self, store):
        await store.set("rooms/room1/gameOver", True)
        rec = Recorder()
        await store.subscribe("rooms/room1", rec)
        await store.update("rooms/room1", {"gameOver": True})
        assert len(rec.values) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, store):
        rec = Recorder()
        unsubscribe = await store.subscribe("rooms/room1", rec)
        unsubscribe()
        await store.set("rooms/room1/timeLeft", 5)
        assert rec.values == [None]

    @pytest.mark.asyncio
    async def test_writes_inside_callback_delivered_in_order(self, store):
        seen = []

        async def echo(value):
            seen.append(value)
            if value == 1:
                await store.set("counter", 2)

        await store.subscribe("counter", echo)
        await store.set("counter", 1)
        assert seen == [None, 1, 2]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, store):
        async def broken(value):
            raise RuntimeError("boom")

        rec = Recorder()
        await store.subscribe("rooms/room1", broken)
        await store.subscribe("rooms/room1", rec)
        await store.set("rooms/room1/timeLeft", 3)
        assert rec.values[-1] == {"timeLeft": 3}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

class TestTransactions:
    @pytest.mark.asyncio
    async def test_transact_commits_new_value(self, store):
        await store.set("users/01", {"energy": 3})

        def bump(profile):
            profile["energy"] += 2
            return profile

        result = await store.transact("users/01", bump)
        assert result.committed
        assert result.value == {"energy": 5}
        assert await store.get("users/01/energy") == 5

    @pytest.mark.asyncio
    async def test_transact_abort_leaves_value(self, store):
        await store.set("rooms/room1/statsSaved", True)
        result = await store.transact("rooms/room1/statsSaved", lambda saved: None if saved else True)
        assert not result.committed
        assert result.value is True

    @pytest.mark.asyncio
    async def test_transact_on_missing_path(self, store):
        result = await store.transact("users/09", lambda current: current or {"energy": 10})
        assert result.committed
        assert await store.get("users/09") == {"energy": 10}

    @pytest.mark.asyncio
    async def test_sequential_transactions_do_not_lose_updates(self, store):
        await store.set("users/01/energy", 0)
        for _ in range(5):
            await store.transact("users/01/energy", lambda e: (e or 0) + 1)
        assert await store.get("users/01/energy") == 5


# ---------------------------------------------------------------------------
# On-disconnect writes
# ---------------------------------------------------------------------------

class TestOnDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_applies_registered_write(self, store):
        await store.set("rooms/room1/players/p2/presence", True)
        store.on_disconnect_set("client-2", "rooms/room1/players/p2/presence", False)
        rec = Recorder()
        await store.subscribe("rooms/room1/players/p2/presence", rec)
        await store.disconnect("client-2")
        assert rec.values == [True, False]

    @pytest.mark.asyncio
    async def test_cancelled_write_not_applied(self, store):
        await store.set("rooms/room1/players/p2/presence", True)
        store.on_disconnect_set("client-2", "rooms/room1/players/p2/presence", False)
        store.cancel_on_disconnect("client-2")
        await store.disconnect("client-2")
        assert await store.get("rooms/room1/players/p2/presence") is True

    @pytest.mark.asyncio
    async def test_other_clients_unaffected(self, store):
        await store.set("rooms/room1/players", {"p1": {"presence": True}, "p2": {"presence": True}})
        store.on_disconnect_set("client-1", "rooms/room1/players/p1/presence", False)
        store.on_disconnect_set("client-2", "rooms/room1/players/p2/presence", False)
        await store.disconnect("client-2")
        assert await store.get("rooms/room1/players/p1/presence") is True
        assert await store.get("rooms/room1/players/p2/presence") is False
