"""
Tests for the client repository contract, run against the in-memory
implementation, and for the subscription handle itself.
"""

import asyncio
import threading

import pytest

from clientverse.models.client import Client, ClientRecord
from clientverse.services.storage import (
    ClientSubscription,
    NotFoundError,
    ReadError,
    WriteError,
)


class TestCreateAndRead:
    """Creating clients and reading them back through the subscription."""

    def test_create_then_read_back(self, repository, candidate):
        """Test supplied fields come back unchanged with identity populated."""
        record = ClientRecord.model_validate(candidate)

        async def scenario():
            subscription = await repository.subscribe("u1")
            initial = await subscription.next_snapshot(timeout=1)
            client_id = await repository.create("u1", record)
            snapshot = await subscription.next_snapshot(timeout=1)
            subscription.cancel()
            return initial, client_id, snapshot

        initial, client_id, snapshot = asyncio.run(scenario())

        assert initial == []
        assert len(snapshot) == 1
        client = snapshot[0]
        assert client.id == client_id
        assert client.user_id == "u1"
        assert client.created_at is not None
        assert client.updated_at is not None
        assert client.to_record() == record

    def test_current_list_delivered_on_subscribe(self, repository):
        """Test a late subscriber receives the existing clients at once."""
        async def scenario():
            await repository.create("u1", ClientRecord(client_name="Asha"))
            await repository.create("u1", ClientRecord(client_name="Ravi"))
            subscription = await repository.subscribe("u1")
            snapshot = await subscription.next_snapshot(timeout=1)
            subscription.cancel()
            return snapshot

        snapshot = asyncio.run(scenario())
        assert [c.client_name for c in snapshot] == ["Asha", "Ravi"]

    def test_identifiers_unique(self, repository):
        """Test identifiers are unique within a partition."""
        ids = iter(["same", "same", "other"])
        repository._id_factory = lambda: next(ids)

        async def scenario():
            first = await repository.create("u1", ClientRecord(client_name="Asha"))
            second = await repository.create("u1", ClientRecord(client_name="Ravi"))
            return first, second

        assert asyncio.run(scenario()) == ("same", "other")

    def test_partitions_are_isolated(self, repository):
        """Test one user never sees another user's clients."""
        async def scenario():
            other = await repository.subscribe("u2")
            await other.next_snapshot(timeout=1)
            await repository.create("u1", ClientRecord(client_name="Asha"))
            with pytest.raises(asyncio.TimeoutError):
                await other.next_snapshot(timeout=0.05)
            other.cancel()
            return other.latest

        assert asyncio.run(scenario()) == []

    @pytest.mark.parametrize("user_id", ["", "   ", "a/b", ".."])
    def test_invalid_user_id(self, repository, user_id):
        """Test unusable partition keys are rejected."""
        with pytest.raises(WriteError):
            asyncio.run(repository.create(user_id, ClientRecord(client_name="Asha")))


class TestUpdate:
    """Merge writes."""

    def test_update_replaces_omitted_collection(self, repository, candidate):
        """Test an update without a collection leaves that collection empty."""
        async def scenario():
            client_id = await repository.create("u1", ClientRecord.model_validate(candidate))
            subscription = await repository.subscribe("u1")
            before = (await subscription.next_snapshot(timeout=1))[0]

            changed = {k: v for k, v in candidate.items() if k != "mobiles"}
            await repository.update("u1", client_id, ClientRecord.model_validate(changed))
            after = (await subscription.next_snapshot(timeout=1))[0]
            subscription.cancel()
            return before, after

        before, after = asyncio.run(scenario())

        assert len(before.mobiles) == 1
        assert after.mobiles == []
        assert after.addresses == before.addresses

    def test_update_keeps_owner_and_creation_time(self, repository):
        """Test only the update timestamp changes."""
        async def scenario():
            client_id = await repository.create("u1", ClientRecord(client_name="Asha"))
            subscription = await repository.subscribe("u1")
            before = (await subscription.next_snapshot(timeout=1))[0]
            await repository.update("u1", client_id, ClientRecord(client_name="Asha R"))
            after = (await subscription.next_snapshot(timeout=1))[0]
            subscription.cancel()
            return before, after

        before, after = asyncio.run(scenario())

        assert after.client_name == "Asha R"
        assert after.user_id == before.user_id
        assert after.created_at == before.created_at
        assert after.updated_at > before.updated_at

    def test_update_missing_client(self, repository):
        """Test updating an unknown client raises NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(repository.update("u1", "nope", ClientRecord(client_name="Asha")))

    def test_update_other_users_client(self, repository):
        """Test a client cannot be updated through another partition."""
        async def scenario():
            client_id = await repository.create("u1", ClientRecord(client_name="Asha"))
            await repository.update("u2", client_id, ClientRecord(client_name="Mallory"))

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_last_write_wins_for_every_subscriber(self, repository):
        """Test concurrent updates settle on the last committed write everywhere."""
        async def scenario():
            client_id = await repository.create("u1", ClientRecord(client_name="Asha"))
            first = await repository.subscribe("u1")
            second = await repository.subscribe("u1")
            await asyncio.gather(
                repository.update("u1", client_id, ClientRecord(client_name="Version A")),
                repository.update("u1", client_id, ClientRecord(client_name="Version B")),
            )
            seen = (first.latest, second.latest)
            first.cancel()
            second.cancel()
            return seen

        first, second = asyncio.run(scenario())
        assert first[0].client_name == "Version B"
        assert second[0].client_name == "Version B"


class TestDelete:
    """Deleting clients."""

    def test_delete_removes_from_next_snapshot(self, repository):
        """Test a deleted client is gone from the next snapshot."""
        async def scenario():
            keep = await repository.create("u1", ClientRecord(client_name="Asha"))
            gone = await repository.create("u1", ClientRecord(client_name="Ravi"))
            subscription = await repository.subscribe("u1")
            await subscription.next_snapshot(timeout=1)
            await repository.delete("u1", gone)
            snapshot = await subscription.next_snapshot(timeout=1)
            subscription.cancel()
            return keep, snapshot

        keep, snapshot = asyncio.run(scenario())
        assert [c.id for c in snapshot] == [keep]

    def test_delete_absent_client_is_noop(self, repository):
        """Test deleting an unknown client neither raises nor notifies."""
        async def scenario():
            subscription = await repository.subscribe("u1")
            await subscription.next_snapshot(timeout=1)
            await repository.delete("u1", "nope")
            with pytest.raises(asyncio.TimeoutError):
                await subscription.next_snapshot(timeout=0.05)
            subscription.cancel()

        asyncio.run(scenario())


class TestUnavailableBackend:
    """Transport failures."""

    def test_write_fails(self, repository):
        repository.available = False
        with pytest.raises(WriteError):
            asyncio.run(repository.create("u1", ClientRecord(client_name="Asha")))
        with pytest.raises(WriteError):
            asyncio.run(repository.delete("u1", "c1"))

    def test_subscribe_fails(self, repository):
        repository.available = False
        with pytest.raises(ReadError):
            asyncio.run(repository.subscribe("u1"))


class TestSubscription:
    """The cancelable snapshot stream."""

    def test_cancel_is_idempotent(self, repository):
        """Test cancel releases the listener once and ends iteration."""
        async def scenario():
            subscription = await repository.subscribe("u1")
            assert repository.subscriber_count("u1") == 1
            subscription.cancel()
            subscription.cancel()
            await repository.create("u1", ClientRecord(client_name="Asha"))
            received = [snapshot async for snapshot in subscription]
            return subscription, received

        subscription, received = asyncio.run(scenario())
        assert subscription.cancelled
        assert received == []
        assert repository.subscriber_count("u1") == 0

    def test_release_called_once(self):
        calls = []
        subscription = ClientSubscription("u1", on_cancel=lambda: calls.append(1))
        subscription.cancel()
        subscription.cancel()
        assert calls == [1]

    def test_async_iteration_until_cancel(self, repository):
        """Test async for yields snapshots in commit order."""
        async def scenario():
            names = []
            async with await repository.subscribe("u1") as subscription:
                await repository.create("u1", ClientRecord(client_name="Asha"))
                await repository.create("u1", ClientRecord(client_name="Ravi"))
                async for snapshot in subscription:
                    names.append([c.client_name for c in snapshot])
                    if len(names) == 3:
                        break
            return names, subscription.cancelled

        names, cancelled = asyncio.run(scenario())
        assert names == [[], ["Asha"], ["Asha", "Ravi"]]
        assert cancelled

    def test_publish_from_another_thread(self):
        """Test snapshots pushed from an SDK thread reach the event loop."""
        async def scenario():
            subscription = ClientSubscription("u1")
            client = Client(id="c1", user_id="u1", client_name="Asha")
            worker = threading.Thread(target=subscription.publish, args=([client],))
            worker.start()
            snapshot = await subscription.next_snapshot(timeout=1)
            worker.join()
            return snapshot

        snapshot = asyncio.run(scenario())
        assert [c.id for c in snapshot] == ["c1"]

    def test_latest_without_event_loop(self):
        """Test rerun-based consumers can read the latest snapshot without a loop."""
        subscription = ClientSubscription("u1")
        assert subscription.latest is None
        subscription.publish([Client(id="c1", user_id="u1", client_name="Asha")])
        assert [c.id for c in subscription.latest] == ["c1"]

    def test_failure_surfaces_as_read_error(self):
        async def scenario():
            subscription = ClientSubscription("u1")
            subscription.fail(ReadError("listener broke"))
            await subscription.next_snapshot(timeout=1)

        with pytest.raises(ReadError, match="listener broke"):
            asyncio.run(scenario())

    def test_snapshot_ordered_by_creation(self, clock):
        """Test snapshots are ordered oldest first, undated last."""
        early, late = clock(), clock()
        subscription = ClientSubscription("u1")
        subscription.publish([
            Client(id="b", user_id="u1", client_name="Undated"),
            Client(id="c", user_id="u1", client_name="Late", created_at=late),
            Client(id="a", user_id="u1", client_name="Early", created_at=early),
        ])
        assert [c.id for c in subscription.latest] == ["a", "c", "b"]
