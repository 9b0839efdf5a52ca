import asyncio
import json

import pytest

from todoapp.client.connectivity import Connectivity
from todoapp.client.offline_queue import OfflineQueue
from todoapp.client.reconcile import Reconciler
from todoapp.client.storage import ID_MAP_KEY, QUEUE_KEY, MemoryStorage

from .fakes import FakeRemoteStore


def make_reconciler(remote=None, online=True, **kwargs):
    store = MemoryStorage()
    queue = OfflineQueue(store)
    remote = remote or FakeRemoteStore()
    connectivity = Connectivity(online=online)
    reconciler = Reconciler(queue, remote, connectivity, store=store, **kwargs)
    return reconciler, queue, remote, connectivity, store


def persisted_queue(store):
    return json.loads(store.get_item(QUEUE_KEY))


@pytest.mark.asyncio
async def test_successful_pass_applies_everything_in_order():
    reconciler, queue, remote, _, store = make_reconciler()
    queue.enqueue("create", {"text": "one"})
    queue.enqueue("create", {"text": "two"})
    queue.enqueue("update", {"id": 1, "updates": {"completed": True}})
    queue.enqueue("delete", {"id": 2})

    result = await reconciler.process_queue()

    assert (result.processed, result.failed, result.skipped) == (4, 0, False)
    assert remote.names() == ["create", "create", "update", "delete"]
    assert len(queue) == 0
    assert persisted_queue(store) == []
    assert list(remote.todos) == [1]
    assert remote.todos[1].completed is True


@pytest.mark.asyncio
async def test_failure_requeues_only_the_failing_operation():
    remote = FakeRemoteStore()
    remote.fail_on = {3}
    reconciler, queue, remote, _, store = make_reconciler(remote)
    ops = [queue.enqueue("create", {"text": f"todo {i}"}) for i in range(1, 6)]

    result = await reconciler.process_queue()

    # 1..2 applied, 3 re-queued, 4..5 still attempted in the same pass
    assert (result.processed, result.failed) == (4, 1)
    assert len(remote.calls) == 5
    assert sorted(t.text for t in remote.todos.values()) == ["todo 1", "todo 2", "todo 4", "todo 5"]
    assert queue.snapshot() == [ops[2]]
    assert [op["data"]["text"] for op in persisted_queue(store)] == ["todo 3"]


@pytest.mark.asyncio
async def test_failed_operation_is_retried_next_pass():
    remote = FakeRemoteStore()
    remote.fail_on = {1}
    reconciler, queue, remote, _, _ = make_reconciler(remote)
    queue.enqueue("create", {"text": "flaky"})

    first = await reconciler.process_queue()
    second = await reconciler.process_queue()

    assert first.failed == 1
    assert second.processed == 1
    assert len(queue) == 0
    assert [t.text for t in remote.todos.values()] == ["flaky"]


@pytest.mark.asyncio
async def test_crash_mid_pass_keeps_unconfirmed_operations_persisted():
    class ExplodingStore(FakeRemoteStore):
        async def update_todo(self, todo_id, updates):
            raise RuntimeError("process killed")

    reconciler, queue, remote, _, store = make_reconciler(ExplodingStore())
    queue.enqueue("create", {"text": "done before crash"})
    queue.enqueue("update", {"id": 1, "updates": {"completed": True}})
    queue.enqueue("delete", {"id": 1})

    with pytest.raises(RuntimeError):
        await reconciler.process_queue()

    # removal is persisted per item: the confirmed create is gone, the rest survive
    assert [op["operation"] for op in persisted_queue(store)] == ["update", "delete"]


@pytest.mark.asyncio
async def test_replaying_a_create_twice_makes_two_remote_todos():
    # A create whose confirmation was lost gets sent again. Delivery is
    # at-least-once, so the server ends up with a duplicate; this is expected.
    reconciler, queue, remote, _, _ = make_reconciler()
    payload = {"text": "lost ack", "category": "work"}
    queue.enqueue("create", payload)
    await reconciler.process_queue()
    queue.enqueue("create", payload)
    await reconciler.process_queue()

    assert len(remote.todos) == 2
    assert {t.text for t in remote.todos.values()} == {"lost ack"}
    assert len({t.id for t in remote.todos.values()}) == 2


@pytest.mark.asyncio
async def test_skips_when_offline_or_empty():
    reconciler, queue, remote, connectivity, _ = make_reconciler(online=False)
    queue.enqueue("delete", {"id": 1})

    assert (await reconciler.process_queue()).skipped
    assert remote.calls == []
    assert len(queue) == 1

    reconciler2, _, remote2, _, _ = make_reconciler(online=True)
    assert (await reconciler2.process_queue()).skipped
    assert remote2.calls == []


@pytest.mark.asyncio
async def test_operation_without_id_is_requeued_not_raised():
    reconciler, queue, remote, _, _ = make_reconciler()
    queue.enqueue("delete", {})
    result = await reconciler.process_queue()
    assert result.failed == 1
    assert remote.calls == []
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_overlapping_triggers_do_not_start_a_second_pass():
    remote = FakeRemoteStore()
    remote.gate = asyncio.Event()
    reconciler, queue, remote, _, _ = make_reconciler(remote)
    queue.enqueue("create", {"text": "slow"})

    first = asyncio.create_task(reconciler.process_queue())
    await remote.entered.wait()
    assert reconciler.in_flight

    second = await reconciler.process_queue()
    assert second.skipped

    remote.gate.set()
    result = await first
    assert result.processed == 1
    assert len(remote.todos) == 1
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_create_update_delete_of_same_todo_leaves_nothing_remote():
    reconciler, queue, remote, _, store = make_reconciler()
    local_id = 1_700_000_000_000
    queue.enqueue("create", {"id": local_id, "text": "A", "completed": False, "category": "personal"})
    queue.enqueue("update", {"id": local_id, "updates": {"completed": True}})
    queue.enqueue("delete", {"id": local_id})

    result = await reconciler.process_queue()

    assert result.processed == 3
    assert remote.todos == {}
    assert len(queue) == 0
    # follow-up operations were sent with the server id, not the local one
    assert remote.calls[1] == ("update", (1, {"completed": True}))
    assert remote.calls[2] == ("delete", 1)
    # the delete retired the mapping
    assert json.loads(store.get_item(ID_MAP_KEY)) == {}
    assert reconciler.resolve_id(local_id) == local_id


@pytest.mark.asyncio
async def test_id_map_survives_restart():
    reconciler, queue, remote, connectivity, store = make_reconciler()
    queue.enqueue("create", {"id": 555, "text": "A"})
    await reconciler.process_queue()

    queue.enqueue("delete", {"id": 555})
    reopened = OfflineQueue(store)
    reopened.load()
    restarted = Reconciler(reopened, remote, connectivity, store=store)
    await restarted.process_queue()
    assert remote.calls[-1] == ("delete", 1)


@pytest.mark.asyncio
async def test_becoming_online_triggers_a_pass():
    reconciler, queue, remote, connectivity, _ = make_reconciler(online=False, interval=3600)
    queue.enqueue("create", {"text": "queued offline"})
    reconciler.start()
    try:
        tasks = connectivity.set_online(True)
        assert len(tasks) == 1
        await asyncio.gather(*tasks)
        assert len(queue) == 0
        assert [t.text for t in remote.todos.values()] == ["queued offline"]

        # staying online does not fire the event again
        assert connectivity.set_online(True) == []
    finally:
        await reconciler.stop()
    assert not reconciler.running


@pytest.mark.asyncio
async def test_timer_drains_queue_periodically():
    reconciler, queue, remote, _, _ = make_reconciler(interval=0.01)
    queue.enqueue("create", {"text": "from timer"})
    reconciler.start()
    try:
        async def drained():
            while len(queue):
                await asyncio.sleep(0.005)

        await asyncio.wait_for(drained(), timeout=2)
    finally:
        await reconciler.stop()
    assert len(remote.todos) == 1


@pytest.mark.asyncio
async def test_timer_skips_while_offline():
    reconciler, queue, remote, _, _ = make_reconciler(online=False, interval=0.01)
    queue.enqueue("create", {"text": "waiting"})
    reconciler.start()
    await asyncio.sleep(0.05)
    await reconciler.stop()
    assert remote.calls == []
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_id_map_keeps_entries_until_the_delete_succeeds():
    reconciler, queue, remote, _, store = make_reconciler()
    queue.enqueue("create", {"id": 111, "text": "kept"})
    queue.enqueue("create", {"id": 222, "text": "gone"})
    await reconciler.process_queue()
    assert json.loads(store.get_item(ID_MAP_KEY)) == {"111": 1, "222": 2}

    queue.enqueue("delete", {"id": 222})
    remote.offline = True
    await reconciler.process_queue()
    assert json.loads(store.get_item(ID_MAP_KEY)) == {"111": 1, "222": 2}

    remote.offline = False
    await reconciler.process_queue()
    assert remote.calls[-1] == ("delete", 2)
    assert json.loads(store.get_item(ID_MAP_KEY)) == {"111": 1}
    assert reconciler.resolve_id(111) == 1


@pytest.mark.asyncio
async def test_stop_waits_for_the_running_pass():
    remote = FakeRemoteStore()
    remote.gate = asyncio.Event()
    reconciler, queue, remote, _, _ = make_reconciler(remote, interval=0.01)
    queue.enqueue("create", {"text": "in flight"})
    reconciler.start()
    await asyncio.wait_for(remote.entered.wait(), timeout=2)

    stopping = asyncio.create_task(reconciler.stop())
    await asyncio.sleep(0.02)
    assert not stopping.done()
    assert reconciler.in_flight

    remote.gate.set()
    await asyncio.wait_for(stopping, timeout=2)
    assert not reconciler.in_flight
    assert not reconciler.running
    assert len(queue) == 0
    assert len(remote.todos) == 1
