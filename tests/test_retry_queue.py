"""Tests for RetryQueue."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docsync.storage.local_store import RETRY_QUEUE_KEY
from docsync.sync.exceptions import AuthError, ConflictError, NotFoundError
from docsync.sync.models import RetryJob, SaveType
from docsync.sync.notifier import NotificationEvent
from docsync.sync.retry_queue import RetryQueue


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.commit_once = AsyncMock(return_value="new-commit")
    return executor


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def make_queue(store, executor, make_token_manager, notifier, settings, clock):
    queues = []

    def _make(token_manager=None):
        queue = RetryQueue(
            store,
            executor,
            token_manager or make_token_manager(),
            notifier=notifier,
            settings=settings,
            clock=clock,
        )
        queues.append(queue)
        return queue

    yield _make
    for queue in queues:
        queue.close()


@pytest.fixture
def queue(make_queue):
    return make_queue()


@pytest.mark.asyncio
async def test_enqueue_creates_job(queue, store, clock, snapshot_a):
    job = await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    assert job.attempt == 0
    assert job.next_run_at == clock.now + 10
    assert queue.has_timer("7")

    stored = await store.get(RETRY_QUEUE_KEY)
    assert list(stored) == ["7"]
    assert RetryJob.from_dict(stored["7"]) == job


@pytest.mark.asyncio
async def test_enqueue_coalesces_with_latest_payload(queue, clock, snapshot_a, snapshot_b):
    first = await queue.enqueue("7", snapshot_a, SaveType.MANUAL)
    clock.advance(3)
    await queue.enqueue("7", snapshot_b, SaveType.AUTO)

    jobs = await queue.jobs()
    assert len(jobs) == 1
    assert jobs[0].snapshot == snapshot_b
    assert jobs[0].save_type == SaveType.AUTO
    assert jobs[0].next_run_at == first.next_run_at


@pytest.mark.asyncio
async def test_enqueue_pulls_backed_off_job_earlier_and_keeps_attempt(
    queue, executor, clock, snapshot_a, snapshot_b
):
    executor.commit_once.side_effect = ConflictError("moved", status=409)
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)
    await queue.fire("7")
    await queue.fire("7")
    backed_off = await queue.get("7")
    assert backed_off.attempt == 2
    assert backed_off.next_run_at == clock.now + 40

    await queue.enqueue("7", snapshot_b, SaveType.MANUAL)

    job = await queue.get("7")
    assert job.attempt == 2
    assert job.next_run_at == clock.now + 10
    assert job.snapshot == snapshot_b


@pytest.mark.asyncio
async def test_fire_success_removes_job(queue, executor, notifier, snapshot_a):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    await queue.fire("7")

    executor.commit_once.assert_awaited_once_with(
        "octo", "docs", "ghp_test", "7", snapshot_a, SaveType.MANUAL
    )
    assert await queue.get("7") is None
    assert not queue.has_timer("7")
    notifier.notify.assert_called_once_with(
        NotificationEvent.SYNC_SUCCESS, name="Resume", document_id="7"
    )


@pytest.mark.asyncio
async def test_conflict_backs_off_exponentially(queue, executor, clock, snapshot_a):
    executor.commit_once.side_effect = ConflictError("moved", status=409)
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    clock.advance(10)
    await queue.fire("7")

    job = await queue.get("7")
    assert job.attempt == 1
    assert job.next_run_at == clock.now + 20
    assert queue.has_timer("7")

    clock.advance(20)
    await queue.fire("7")

    job = await queue.get("7")
    assert job.attempt == 2
    assert job.next_run_at == clock.now + 40


@pytest.mark.asyncio
async def test_exhausted_job_is_dropped(queue, executor, notifier, snapshot_a):
    executor.commit_once.side_effect = ConflictError("moved", status=409)
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    for _ in range(5):
        await queue.fire("7")

    assert executor.commit_once.await_count == 5
    assert await queue.get("7") is None
    assert not queue.has_timer("7")
    notifier.notify.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    AuthError("bad credentials", status=401),
    NotFoundError("no repo", status=404),
])
async def test_terminal_error_drops_job(queue, executor, snapshot_a, error):
    executor.commit_once.side_effect = error
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    await queue.fire("7")

    assert await queue.get("7") is None
    assert not queue.has_timer("7")


@pytest.mark.asyncio
async def test_unexpected_error_drops_job_and_propagates(queue, executor, snapshot_a):
    executor.commit_once.side_effect = KeyError("sha")
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    with pytest.raises(KeyError):
        await queue.fire("7")

    assert await queue.get("7") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("token,repo", [(None, "octo/docs"), ("tok", None), ("tok", "octo")])
async def test_missing_configuration_drops_job(
    make_queue, make_token_manager, executor, snapshot_a, token, repo
):
    queue = make_queue(make_token_manager(token=token, repo=repo))
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    await queue.fire("7")

    executor.commit_once.assert_not_awaited()
    assert await queue.get("7") is None
    assert not queue.has_timer("7")


@pytest.mark.asyncio
async def test_fire_without_job_is_noop(queue, executor):
    await queue.fire("missing")

    executor.commit_once.assert_not_awaited()


@pytest.mark.asyncio
async def test_newer_save_during_attempt_is_kept(queue, executor, snapshot_a, snapshot_b):
    async def commit_while_user_saves(*args):
        await queue.enqueue("7", snapshot_b, SaveType.AUTO)
        return "new-commit"

    executor.commit_once.side_effect = commit_while_user_saves
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    await queue.fire("7")

    job = await queue.get("7")
    assert job.snapshot == snapshot_b
    assert queue.has_timer("7")


@pytest.mark.asyncio
async def test_single_timer_per_document(queue, snapshot_a, snapshot_b):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)
    first_handle = queue._timers["7"]

    await queue.enqueue("7", snapshot_b, SaveType.MANUAL)

    assert first_handle.cancelled()
    assert len(queue._timers) == 1


@pytest.mark.asyncio
async def test_remove_clears_job_and_timer(queue, snapshot_a):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    await queue.remove("7")

    assert await queue.get("7") is None
    assert not queue.has_timer("7")


@pytest.mark.asyncio
async def test_restore_fires_overdue_job(make_queue, store, executor, notifier, clock, snapshot_a):
    overdue = RetryJob(
        id="7",
        attempt=2,
        next_run_at=clock.now - 100,
        snapshot=snapshot_a,
        save_type=SaveType.AUTO,
    )
    await store.set(RETRY_QUEUE_KEY, {"7": overdue.to_dict()})

    queue = make_queue()
    assert await queue.restore() == 1

    await asyncio.sleep(0.05)
    await queue.drain()

    executor.commit_once.assert_awaited_once()
    assert await queue.get("7") is None
    notifier.notify.assert_called_once()


@pytest.mark.asyncio
async def test_restore_arms_future_jobs_without_firing(make_queue, store, executor, clock, snapshot_a):
    pending = RetryJob(
        id="7",
        attempt=0,
        next_run_at=clock.now + 60,
        snapshot=snapshot_a,
        save_type=SaveType.MANUAL,
    )
    await store.set(RETRY_QUEUE_KEY, {"7": pending.to_dict()})

    queue = make_queue()
    await queue.restore()
    await asyncio.sleep(0.05)

    assert queue.has_timer("7")
    executor.commit_once.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_keeps_jobs_persisted(queue, snapshot_a):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)

    queue.close()

    assert not queue.has_timer("7")
    assert await queue.get("7") is not None


def _enqueue_after_next_table_read(queue, store, snapshot, pending):
    """Start a coalescing enqueue as soon as the job table is next read."""
    original_get = store.get

    async def get(key):
        value = await original_get(key)
        if key == RETRY_QUEUE_KEY and not pending:
            store.get = original_get
            pending.append(asyncio.ensure_future(queue.enqueue("7", snapshot, SaveType.AUTO)))
            await asyncio.sleep(0.01)
        return value

    return get


@pytest.mark.asyncio
async def test_save_coalesced_after_successful_commit_is_kept(
    queue, store, executor, snapshot_a, snapshot_b
):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)
    pending = []

    async def commit(*args):
        store.get = _enqueue_after_next_table_read(queue, store, snapshot_b, pending)
        return "new-commit"

    executor.commit_once.side_effect = commit
    await queue.fire("7")
    await asyncio.gather(*pending)

    job = await queue.get("7")
    assert job is not None
    assert job.snapshot == snapshot_b
    assert queue.has_timer("7")


@pytest.mark.asyncio
async def test_save_coalesced_after_conflict_is_not_overwritten(
    queue, store, executor, snapshot_a, snapshot_b
):
    await queue.enqueue("7", snapshot_a, SaveType.MANUAL)
    pending = []

    async def commit(*args):
        store.get = _enqueue_after_next_table_read(queue, store, snapshot_b, pending)
        raise ConflictError("moved", status=409)

    executor.commit_once.side_effect = commit
    await queue.fire("7")
    await asyncio.gather(*pending)

    job = await queue.get("7")
    assert job.snapshot == snapshot_b
    assert job.attempt == 1
    assert queue.has_timer("7")


@pytest.mark.asyncio
async def test_wait_until_empty_returns_for_unarmed_jobs(make_queue, store, clock, snapshot_a):
    leftover = RetryJob(
        id="Y",
        attempt=1,
        next_run_at=clock.now + 60,
        snapshot=snapshot_a,
        save_type=SaveType.MANUAL,
    )
    await store.set(RETRY_QUEUE_KEY, {"Y": leftover.to_dict()})
    queue = make_queue()

    stranded = await asyncio.wait_for(queue.wait_until_empty(poll_interval=0.01), timeout=1.0)

    assert stranded == 1
    assert await queue.get("Y") is not None


@pytest.mark.asyncio
async def test_wait_until_empty_runs_restored_jobs(make_queue, store, executor, clock, snapshot_a):
    leftover = RetryJob(
        id="Y",
        attempt=0,
        next_run_at=clock.now - 1,
        snapshot=snapshot_a,
        save_type=SaveType.MANUAL,
    )
    await store.set(RETRY_QUEUE_KEY, {"Y": leftover.to_dict()})
    queue = make_queue()
    await queue.restore()

    stranded = await asyncio.wait_for(queue.wait_until_empty(poll_interval=0.01), timeout=1.0)

    assert stranded == 0
    executor.commit_once.assert_awaited_once()
