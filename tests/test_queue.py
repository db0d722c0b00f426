"""Tests for the processing queue manager."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from services.notifications import ExternalNotifier
from services.notifications.drivers import NotificationDriver
from services.queue import QueueManager
from services.websocket_progress import WebSocketProgressManager
from shared.enums import FileStatus, QueueStatus
from shared.errors import ProcessingError


class StubWebSocket:
    def __init__(self) -> None:
        self.sent_messages: list[dict] = []

    async def accept(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def send_json(self, message: dict) -> None:
        self.sent_messages.append(message)


class BrokenDriver(NotificationDriver):
    name = "broken"

    async def send(self, message: str) -> None:
        raise ConnectionError("channel unreachable")


def statuses(store, file_ids):
    return [store.get_file(file_id).status for file_id in file_ids]


@pytest.mark.asyncio
async def test_poll_cycle_claims_up_to_concurrency_limit(store, add_queued_files, processor):
    file_ids = add_queued_files(5)
    processor.gate = asyncio.Event()
    manager = QueueManager(store, processor=processor)
    manager.start()

    claimed = manager.process_queue()

    assert claimed == file_ids[:2]
    assert statuses(store, file_ids) == [FileStatus.PROCESSING] * 2 + [FileStatus.QUEUED] * 3
    assert [store.get_file(file_id).attempts for file_id in file_ids] == [1, 1, 0, 0, 0]
    assert manager.processing_files == frozenset(file_ids[:2])

    # No free slots while both calls are suspended.
    assert manager.process_queue() == []

    processor.gate.set()
    await manager.close()
    assert statuses(store, file_ids[:2]) == [FileStatus.COMPLETED] * 2
    assert manager.processing_files == frozenset()


@pytest.mark.asyncio
async def test_all_files_complete_without_exceeding_concurrency(store, add_queued_files, processor):
    file_ids = add_queued_files(5)
    manager = QueueManager(store, processor=processor)
    manager.start()

    for _ in range(3):
        manager.process_queue()
        assert len(manager.processing_files) <= 2
        await manager.wait_until_idle()

    await manager.close()
    assert statuses(store, file_ids) == [FileStatus.COMPLETED] * 5
    assert processor.max_in_flight <= 2
    project = store.get_project(store.get_file(file_ids[0]).project_id)
    assert project.processed == 5


@pytest.mark.asyncio
async def test_claims_are_exclusive_across_ticks(store, add_queued_files, processor):
    file_ids = add_queued_files(5)
    processor.gate = asyncio.Event()
    manager = QueueManager(store, processor=processor)
    manager.start()

    first = manager.process_queue()
    store.update_settings(queue={"concurrent_processing": 4})
    second = manager.process_queue()

    assert first == file_ids[:2]
    assert second == file_ids[2:4]
    assert len(manager.processing_files) == 4

    processor.gate.set()
    await manager.close()
    called_ids = [request.file_id for request in processor.calls]
    assert len(called_ids) == len(set(called_ids)) == 4


@pytest.mark.asyncio
async def test_file_failing_twice_then_succeeding_completes_on_third_attempt(
    store, add_queued_files, processor
):
    store.update_settings(queue={"max_retries": 2, "retry_delay": 1})
    (file_id,) = add_queued_files(1)
    processor.scripts[file_id] = [ProcessingError("upstream 502"), ProcessingError("upstream 503")]
    manager = QueueManager(store, processor=processor)
    manager.start()

    for _ in range(3):
        assert manager.process_queue() == [file_id]
        await manager.wait_until_idle()

    await manager.close()
    record = store.get_file(file_id)
    assert record.status == FileStatus.COMPLETED
    assert record.attempts == 3
    assert record.error is None
    assert record.processing_time.endswith("s")
    assert record.description == f"Generated description for file {file_id}"


@pytest.mark.asyncio
async def test_retry_exhaustion_ends_in_error(store, add_queued_files, processor):
    (file_id,) = add_queued_files(1)
    processor.scripts[file_id] = [ProcessingError(f"failure {n}") for n in range(1, 4)]
    manager = QueueManager(store, processor=processor)
    manager.start()

    for _ in range(5):
        manager.process_queue()
        await manager.wait_until_idle()

    await manager.close()
    record = store.get_file(file_id)
    assert record.status == FileStatus.ERROR
    assert record.attempts == 3
    assert record.error == "failure 3"
    assert processor.calls_for(file_id) == 3
    assert store.get_project(record.project_id).errors == 1
    assert any(item.title == "Processing Failed" for item in store.notifications.items)


@pytest.mark.asyncio
async def test_zero_retries_fails_on_first_error(store, add_queued_files, processor):
    store.update_settings(queue={"max_retries": 0})
    (file_id,) = add_queued_files(1)
    processor.scripts[file_id] = [RuntimeError("bad image")]
    manager = QueueManager(store, processor=processor)
    manager.start()

    manager.process_queue()
    await manager.close()

    record = store.get_file(file_id)
    assert record.status == FileStatus.ERROR
    assert record.attempts == 1


@pytest.mark.asyncio
async def test_processing_timeout_is_treated_as_failure(store, add_queued_files, processor):
    store.update_settings(queue={"timeout": 0.05, "max_retries": 0})
    (file_id,) = add_queued_files(1)
    processor.scripts[file_id] = [10.0]
    manager = QueueManager(store, processor=processor)
    manager.start()

    manager.process_queue()
    await manager.close()

    record = store.get_file(file_id)
    assert record.status == FileStatus.ERROR
    assert "timed out" in record.error


@pytest.mark.asyncio
async def test_failure_of_one_file_does_not_affect_others(store, add_queued_files, processor):
    store.update_settings(queue={"max_retries": 0})
    failing, healthy = add_queued_files(2)
    processor.scripts[failing] = [ValueError("corrupt file")]
    manager = QueueManager(store, processor=processor)
    manager.start()

    manager.process_queue()
    await manager.close()

    assert store.get_file(failing).status == FileStatus.ERROR
    assert store.get_file(healthy).status == FileStatus.COMPLETED


@pytest.mark.asyncio
async def test_pause_stops_claiming_and_start_is_idempotent(store, add_queued_files, processor):
    add_queued_files(3)
    manager = QueueManager(store, processor=processor)

    manager.start()
    poll_task = manager._poll_task
    manager.start()
    assert manager._poll_task is poll_task
    assert manager.status == QueueStatus.RUNNING

    manager.pause()
    assert manager.status == QueueStatus.PAUSED
    assert manager.process_queue() == []
    await manager.close()


@pytest.mark.asyncio
async def test_stop_discards_results_of_calls_already_dispatched(store, add_queued_files, processor):
    (file_id,) = add_queued_files(1)
    processor.gate = asyncio.Event()
    manager = QueueManager(store, processor=processor)
    manager.start()
    manager.process_queue()

    manager.stop()
    assert manager.status == QueueStatus.STOPPED
    assert manager.processing_files == frozenset()

    processor.gate.set()
    await manager.wait_until_idle()

    record = store.get_file(file_id)
    assert record.status == FileStatus.PROCESSING
    assert record.description == ""
    assert store.get_project(record.project_id).processed == 0


@pytest.mark.asyncio
async def test_file_deleted_while_processing_is_ignored(store, add_queued_files, processor):
    (file_id,) = add_queued_files(1)
    processor.gate = asyncio.Event()
    manager = QueueManager(store, processor=processor)
    manager.start()
    manager.process_queue()
    project_id = store.get_file(file_id).project_id

    store.delete_files([file_id])
    processor.gate.set()
    await manager.close()

    assert store.get_file(file_id) is None
    assert store.get_project(project_id).processed == 0
    assert manager.processing_files == frozenset()


@pytest.mark.asyncio
async def test_failure_of_deleted_file_is_not_counted(store, add_queued_files, processor):
    store.update_settings(queue={"max_retries": 0})
    (file_id,) = add_queued_files(1)
    processor.scripts[file_id] = [ProcessingError("boom")]
    processor.gate = asyncio.Event()
    manager = QueueManager(store, processor=processor)
    manager.start()
    manager.process_queue()
    project_id = store.get_file(file_id).project_id

    store.delete_files([file_id])
    processor.gate.set()
    await manager.close()

    assert store.get_project(project_id).errors == 0
    assert all(item.title != "Processing Failed" for item in store.notifications.items)
    assert manager.processing_files == frozenset()


@pytest.mark.asyncio
async def test_poll_loop_processes_files_on_interval(store, add_queued_files, processor):
    store.update_settings(queue={"queue_check_interval": 0.01})
    file_ids = add_queued_files(3)
    manager = QueueManager(store, processor=processor)
    manager.start()

    for _ in range(200):
        if all(status == FileStatus.COMPLETED for status in statuses(store, file_ids)):
            break
        await asyncio.sleep(0.01)

    await manager.close()
    assert statuses(store, file_ids) == [FileStatus.COMPLETED] * 3


def test_retry_failed_files_resets_selected_or_all(store, add_queued_files, processor):
    first, second, third = add_queued_files(3)
    for file_id in (first, second):
        store.update_file(file_id, status=FileStatus.ERROR, attempts=3, error="quota exceeded")
    manager = QueueManager(store, processor=processor)

    assert manager.retry_failed_files([first, third]) == 1
    record = store.get_file(first)
    assert (record.status, record.attempts, record.error) == (FileStatus.QUEUED, 0, None)
    assert store.get_file(second).status == FileStatus.ERROR

    assert manager.retry_failed_files() == 1
    assert store.get_file(second).status == FileStatus.QUEUED


def test_queue_stats_average_and_estimate(store, add_queued_files, processor):
    file_ids = add_queued_files(6)
    store.update_file(file_ids[0], status=FileStatus.COMPLETED, processing_time="2.0s")
    store.update_file(file_ids[1], status=FileStatus.COMPLETED, processing_time="4.0s")
    store.update_file(file_ids[2], status=FileStatus.ERROR, attempts=3, error="boom")
    manager = QueueManager(store, processor=processor)

    stats = manager.update_queue_stats()

    assert stats.total_in_queue == 3
    assert stats.completed == 2
    assert stats.failed == 1
    assert stats.processing == 0
    assert stats.avg_processing_time == pytest.approx(3.0)
    assert stats.estimated_time_remaining == 5
    assert stats.avg_processing_time_display == "3.0s"
    assert stats.estimated_time_remaining_display == "0m 5s"
    assert store.get_snapshot().queue_stats.completed == 2


@pytest.mark.asyncio
async def test_completion_notifications_follow_settings(store, add_queued_files, processor):
    store.update_settings(notifications={"project_completion": False})
    add_queued_files(1)
    manager = QueueManager(store, processor=processor)
    manager.start()
    manager.process_queue()
    await manager.close()
    assert not any(item.title == "File Processed" for item in store.notifications.items)

    store.update_settings(notifications={"project_completion": True})
    add_queued_files(1, project_name="Second batch")
    manager.start()
    manager.process_queue()
    await manager.close()
    assert any(item.title == "File Processed" for item in store.notifications.items)


@pytest.mark.asyncio
async def test_external_notification_sent_on_completion(store, add_queued_files, processor):
    store.update_settings(notifications={"telegram": True})
    add_queued_files(1)
    notifier = AsyncMock()
    manager = QueueManager(store, processor=processor, notifier=notifier)
    manager.start()

    manager.process_queue()
    await manager.close()

    notifier.send.assert_awaited_once_with("✅ File processed: photo_1.jpg")


@pytest.mark.asyncio
async def test_external_notification_failures_never_fail_processing(store, add_queued_files, processor):
    store.update_settings(notifications={"telegram": True}, queue={"max_retries": 0})
    notifiers = [
        ExternalNotifier(driver=BrokenDriver()),
        AsyncMock(send=AsyncMock(side_effect=OSError("down"))),
    ]

    for index, notifier in enumerate(notifiers):
        ok_id, failing_id = add_queued_files(2, project_name=f"Batch {index}")
        processor.scripts[failing_id] = [ProcessingError("model overloaded")]
        manager = QueueManager(store, processor=processor, notifier=notifier)
        manager.start()
        manager.process_queue()
        await manager.close()

        assert store.get_file(ok_id).status == FileStatus.COMPLETED
        assert store.get_file(failing_id).status == FileStatus.ERROR

    assert notifiers[1].send.await_count == 2


@pytest.mark.asyncio
async def test_progress_events_published_to_project_subscribers(store, add_queued_files, processor):
    (file_id,) = add_queued_files(1)
    project_id = store.get_file(file_id).project_id
    progress = WebSocketProgressManager()
    websocket = StubWebSocket()
    client_id = await progress.connect(websocket, "dashboard")
    await progress.subscribe(client_id, project_id)

    manager = QueueManager(store, processor=processor, progress=progress)
    manager.start()
    manager.process_queue()
    await manager.close()

    events = [message["event"] for message in websocket.sent_messages]
    assert "file_processing" in events
    assert "file_completed" in events
    assert "queue_stats" in events
    completed = next(message for message in websocket.sent_messages if message["event"] == "file_completed")
    assert completed["file_id"] == file_id
    assert completed["status"] == "completed"
