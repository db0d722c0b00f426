"""Bounded-concurrency processing queue over the files held in the state store."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Coroutine, Iterable
from typing import TYPE_CHECKING, Any, Protocol

from services.store import StateStore
from shared.enums import FileStatus, NotificationCategory, NotificationType, QueueStatus
from shared.errors import ProcessingTimeoutError
from shared.models import FileRecord, MetadataRequest, MetadataResult, QueueStats, Settings
from shared.utils import (
    config as service_config,
    format_processing_time,
    parse_processing_time,
    setup_logging,
)

if TYPE_CHECKING:
    from services.notifications import ExternalNotifier
    from services.websocket_progress import WebSocketProgressManager


class MetadataProcessor(Protocol):
    async def generate(self, request: MetadataRequest) -> MetadataResult: ...


class QueueManager:
    """Poll the store for queued files and process up to ``concurrent_processing`` at a time.

    A file is claimed synchronously inside a poll tick (status=processing,
    attempts+1) and dispatched as an asyncio task. Failed attempts are re-queued
    after ``retry_delay`` until ``max_retries`` is exhausted, then the file ends
    in ``error``. ``stop()`` advances the epoch so results of calls dispatched
    before it are discarded when they resolve.
    """

    def __init__(
        self,
        store: StateStore,
        processor: MetadataProcessor | None = None,
        notifier: ExternalNotifier | None = None,
        progress: WebSocketProgressManager | None = None,
    ) -> None:
        self.logger = setup_logging("queue-manager", service_config.get("log_level", "INFO"))
        self.store = store
        if processor is None:
            from services.image_analysis import ImageAnalysisService

            processor = ImageAnalysisService()
        self.processor = processor
        self.notifier = notifier
        self.progress = progress
        self.is_running = False
        self.epoch = 0
        self._poll_task: asyncio.Task[None] | None = None
        self._processing_files: set[int] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def processing_files(self) -> frozenset[int]:
        return frozenset(self._processing_files)

    @property
    def status(self) -> QueueStatus:
        return self.store.get_snapshot().queue_stats.queue_status

    # Lifecycle
    def start(self) -> None:
        """Begin polling on the configured interval. Must be called inside a running event loop."""
        if self.is_running:
            return

        self.is_running = True
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        self.store.update_queue_stats(queue_status=QueueStatus.RUNNING)
        self.logger.info(
            "Queue started (interval=%ss, concurrency=%s)",
            self.store.settings.queue.queue_check_interval,
            self.store.settings.queue.concurrent_processing,
        )

    def pause(self) -> None:
        """Stop claiming new files; in-flight calls run to completion."""
        self.is_running = False
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self.store.update_queue_stats(queue_status=QueueStatus.PAUSED)
        self.logger.info("Queue paused with %d file(s) in flight", len(self._processing_files))

    def stop(self) -> None:
        """Pause, forget all claims and discard results of calls already dispatched."""
        self.pause()
        self._processing_files.clear()
        self.epoch += 1
        self.store.update_queue_stats(queue_status=QueueStatus.STOPPED, processing=0)
        self.logger.info("Queue stopped (epoch %d)", self.epoch)

    async def wait_until_idle(self) -> None:
        """Wait for every dispatched call, retry timer and progress publish to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.pause()
        await self.wait_until_idle()

    async def _poll_loop(self) -> None:
        while self.is_running:
            await asyncio.sleep(self.store.settings.queue.queue_check_interval)
            if not self.is_running:
                break
            try:
                self.process_queue()
            except Exception:
                self.logger.exception("Queue poll cycle failed")

    # Poll cycle
    def process_queue(self) -> list[int]:
        """Run one poll cycle; returns the ids claimed in this cycle."""
        if not self.is_running:
            return []

        snapshot = self.store.get_snapshot()
        settings = snapshot.settings
        available_slots = settings.queue.concurrent_processing - len(self._processing_files)

        claimed: list[int] = []
        if available_slots > 0:
            candidates = [
                item
                for item in snapshot.files
                if item.status == FileStatus.QUEUED and item.id not in self._processing_files
            ]
            for item in candidates[:available_slots]:
                record = self._claim(item)
                if record is None:
                    continue
                claimed.append(record.id)
                self._spawn(self._process_file(record, self.epoch, settings))

        if claimed:
            self.logger.debug("Claimed files %s (%d in flight)", claimed, len(self._processing_files))
        self.update_queue_stats()
        return claimed

    def _claim(self, item: FileRecord) -> FileRecord | None:
        self._processing_files.add(item.id)
        record = self.store.update_file(item.id, status=FileStatus.PROCESSING, attempts=item.attempts + 1)
        if record is None:
            self._processing_files.discard(item.id)
            return None
        self._publish(record.project_id, "file_processing", record)
        return record

    async def _process_file(self, record: FileRecord, epoch: int, settings: Settings) -> None:
        request = MetadataRequest(
            file_id=record.id,
            image_url=record.thumbnail,
            prompt=record.prompt,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
        started = time.monotonic()
        try:
            try:
                result = await self._call_processor(request, settings.queue.timeout)
            except Exception as exc:
                if self._is_stale(epoch):
                    self.logger.info("Discarding failure for file %s from stopped epoch %d", record.id, epoch)
                    return
                await self._handle_failure(record, exc, settings)
                return

            if self._is_stale(epoch):
                self.logger.info("Discarding result for file %s from stopped epoch %d", record.id, epoch)
                return
            await self._handle_success(record, result, time.monotonic() - started, settings)
        finally:
            if not self._is_stale(epoch):
                self._processing_files.discard(record.id)

    async def _call_processor(self, request: MetadataRequest, timeout: float) -> MetadataResult:
        call = self.processor.generate(request)
        if not timeout or timeout <= 0:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except TimeoutError as exc:
            raise ProcessingTimeoutError(timeout, file_id=request.file_id) from exc

    async def _handle_success(
        self,
        record: FileRecord,
        result: MetadataResult,
        elapsed: float,
        settings: Settings,
    ) -> None:
        processing_time = format_processing_time(elapsed)
        changes: dict[str, Any] = {
            "status": FileStatus.COMPLETED,
            "description": result.description,
            "keywords": result.keywords,
            "processing_time": processing_time,
            "error": None,
        }
        current = self.store.get_file(record.id)
        if current is None:
            self.logger.info("File %s was deleted while processing; dropping result", record.id)
            return
        if result.title and not current.adobe_title:
            changes["adobe_title"] = result.title
        if result.category and not current.adobe_category:
            changes["adobe_category"] = result.category

        updated = self.store.update_file(record.id, **changes)
        project = self.store.get_project(record.project_id)
        if project is not None:
            self.store.update_project(project.id, processed=project.processed + 1)

        self.logger.info("File %s processed in %s (attempt %d)", record.filename, processing_time, record.attempts)
        if updated is not None:
            self._publish(record.project_id, "file_completed", updated)

        if settings.notifications.project_completion:
            self.store.add_notification(
                NotificationType.SUCCESS,
                "File Processed",
                f"{record.filename} processed in {processing_time}.",
                NotificationCategory.PROCESSING,
                metadata={"file_id": record.id, "project_id": record.project_id},
            )
            await self._send_external(f"✅ File processed: {record.filename}", settings)

    async def _handle_failure(self, record: FileRecord, exc: Exception, settings: Settings) -> None:
        message = str(exc) or exc.__class__.__name__
        if self.store.get_file(record.id) is None:
            self.logger.info("File %s was deleted while processing; dropping failure: %s", record.id, message)
            return

        if record.attempts <= settings.queue.max_retries:
            self.logger.warning(
                "Processing failed for %s (attempt %d/%d), retrying in %ss: %s",
                record.filename,
                record.attempts,
                settings.queue.max_retries + 1,
                settings.queue.retry_delay,
                message,
            )
            self._spawn(self._requeue_after(record.id, settings.queue.retry_delay))
            self._publish(record.project_id, "file_retry_scheduled", record, error=message)
            return

        self.logger.error("Processing failed for %s after %d attempts: %s", record.filename, record.attempts, message)
        updated = self.store.update_file(record.id, status=FileStatus.ERROR, error=message)
        project = self.store.get_project(record.project_id)
        if project is not None:
            self.store.update_project(project.id, errors=project.errors + 1)
        if updated is not None:
            self._publish(record.project_id, "file_failed", updated, error=message)

        if settings.notifications.errors:
            self.store.add_notification(
                NotificationType.ERROR,
                "Processing Failed",
                f"{record.filename}: {message}",
                NotificationCategory.PROCESSING,
                metadata={"file_id": record.id, "project_id": record.project_id},
            )
            await self._send_external(f"❌ Processing failed: {record.filename}\nError: {message}", settings)

    async def _requeue_after(self, file_id: int, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        current = self.store.get_file(file_id)
        # A user edit or retry_failed_files may have moved the file on already.
        if current is None or current.status != FileStatus.PROCESSING or file_id in self._processing_files:
            return
        self.store.update_file(file_id, status=FileStatus.QUEUED)

    def _is_stale(self, epoch: int) -> bool:
        return epoch != self.epoch

    # Stats
    def update_queue_stats(self) -> QueueStats:
        snapshot = self.store.get_snapshot()
        files = snapshot.files

        total_in_queue = sum(1 for item in files if item.status == FileStatus.QUEUED)
        completed = sum(1 for item in files if item.status == FileStatus.COMPLETED)
        failed = sum(1 for item in files if item.status == FileStatus.ERROR)

        durations: list[float] = []
        for item in files:
            if item.status != FileStatus.COMPLETED:
                continue
            seconds = parse_processing_time(item.processing_time)
            if seconds is not None:
                durations.append(seconds)
        avg_time = sum(durations) / len(durations) if durations else 0.0

        concurrency = snapshot.settings.queue.concurrent_processing
        estimated = math.ceil(total_in_queue * avg_time / concurrency) if total_in_queue and avg_time > 0 else 0

        stats = self.store.update_queue_stats(
            total_in_queue=total_in_queue,
            processing=len(self._processing_files),
            completed=completed,
            failed=failed,
            avg_processing_time=round(avg_time, 1),
            estimated_time_remaining=estimated,
        )
        if self.progress is not None:
            self._spawn(self._broadcast({"event": "queue_stats", **stats.model_dump(mode="json")}))
        return stats

    # Manual actions
    def retry_failed_files(self, file_ids: Iterable[int] | None = None) -> int:
        """Send failed files back to the queue with a fresh attempt budget."""
        wanted = set(file_ids) if file_ids is not None else None
        targets = [
            item
            for item in self.store.files
            if item.status == FileStatus.ERROR and (wanted is None or item.id in wanted)
        ]
        for item in targets:
            self.store.update_file(item.id, status=FileStatus.QUEUED, attempts=0, error=None)
        if targets:
            self.logger.info("Re-queued %d failed file(s)", len(targets))
        return len(targets)

    # Side effects
    async def _send_external(self, message: str, settings: Settings) -> None:
        if self.notifier is None or not settings.notifications.telegram:
            return
        try:
            await self.notifier.send(message)
        except Exception as exc:
            self.logger.error("Failed to send notification: %s", exc)

    def _publish(self, project_id: int, event: str, record: FileRecord, **extra: Any) -> None:
        if self.progress is None:
            return
        payload = {
            "event": event,
            "file_id": record.id,
            "project_id": project_id,
            "status": record.status.value,
            "attempts": record.attempts,
            **extra,
        }
        self._spawn(self._send_progress(project_id, payload))

    async def _send_progress(self, project_id: int, payload: dict[str, Any]) -> None:
        try:
            await self.progress.send_progress_update(project_id, payload)
        except Exception as exc:
            self.logger.warning("Failed to publish queue event: %s", exc)

    async def _broadcast(self, payload: dict[str, Any]) -> None:
        try:
            await self.progress.broadcast_system_message(payload)
        except Exception as exc:
            self.logger.warning("Failed to broadcast queue stats: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
