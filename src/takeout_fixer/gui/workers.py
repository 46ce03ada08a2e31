from __future__ import annotations

from PySide6.QtCore import QThread, Signal
from pathlib import Path

from takeout_fixer.core.events import (
    BatchEvent,
    FileResultEvent,
    FileStartedEvent,
    ProgressEvent,
    StatusEvent,
)
from takeout_fixer.core.orchestrator import BatchOrchestrator

class BatchWorker(QThread):
    """Runs a blocking batch off the UI thread.

    Core events are re-emitted as Qt signals; Qt queues them onto the thread
    that owns the connected slots, so views never see background threads.
    """
    progress = Signal(str, float, int, int)  # archive_id, fraction, total, processed
    status = Signal(str)
    file_started = Signal(str)
    file_result = Signal(object)  # ProcessingResult
    completed = Signal(object)  # BatchReport
    failed = Signal(str)

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        archives: list[Path],
        extracted: bool = False,
    ) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.archives = archives
        self.extracted = extracted
        orchestrator.on_event = self._forward

    def cancel(self) -> None:
        self.orchestrator.cancel()

    def run(self) -> None:
        try:
            if self.extracted:
                report = self.orchestrator.run_extracted(self.archives)
            else:
                report = self.orchestrator.run(self.archives)
            self.completed.emit(report)
        except Exception as e:
            self.failed.emit(str(e))

    def _forward(self, event: BatchEvent) -> None:
        if isinstance(event, ProgressEvent):
            self.progress.emit(event.archive_id, event.fraction, event.total, event.processed)
        elif isinstance(event, StatusEvent):
            self.status.emit(event.message)
        elif isinstance(event, FileStartedEvent):
            self.file_started.emit(event.filename)
        elif isinstance(event, FileResultEvent):
            self.file_result.emit(event.result)


class ReprocessWorker(QThread):
    completed = Signal(object)  # list[ProcessingResult]
    failed = Signal(str)

    def __init__(self, orchestrator: BatchOrchestrator, search_root: Path | None = None) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.search_root = search_root

    def run(self) -> None:
        try:
            updated = self.orchestrator.reprocess_missed(self.search_root)
            self.completed.emit(updated)
        except Exception as e:
            self.failed.emit(str(e))
