from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from pathlib import Path
import threading
from typing import Iterable
import uuid

from takeout_fixer.core.events import (
    BatchEvent,
    EventCb,
    FileResultEvent,
    StatusEvent,
    ignore_event,
)
from takeout_fixer.core.manifest import ManifestWriter
from takeout_fixer.core.pipeline import ArchivePipeline, ArchiveStage, ArchiveState, Embedder
from takeout_fixer.core.resolver import MetadataResolver
from takeout_fixer.core.results import MetadataStatus, ProcessingResult
from takeout_fixer.core.run_logger import RunLogger
from takeout_fixer.core.run_summary import ArchiveSummary, RunSummary, count_statuses, write_run_summary
from takeout_fixer.core.settings import AppSettings
from takeout_fixer.exif.exiftool_writer import ExifToolWriter
from takeout_fixer.ops.copier import remove_quietly
from takeout_fixer.ops.extractor import ArchiveExtractor
from takeout_fixer.util.errors import EmbedError, ExtractionError, UserCancelledError

@dataclass
class ArchiveReport:
    archive_id: str
    archive_path: Path | None
    state: ArchiveState = field(default_factory=ArchiveState)
    summary: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.state.stage == ArchiveStage.COMPLETED

@dataclass
class BatchReport:
    run_id: str
    archives: list[ArchiveReport] = field(default_factory=list)
    results: list[ProcessingResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> list[ArchiveReport]:
        return [a for a in self.archives if a.ok]

    @property
    def failed(self) -> list[ArchiveReport]:
        return [a for a in self.archives if not a.ok]

    @property
    def missed(self) -> list[ProcessingResult]:
        return [r for r in self.results if r.missed]

class BatchOrchestrator:
    """Run archives one at a time through extraction and the pipeline.

    Two entry points share the same per-archive step:
    - run(): blocking, meant for a worker thread (see gui.workers.BatchWorker)
    - run_async(): task based; each archive runs in a thread via
      asyncio.to_thread and events are re-dispatched onto the event loop.

    A failing archive is recorded and the batch moves on in both modes.
    Nothing raises past this class; failures end up in the BatchReport.
    """

    def __init__(
        self,
        output_root: Path,
        settings: AppSettings | None = None,
        extractor: ArchiveExtractor | None = None,
        writer: Embedder | None = None,
        on_event: EventCb = ignore_event,
        run_folder: Path | None = None,
    ) -> None:
        self.output_root = output_root
        self.settings = settings or AppSettings()
        self.extractor = extractor or ArchiveExtractor(extractor_path=self.settings.extractor_path)
        self.writer = writer or ExifToolWriter(
            exif_timezone=self.settings.exif_timezone,
            exiftool_path=self.settings.exiftool_path,
        )
        self.on_event = on_event
        self.run_folder = run_folder
        self.logger = RunLogger(run_folder / "run_log.txt") if run_folder else None
        self.run_id = str(uuid.uuid4())
        self.results: list[ProcessingResult] = []
        self._loop_dispatch: EventCb | None = None
        self._cancelled = threading.Event()
        self._lock = threading.Lock()

    # ---- public API -----------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation; honoured at the next file boundary."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, archives: Iterable[Path]) -> BatchReport:
        queue = list(archives)
        report = self._begin(queue)
        for index, archive in enumerate(queue, start=1):
            if self.cancelled:
                break
            report.archives.append(self._run_archive(index, len(queue), archive))
        return self._finish(report)

    async def run_async(self, archives: Iterable[Path]) -> BatchReport:
        loop = asyncio.get_running_loop()
        self._loop_dispatch = lambda ev: loop.call_soon_threadsafe(self.on_event, ev)
        try:
            queue = list(archives)
            report = self._begin(queue)
            for index, archive in enumerate(queue, start=1):
                if self.cancelled:
                    break
                report.archives.append(
                    await asyncio.to_thread(self._run_archive, index, len(queue), archive)
                )
            report = self._finish(report)
            # Let queued event callbacks run before returning.
            await asyncio.sleep(0)
            return report
        finally:
            self._loop_dispatch = None

    def run_extracted(self, directories: Iterable[Path]) -> BatchReport:
        """Blocking batch over already extracted trees."""
        queue = list(directories)
        report = self._begin(queue)
        for directory in queue:
            if self.cancelled:
                break
            report.archives.append(self.process_directory(directory))
        return self._finish(report)

    def process_directory(self, extracted_dir: Path, label: str | None = None) -> ArchiveReport:
        """Run the pipeline on an already extracted tree (no extraction, no cleanup)."""
        archive_id = str(uuid.uuid4())
        report = ArchiveReport(archive_id=archive_id, archive_path=None)
        self._run_pipeline(report, extracted_dir, label or extracted_dir.name, cleanup=False)
        return report

    def reprocess_missed(self, search_root: Path | None = None) -> list[ProcessingResult]:
        """Look again for sidecars of files that ended up without metadata.

        The lookup runs next to each output file and below search_root
        (default: the output root). On a hit the output file is re-embedded in
        place, the consumed sidecar is deleted and the stored result becomes
        metadataFoundLate. Returns the updated results.
        """
        root = search_root or self.output_root
        resolver = MetadataResolver(log=self._log)
        updated: list[ProcessingResult] = []

        with self._lock:
            snapshot = list(enumerate(self.results))
        candidates = [
            (i, r) for i, r in snapshot
            if r.missed and r.output_path is not None and r.output_path.exists()
        ]
        self._status(f"Reprocessing {len(candidates)} missed files...")

        for i, r in candidates:
            if self.cancelled:
                break
            self._log(f"Rechecking: {r.filename}")
            resolution = resolver.resolve(r.output_path, root)
            if resolution.record is None:
                continue
            try:
                self.writer.embed(r.output_path, resolution.record, r.output_path)
            except (EmbedError, OSError) as e:
                self._log(f"Re-embedding failed for {r.filename}: {e}")
                continue
            if resolution.sidecar_path is not None and not remove_quietly(resolution.sidecar_path):
                self._log(f"Could not delete sidecar {resolution.sidecar_path}")

            new = replace(
                r,
                metadata_status=MetadataStatus.METADATA_FOUND_LATE,
                processed_with_metadata=True,
                sidecar_path=resolution.sidecar_path,
                capture_time_valid=resolution.record.captured_date is not None,
                error="",
            )
            with self._lock:
                self.results[i] = new
            updated.append(new)
            self._send(FileResultEvent(new))

        self._status(f"Reprocessing complete: {len(updated)}/{len(candidates)} files recovered")
        if self.run_folder:
            self._write_manifest()
        return updated

    # ---- shared steps -----------------------------------------------------

    def _begin(self, queue: list[Path]) -> BatchReport:
        self._log(f"Batch started. Output root: {self.output_root}")
        self._status(f"Starting to process {len(queue)} archive(s)...")
        return BatchReport(run_id=self.run_id)

    def _finish(self, report: BatchReport) -> BatchReport:
        report.cancelled = self.cancelled
        with self._lock:
            report.results = list(self.results)
        if report.cancelled:
            self._status("Cancelled by user.")
        self._status(
            f"Processing complete! {len(report.succeeded)} successful, {len(report.failed)} failed"
        )
        if self.run_folder:
            self._write_artifacts(report)
        return report

    def _run_archive(self, index: int, count: int, archive: Path) -> ArchiveReport:
        report = ArchiveReport(archive_id=str(uuid.uuid4()), archive_path=archive)
        self._status(f"Processing archive {index}/{count}: {archive.name}")

        report.state.stage = ArchiveStage.EXTRACTING
        try:
            extracted = self.extractor.extract(archive)
        except ExtractionError as e:
            self._fail(report, str(e))
            return report
        except Exception as e:
            self._fail(report, f"Error extracting {archive.name}: {e}")
            return report

        self._run_pipeline(report, extracted, archive.stem, cleanup=self.settings.cleanup_extracted)
        return report

    def _run_pipeline(self, report: ArchiveReport, extracted: Path, label: str, cleanup: bool) -> None:
        name = report.archive_path.name if report.archive_path else extracted.name
        pipeline = ArchivePipeline(
            output_root=self.output_root,
            writer=self.writer,
            root_marker=self.settings.root_marker,
            on_event=self._emit,
            cancel_cb=self._cancelled.is_set,
            log=self._log,
        )
        try:
            outcome = pipeline.process_extracted(
                extracted,
                archive_id=report.archive_id,
                archive_label=label,
                state=report.state,
                cleanup=cleanup,
            )
        except UserCancelledError:
            self._fail(report, "Cancelled by user.")
            return
        except Exception as e:
            self._fail(report, f"Error processing {name}: {e}")
            return

        report.summary = outcome.summary
        self._status(f"Completed: {name}")
        self._log(f"{name}: {outcome.summary}")

    def _fail(self, report: ArchiveReport, message: str) -> None:
        report.state.stage = ArchiveStage.FAILED
        report.state.message = message
        report.error = message
        self._status(message)

    def _emit(self, event: BatchEvent) -> None:
        if isinstance(event, FileResultEvent):
            with self._lock:
                self.results.append(event.result)
        elif isinstance(event, StatusEvent):
            self._log(event.message)
        self._send(event)

    def _send(self, event: BatchEvent) -> None:
        if self._loop_dispatch is not None:
            self._loop_dispatch(event)
        else:
            self.on_event(event)

    def _status(self, message: str) -> None:
        self._log(message)
        self._send(StatusEvent(message))

    def _log(self, message: str) -> None:
        if not self.logger:
            return
        try:
            self.logger.log(message)
        except OSError as e:
            # Broken log: stop writing to it.
            self.logger = None
            self._send(StatusEvent(f"Run log disabled: {e}"))

    def _write_manifest(self) -> None:
        manifest = ManifestWriter(self.run_folder / "manifest.csv")
        with self._lock:
            manifest.add_results(list(self.results))
        try:
            manifest.write()
        except OSError as e:
            self._status(f"Could not write manifest: {e}")

    def _write_artifacts(self, report: BatchReport) -> None:
        self._write_manifest()
        try:
            summary = RunSummary(
                run_id=report.run_id,
                output_root=str(self.output_root),
                cancelled=report.cancelled,
                archives=[
                    ArchiveSummary(
                        archive_id=a.archive_id,
                        archive_path=str(a.archive_path) if a.archive_path else None,
                        status=a.state.stage.value,
                        summary=a.summary,
                        error=a.error,
                        total=a.state.total,
                        processed=a.state.processed,
                    )
                    for a in report.archives
                ],
                counts=count_statuses(report.results),
            )
            write_run_summary(self.run_folder / "run_summary.json", summary)
        except Exception as exc:
            self._status(f"Run summary failed: {exc}")
