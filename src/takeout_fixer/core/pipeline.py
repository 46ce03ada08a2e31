from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from takeout_fixer.core.events import (
    EventCb,
    FileResultEvent,
    FileStartedEvent,
    ProgressEvent,
    StatusEvent,
    ignore_event,
)
from takeout_fixer.core.metadata import MetadataRecord
from takeout_fixer.core.resolver import MetadataResolver
from takeout_fixer.core.results import MetadataStatus, ProcessingResult
from takeout_fixer.core.scanner import DEFAULT_ROOT_MARKER, MediaFile, discover_media, output_path_for
from takeout_fixer.ops.copier import copy_verbatim, remove_quietly
from takeout_fixer.util.errors import EmbedError, UserCancelledError

CancelCb = Callable[[], bool]  # returns True if cancelled
LogCb = Callable[[str], None]

class Embedder(Protocol):
    def embed(self, media_path: Path, record: MetadataRecord, output_path: Path) -> Path: ...
    def apply_file_times(self, path: Path, record: MetadataRecord) -> bool: ...

class ArchiveStage(str, Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    FAILED = "failed"

@dataclass
class ArchiveState:
    stage: ArchiveStage = ArchiveStage.PENDING
    total: int = 0
    processed: int = 0
    message: str = ""

    @property
    def fraction(self) -> float:
        return self.processed / self.total if self.total else 0.0

@dataclass
class ArchiveOutcome:
    archive_id: str
    summary: str
    results: list[ProcessingResult] = field(default_factory=list)

class ArchivePipeline:
    """Process one extracted archive into the output tree.

    Files are handled strictly one after another. A failure on one file is
    turned into a noMetadataFound result (with a verbatim copy when possible)
    and never stops the archive.
    """

    def __init__(
        self,
        output_root: Path,
        writer: Embedder,
        resolver: MetadataResolver | None = None,
        root_marker: str = DEFAULT_ROOT_MARKER,
        on_event: EventCb = ignore_event,
        cancel_cb: CancelCb = lambda: False,
        log: LogCb | None = None,
    ) -> None:
        self.output_root = output_root
        self.writer = writer
        self.resolver = resolver or MetadataResolver(log=log)
        self.root_marker = root_marker
        self.on_event = on_event
        self.cancel_cb = cancel_cb
        self._log = log

    def process_extracted(
        self,
        extracted_dir: Path,
        archive_id: str,
        archive_label: str,
        state: ArchiveState | None = None,
        cleanup: bool = True,
    ) -> ArchiveOutcome:
        """Discover, resolve, embed and copy every media file below extracted_dir.

        Returns the outcome with summary "Processed <processed> / <total> files".
        Raises UserCancelledError when cancel_cb fires between files; cleanup
        still runs in that case.
        """
        state = state or ArchiveState()
        root = extracted_dir.expanduser().resolve()
        outcome = ArchiveOutcome(archive_id=archive_id, summary="")
        consumed: list[Path] = []

        try:
            state.stage = ArchiveStage.DISCOVERING
            media = discover_media(root, archive_label, self.root_marker)
            state.total = len(media)
            state.processed = 0
            self._status(f"Found {state.total} media files to process")
            self.on_event(ProgressEvent(archive_id, 0.0, state.total, 0))

            state.stage = ArchiveStage.PROCESSING
            for m in media:
                if self.cancel_cb():
                    raise UserCancelledError()

                self.on_event(FileStartedEvent(archive_id, m.filename))
                result = self.process_file(m, root, archive_id)
                if result.sidecar_path is not None:
                    consumed.append(result.sidecar_path)
                outcome.results.append(result)
                self.on_event(FileResultEvent(result))

                state.processed += 1
                self.on_event(ProgressEvent(archive_id, state.fraction, state.total, state.processed))

            outcome.summary = f"Processed {state.processed} / {state.total} files"
            self._status(f"Archive processing completed: {state.processed}/{state.total} files processed")
        finally:
            state.stage = ArchiveStage.CLEANING_UP
            # Deferred so an edited copy processed later can still inherit
            # from an original whose sidecar was already applied.
            for sidecar in consumed:
                if not remove_quietly(sidecar):
                    self._write_log(f"Could not delete sidecar {sidecar}")
            if cleanup:
                # Extraction dirs live at <tmp>/<uuid>/extracted.
                target = root.parent if root.name == "extracted" else root
                if not remove_quietly(target):
                    self._write_log(f"Could not delete extraction directory {target}")

        state.stage = ArchiveStage.COMPLETED
        state.message = outcome.summary
        return outcome

    def process_file(self, media: MediaFile, archive_root: Path, archive_id: str) -> ProcessingResult:
        """Process one media file; always returns a result."""
        output_path = output_path_for(media, self.output_root)
        if output_path.exists():
            self._write_log(f"Overwriting existing output {output_path} with {media.path}")
        try:
            return self._process(media, archive_root, archive_id, output_path)
        except Exception as e:
            self._write_log(f"Failed processing {media.path}: {e}")
            return self._fallback(media, archive_id, output_path, str(e))

    def _process(
        self,
        media: MediaFile,
        archive_root: Path,
        archive_id: str,
        output_path: Path,
    ) -> ProcessingResult:
        resolution = self.resolver.resolve(media.path, archive_root)
        record = resolution.record

        if record is None:
            copy_verbatim(media.path, output_path)
            return ProcessingResult(
                filename=media.filename,
                original_path=media.path,
                metadata_status=MetadataStatus.NO_METADATA_FOUND,
                processed_with_metadata=False,
                output_path=output_path,
                archive_id=archive_id,
            )

        capture_time_valid = record.captured_date is not None
        if not capture_time_valid:
            self._write_log(f"Invalid capture time in sidecar for {media.filename}")

        try:
            self.writer.embed(media.path, record, output_path)
        except EmbedError as e:
            self._write_log(f"Embedding failed for {media.filename}, copying verbatim: {e}")
            copy_verbatim(media.path, output_path)
            # File times still follow the capture time even without in-file tags.
            self.writer.apply_file_times(output_path, record)
            return ProcessingResult(
                filename=media.filename,
                original_path=media.path,
                metadata_status=MetadataStatus.NO_METADATA_FOUND,
                processed_with_metadata=False,
                output_path=output_path,
                archive_id=archive_id,
                capture_time_valid=capture_time_valid,
                error=str(e),
            )

        return ProcessingResult(
            filename=media.filename,
            original_path=media.path,
            metadata_status=resolution.status,
            processed_with_metadata=True,
            output_path=output_path,
            archive_id=archive_id,
            sidecar_path=resolution.sidecar_path,
            capture_time_valid=capture_time_valid,
        )

    def _fallback(
        self,
        media: MediaFile,
        archive_id: str,
        output_path: Path,
        reason: str,
    ) -> ProcessingResult:
        final_path: Path | None = output_path
        try:
            copy_verbatim(media.path, output_path)
        except OSError as e:
            self._write_log(f"Fallback copy failed for {media.path}: {e}")
            reason = f"{reason}; copy failed: {e}"
            final_path = None
        return ProcessingResult(
            filename=media.filename,
            original_path=media.path,
            metadata_status=MetadataStatus.NO_METADATA_FOUND,
            processed_with_metadata=False,
            output_path=final_path,
            archive_id=archive_id,
            error=reason,
        )

    def _status(self, message: str) -> None:
        self.on_event(StatusEvent(message))

    def _write_log(self, message: str) -> None:
        if self._log:
            self._log(message)
