from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

class MetadataStatus(str, Enum):
    FOUND_AND_APPLIED = "foundAndApplied"
    INHERITED_FROM_ORIGINAL = "inheritedFromOriginal"
    NO_METADATA_FOUND = "noMetadataFound"
    METADATA_FOUND_LATE = "metadataFoundLate"

    @property
    def label(self) -> str:
        return _LABELS[self]

_LABELS = {
    MetadataStatus.FOUND_AND_APPLIED: "Metadata applied",
    MetadataStatus.INHERITED_FROM_ORIGINAL: "Inherited from original",
    MetadataStatus.NO_METADATA_FOUND: "No metadata found",
    MetadataStatus.METADATA_FOUND_LATE: "Metadata found on recheck",
}

@dataclass(frozen=True)
class ProcessingResult:
    """Outcome for one media file.

    - original_path: path inside the extracted archive
    - output_path: None only when even the fallback copy failed
    - error: empty unless processing degraded (embed failure, IO failure)
    """
    filename: str
    original_path: Path
    metadata_status: MetadataStatus
    processed_with_metadata: bool
    output_path: Path | None
    archive_id: str = ""
    sidecar_path: Path | None = None
    capture_time_valid: bool = True
    error: str = ""

    @property
    def missed(self) -> bool:
        return self.metadata_status == MetadataStatus.NO_METADATA_FOUND
