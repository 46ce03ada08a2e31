from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from pathlib import Path
import csv

from takeout_fixer.core.results import ProcessingResult

@dataclass
class ManifestRow:
    source_path: str
    output_path: str
    archive_id: str
    status: str  # foundAndApplied|inheritedFromOriginal|noMetadataFound|metadataFoundLate
    processed_with_metadata: str  # YES|NO
    sidecar_path: str
    capture_time_valid: str  # YES|NO
    error: str

    @classmethod
    def from_result(cls, r: ProcessingResult) -> "ManifestRow":
        return cls(
            source_path=str(r.original_path),
            output_path="" if r.output_path is None else str(r.output_path),
            archive_id=r.archive_id,
            status=r.metadata_status.value,
            processed_with_metadata="YES" if r.processed_with_metadata else "NO",
            sidecar_path="" if r.sidecar_path is None else str(r.sidecar_path),
            capture_time_valid="YES" if r.capture_time_valid else "NO",
            error=r.error,
        )

class ManifestWriter:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._rows: list[ManifestRow] = []

    def add(self, row: ManifestRow) -> None:
        self._rows.append(row)

    def add_results(self, results: list[ProcessingResult]) -> None:
        for r in results:
            self.add(ManifestRow.from_result(r))

    def write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=[fld.name for fld in fields(ManifestRow)])
            w.writeheader()
            for r in self._rows:
                w.writerow(asdict(r))
