from __future__ import annotations

import csv
from pathlib import Path

from takeout_fixer.core.manifest import ManifestRow, ManifestWriter
from takeout_fixer.core.results import MetadataStatus, ProcessingResult


def test_manifest_rows_from_results(tmp_path: Path) -> None:
    results = [
        ProcessingResult(
            filename="A.jpg",
            original_path=Path("/ex/Takeout/A.jpg"),
            metadata_status=MetadataStatus.FOUND_AND_APPLIED,
            processed_with_metadata=True,
            output_path=Path("/out/Takeout/A.jpg"),
            archive_id="zip-1",
            sidecar_path=Path("/ex/Takeout/A.jpg.supplemental-metadata.json"),
        ),
        ProcessingResult(
            filename="B.jpg",
            original_path=Path("/ex/Takeout/B.jpg"),
            metadata_status=MetadataStatus.NO_METADATA_FOUND,
            processed_with_metadata=False,
            output_path=None,
            archive_id="zip-1",
            capture_time_valid=False,
            error="copy failed",
        ),
    ]
    path = tmp_path / "manifest.csv"
    writer = ManifestWriter(path)
    writer.add_results(results)
    writer.write()

    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = list(reader)
        header = reader.fieldnames

    assert header == list(ManifestRow.__dataclass_fields__)
    assert rows[0]["status"] == "foundAndApplied"
    assert rows[0]["processed_with_metadata"] == "YES"
    assert rows[0]["sidecar_path"].endswith("A.jpg.supplemental-metadata.json")
    assert rows[1]["output_path"] == ""
    assert rows[1]["capture_time_valid"] == "NO"
    assert rows[1]["error"] == "copy failed"
