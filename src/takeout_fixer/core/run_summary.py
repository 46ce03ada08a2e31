from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
import json
from typing import Any

from takeout_fixer.core.results import MetadataStatus, ProcessingResult


@dataclass
class ArchiveSummary:
    archive_id: str
    archive_path: str | None
    status: str  # completed|failed
    summary: str = ""
    error: str = ""
    total: int = 0
    processed: int = 0


@dataclass
class RunSummary:
    run_id: str
    output_root: str
    cancelled: bool
    archives: list[ArchiveSummary]
    counts: dict[str, int] = field(default_factory=dict)


def count_statuses(results: list[ProcessingResult]) -> dict[str, int]:
    counts = {s.value: 0 for s in MetadataStatus}
    for r in results:
        counts[r.metadata_status.value] += 1
    counts["total"] = len(results)
    counts["errors"] = sum(1 for r in results if r.error)
    return counts


def write_run_summary(path: Path, summary: RunSummary) -> None:
    payload = _jsonify(asdict(summary))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _jsonify(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _jsonify(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_jsonify(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    return obj
