from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Callable

from takeout_fixer.core.metadata import MetadataRecord, load_metadata
from takeout_fixer.core.results import MetadataStatus
from takeout_fixer.util.errors import FormatError

# Google exports both spellings; the truncated one is a known quirk and both
# must be tried, primary first.
SIDECAR_SUFFIXES = (
    ".supplemental-metadata.json",
    ".supplemental-metadat.json",
)

EDITED_REGEX = re.compile(r"^(?P<base>.+)-edited(?P<ext>\.[^.]+)$", re.IGNORECASE)

LogCb = Callable[[str], None]

@dataclass(frozen=True)
class Resolution:
    """Outcome of a metadata lookup for one media file.

    - sidecar_path is the sidecar a successful embed consumes. It is None for
      inherited matches: the original's sidecar still belongs to the original.
    """
    record: MetadataRecord | None
    sidecar_path: Path | None
    status: MetadataStatus
    source_path: Path | None = None

    @property
    def found(self) -> bool:
        return self.record is not None

def sidecar_names(filename: str) -> list[str]:
    return [filename + suffix for suffix in SIDECAR_SUFFIXES]

def original_name_for_edited(filename: str) -> str | None:
    """IMG_1234-edited.JPG -> IMG_1234.JPG; None for non-edited names."""
    m = EDITED_REGEX.match(filename)
    if not m:
        return None
    return m.group("base") + m.group("ext")

def find_sidecars_under(root: Path, filename: str, exclude_dir: Path | None = None) -> list[Path]:
    """Recursive scan of root for either sidecar spelling of filename.

    Primary-spelling hits come first; within one spelling, paths are sorted.
    """
    if not root.is_dir():
        return []
    names = sidecar_names(filename)
    hits = [
        p for p in root.rglob("*.json")
        if p.name in names and p.parent != exclude_dir
    ]
    return sorted(hits, key=lambda p: (names.index(p.name), str(p)))

class MetadataResolver:
    """Locate and parse the sidecar for a media file.

    Plain files only look next to themselves (both spellings). For
    NAME-edited.EXT, first hit wins:
    1. the sidecar of NAME.EXT, same directory first, then anywhere under
       the archive root (inheritedFromOriginal)
    2. its own sidecar next to it (foundAndApplied)
    Nothing found -> noMetadataFound.

    Sidecars that fail to parse are logged and treated as absent.
    """

    def __init__(self, log: LogCb | None = None) -> None:
        self._log = log

    def resolve(self, media_path: Path, archive_root: Path) -> Resolution:
        directory = media_path.parent
        filename = media_path.name
        base_name = original_name_for_edited(filename)

        if base_name is None:
            direct = self._direct(directory, filename)
            if direct:
                return direct
            return _not_found()

        inherited = self._inherited(directory, base_name, archive_root)
        if inherited:
            return inherited

        direct = self._direct(directory, filename)
        if direct:
            return direct
        return _not_found()

    def _direct(self, directory: Path, filename: str) -> Resolution | None:
        for name in sidecar_names(filename):
            cand = directory / name
            if not cand.is_file():
                continue
            record = self._load(cand)
            if record is not None:
                return Resolution(
                    record=record,
                    sidecar_path=cand,
                    status=MetadataStatus.FOUND_AND_APPLIED,
                    source_path=cand,
                )
        return None

    def _inherited(self, directory: Path, base_name: str, archive_root: Path) -> Resolution | None:
        candidates = [directory / name for name in sidecar_names(base_name)]
        candidates += find_sidecars_under(archive_root, base_name, exclude_dir=directory)

        for cand in candidates:
            if not cand.is_file():
                continue
            record = self._load(cand)
            if record is not None:
                return Resolution(
                    record=record,
                    sidecar_path=None,
                    status=MetadataStatus.INHERITED_FROM_ORIGINAL,
                    source_path=cand,
                )
        return None

    def _load(self, path: Path) -> MetadataRecord | None:
        try:
            return load_metadata(path)
        except FormatError as e:
            if self._log:
                self._log(f"Ignoring unreadable sidecar: {e}")
            return None

def _not_found() -> Resolution:
    return Resolution(record=None, sidecar_path=None, status=MetadataStatus.NO_METADATA_FOUND)
