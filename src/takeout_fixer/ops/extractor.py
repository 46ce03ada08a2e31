from __future__ import annotations

from pathlib import Path
import os
import shutil
import subprocess
import tempfile
import uuid

from takeout_fixer.ops.copier import remove_quietly
from takeout_fixer.util.errors import ExtractionError
from takeout_fixer.util.paths import ensure_dir

class ArchiveExtractor:
    """Extract an archive with an external tool.

    ditto (macOS) is preferred because it keeps resource forks and sequesters
    them under __MACOSX; unzip is the fallback elsewhere. There is no timeout:
    a hung extractor blocks its archive.
    """

    def __init__(self, extractor_path: str = "") -> None:
        self.extractor_path = extractor_path or _resolve_extractor_path()

    def build_command(self, archive_path: Path, dest_dir: Path) -> list[str]:
        tool = Path(self.extractor_path).name
        if tool == "ditto":
            return [self.extractor_path, "-x", "-k", "--sequesterRsrc", str(archive_path), str(dest_dir)]
        return [self.extractor_path, "-qq", "-o", str(archive_path), "-d", str(dest_dir)]

    def extract(self, archive_path: Path, dest_dir: Path | None = None) -> Path:
        """Extract archive_path and return the extraction directory.

        When dest_dir is None a fresh <tmp>/<uuid>/extracted directory is used
        and removed again if extraction fails.
        """
        owned = dest_dir is None
        try:
            dest = dest_dir or make_extraction_dir()
            ensure_dir(dest)
        except OSError as e:
            raise ExtractionError(f"Could not create extraction directory for {archive_path.name}: {e}") from e

        cmd = self.build_command(archive_path, dest)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            if owned:
                remove_quietly(dest.parent)
            raise ExtractionError(f"Extractor could not be started ({self.extractor_path}): {e}") from e

        if proc.returncode != 0:
            if owned:
                remove_quietly(dest.parent)
            detail = (proc.stderr or "").strip() or f"exit code {proc.returncode}"
            raise ExtractionError(f"Extraction failed for {archive_path.name}: {detail}")

        return dest


def make_extraction_dir() -> Path:
    base = Path(tempfile.gettempdir()) / uuid.uuid4().hex
    return ensure_dir(base / "extracted")


def _resolve_extractor_path() -> str:
    """Resolve the extraction tool.

    Resolution order:
    1) TAKEOUT_FIXER_EXTRACTOR_PATH env var (explicit override)
    2) /usr/bin/ditto (macOS)
    3) unzip on PATH
    4) Fallback: "unzip" (fails at runtime with ExtractionError)
    """
    env_path = os.environ.get("TAKEOUT_FIXER_EXTRACTOR_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    if Path("/usr/bin/ditto").exists():
        return "/usr/bin/ditto"

    return shutil.which("unzip") or "unzip"
