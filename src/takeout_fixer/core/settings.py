from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
import json
from datetime import datetime
from appdirs import user_config_dir

from takeout_fixer.core.scanner import DEFAULT_ROOT_MARKER

def _config_path() -> Path:
    cfg_dir = Path(user_config_dir(appname="TakeoutFixer", appauthor=False))
    cfg_dir.mkdir(parents=True, exist_ok=True)
    return cfg_dir / "settings.json"

@dataclass
class AppSettings:
    """User-persistent settings.

    Stored in: ~/Library/Application Support/TakeoutFixer/settings.json (macOS),
    ~/.config/TakeoutFixer/settings.json (Linux).
    """
    last_output_dir: str = ""
    exiftool_path: str = ""
    extractor_path: str = ""
    exif_timezone: str = "UTC"
    root_marker: str = DEFAULT_ROOT_MARKER
    write_run_artifacts: bool = True
    cleanup_extracted: bool = True

    @classmethod
    def load(cls, path: Path | None = None) -> "AppSettings":
        p = path or _config_path()
        if not p.exists():
            return cls()
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            known = {f.name for f in fields(cls)}
            return cls(**{k: v for k, v in data.items() if k in known})
        except Exception:
            # Fail safe: a broken settings file must not block a run.
            return cls()

    def save(self, path: Path | None = None) -> None:
        p = path or _config_path()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    @staticmethod
    def new_run_folder(output_root: Path) -> Path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return output_root / f"TakeoutFixer_{stamp}"
