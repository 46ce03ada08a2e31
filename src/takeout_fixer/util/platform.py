from __future__ import annotations

import subprocess
import sys
from pathlib import Path

def open_in_finder(path: Path) -> None:
    """Reveal a folder in the platform file manager; best-effort."""
    if sys.platform == "darwin":
        cmd = ["open", str(path)]
    elif sys.platform.startswith("linux"):
        cmd = ["xdg-open", str(path)]
    elif sys.platform.startswith("win"):
        cmd = ["explorer", str(path)]
    else:
        return
    try:
        subprocess.run(cmd, check=False)
    except OSError:
        pass
