from __future__ import annotations

from pathlib import Path

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "heic"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov"})

def ensure_dir(p: Path) -> Path:
    p.mkdir(parents=True, exist_ok=True)
    return p

def extension_of(p: Path) -> str:
    return p.suffix.lower().lstrip(".")

def is_image(p: Path) -> bool:
    return extension_of(p) in IMAGE_EXTENSIONS

def is_video(p: Path) -> bool:
    return extension_of(p) in VIDEO_EXTENSIONS

def is_media(p: Path) -> bool:
    return is_image(p) or is_video(p)

def is_macos_artifact(p: Path) -> bool:
    name = p.name
    if name.startswith("._") or name == ".DS_Store":
        return True
    parts = p.parts
    return "__MACOSX" in parts
