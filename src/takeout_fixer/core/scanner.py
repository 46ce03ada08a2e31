from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePath

from takeout_fixer.util.paths import extension_of, is_image, is_macos_artifact, is_media

DEFAULT_ROOT_MARKER = "Takeout"

@dataclass(frozen=True)
class MediaFile:
    path: Path
    extension: str
    relative_path: PurePath

    @property
    def kind(self) -> str:
        return "image" if is_image(self.path) else "video"

    @property
    def filename(self) -> str:
        return self.path.name

def discover_media(
    extracted_dir: Path,
    archive_label: str,
    root_marker: str = DEFAULT_ROOT_MARKER,
) -> list[MediaFile]:
    """Recursively scan an extracted archive for supported media files.

    - Candidates are files whose lower-cased extension is jpg/jpeg/heic/mp4/mov.
    - AppleDouble files and __MACOSX trees (left by ditto --sequesterRsrc) are skipped.
    - The returned order is sorted for reproducible runs only; nothing downstream
      depends on it.
    """
    root = extracted_dir.expanduser().resolve()
    found: list[MediaFile] = []
    if not root.is_dir():
        return found

    for child in root.rglob("*"):
        if not child.is_file():
            continue
        if is_macos_artifact(child.relative_to(root)):
            continue
        if not is_media(child):
            continue
        found.append(MediaFile(
            path=child,
            extension=extension_of(child),
            relative_path=archive_relative_path(child, root, archive_label, root_marker),
        ))

    return sorted(found, key=lambda m: str(m.path))

def archive_relative_path(
    media_path: Path,
    extracted_dir: Path,
    archive_label: str,
    root_marker: str = DEFAULT_ROOT_MARKER,
) -> PurePath:
    """Return where a media file lands below the output root.

    Only the path below extracted_dir is searched for root_marker, so a
    marker-named folder above the extraction root never leaks into the output.
    If a segment equals root_marker, everything from the first such segment
    onward is kept (Takeout/Google Photos/Album/IMG.jpg). An extraction root
    that is itself the marker folder keeps its name as the first segment.
    Otherwise the path is placed under a folder named after the archive, so
    same-named files from different archives never collide.
    """
    try:
        rel = PurePath(media_path.relative_to(extracted_dir))
    except ValueError:
        rel = PurePath(media_path.name)

    if root_marker in rel.parts:
        idx = rel.parts.index(root_marker)
        return PurePath(*rel.parts[idx:])
    if extracted_dir.name == root_marker:
        return PurePath(root_marker) / rel
    return PurePath(archive_label) / rel

def output_path_for(media: MediaFile, output_root: Path) -> Path:
    return output_root / media.relative_path
