from __future__ import annotations

from pathlib import Path
import os
import shutil
import subprocess
import sys

from takeout_fixer.core.metadata import MetadataRecord
from takeout_fixer.ops.copier import copy_verbatim, set_file_times, temp_sibling
from takeout_fixer.util.errors import ExifToolError
from takeout_fixer.util.paths import ensure_dir, is_image, is_video
from takeout_fixer.util.timeparse import format_exif_datetime, to_exif_timezone

class ExifToolWriter:
    """Embed sidecar metadata into media files.

    Images are rewritten with ExifTool; videos are copied verbatim. In both
    cases the output file's timestamps are set to the capture time.
    """

    def __init__(self, exif_timezone: str = "UTC", exiftool_path: str = "") -> None:
        self.exif_timezone = exif_timezone
        self.exiftool_path = exiftool_path or _resolve_exiftool_path()

    def embed(self, media_path: Path, record: MetadataRecord, output_path: Path) -> Path:
        """Write media_path with record applied to output_path.

        Raises EmbedError (ExifToolError) when the image container cannot be
        rewritten; output_path is left untouched in that case.
        """
        if is_image(media_path):
            self._write_image(media_path, record, output_path)
        elif is_video(media_path):
            # Video containers are not rewritten, only their file times.
            copy_verbatim(media_path, output_path)
        else:
            raise ExifToolError(f"Unsupported media type: {media_path.name}")

        self.apply_file_times(output_path, record)
        return output_path

    def apply_file_times(self, path: Path, record: MetadataRecord) -> bool:
        captured = record.captured_date
        if captured is None:
            return False
        set_file_times(path, captured)
        return True

    def build_tag_args(self, record: MetadataRecord) -> list[str]:
        """ExifTool assignments for one record.

        Date tags are skipped when the capture time is invalid; GPS is skipped
        for the (0, 0) placeholder. An existing GPS block is cleared before new
        coordinates are written so stale tags do not survive.
        """
        args: list[str] = []

        captured = record.captured_date
        if captured is not None:
            stamp = format_exif_datetime(to_exif_timezone(captured, self.exif_timezone))
            args += [
                f"-EXIF:DateTimeOriginal={stamp}",
                f"-EXIF:CreateDate={stamp}",
                f"-EXIF:ModifyDate={stamp}",
            ]

        if record.has_location:
            geo = record.geo_data
            args += [
                "-GPS:all=",
                f"-GPSLatitude={abs(geo.latitude)}",
                f"-GPSLatitudeRef={_gps_lat_ref(geo.latitude)}",
                f"-GPSLongitude={abs(geo.longitude)}",
                f"-GPSLongitudeRef={_gps_lon_ref(geo.longitude)}",
                # EXIF stores altitude unsigned; the sign lives in GPSAltitudeRef.
                f"-GPSAltitude={abs(geo.altitude)}",
                f"-GPSAltitudeRef#={_gps_alt_ref(geo.altitude)}",
            ]

        return args

    def _write_image(self, media_path: Path, record: MetadataRecord, output_path: Path) -> None:
        ensure_dir(output_path.parent)
        tmp = temp_sibling(output_path)
        try:
            # Start from a copy of the original so unrelated tags survive.
            shutil.copyfile(media_path, tmp)
            cmd = [
                self.exiftool_path,
                "-overwrite_original",
                "-m",
                *self.build_tag_args(record),
                str(tmp),
            ]
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                )
            except FileNotFoundError as e:
                raise ExifToolError(_exiftool_missing_message()) from e
            except OSError as e:
                raise ExifToolError(f"ExifTool could not be started: {e}") from e

            if proc.returncode != 0:
                raise ExifToolError(proc.stderr.strip() or "ExifTool returned non-zero exit code.")

            os.replace(tmp, output_path)
        finally:
            if tmp.exists():
                tmp.unlink()


def _gps_lat_ref(lat: float) -> str:
    return "N" if lat >= 0 else "S"


def _gps_lon_ref(lon: float) -> str:
    return "E" if lon >= 0 else "W"


def _gps_alt_ref(alt: float) -> str:
    return "0" if alt >= 0 else "1"


def _resolve_exiftool_path() -> str:
    """Resolve an ExifTool executable path.

    Resolution order:
    1) TAKEOUT_FIXER_EXIFTOOL_PATH env var (explicit override)
    2) Bundled binary next to the app executable (PyInstaller onedir/.app)
    3) PATH lookup
    4) Common macOS locations
    5) Fallback: "exiftool" (may still fail at runtime with a friendly error)
    """
    env_path = os.environ.get("TAKEOUT_FIXER_EXIFTOOL_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            return str(p)

    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        bundled = exe_dir / "bin" / "exiftool"
        if bundled.exists():
            return str(bundled)

    which = shutil.which("exiftool")
    if which:
        return which

    for cand in ("/opt/homebrew/bin/exiftool", "/usr/local/bin/exiftool", "/usr/bin/exiftool"):
        if Path(cand).exists():
            return cand

    return "exiftool"


def _exiftool_missing_message() -> str:
    return (
        "ExifTool not found. Install ExifTool or set TAKEOUT_FIXER_EXIFTOOL_PATH, "
        "or set exiftool_path in settings."
    )


def is_exiftool_available() -> bool:
    path = _resolve_exiftool_path()
    if path == "exiftool":
        return shutil.which("exiftool") is not None
    return Path(path).exists()
