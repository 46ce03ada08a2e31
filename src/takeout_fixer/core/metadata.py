from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
import json
from typing import Any

from takeout_fixer.util.errors import FormatError
from takeout_fixer.util.timeparse import parse_epoch_seconds

@dataclass(frozen=True)
class TimeInfo:
    timestamp: str
    formatted: str

@dataclass(frozen=True)
class GeoData:
    latitude: float
    longitude: float
    altitude: float
    latitude_span: float | None = None
    longitude_span: float | None = None

    @property
    def is_empty(self) -> bool:
        # Google writes (0, 0) when the photo had no GPS fix.
        return self.latitude == 0.0 and self.longitude == 0.0

@dataclass(frozen=True)
class Person:
    name: str

@dataclass(frozen=True)
class MetadataRecord:
    """One parsed sidecar (``<media>.supplemental-metadata.json``).

    - photo_taken_time is authoritative for embedding.
    - people is carried but never written into the media file.
    """
    title: str
    creation_time: TimeInfo
    photo_taken_time: TimeInfo
    geo_data: GeoData
    description: str | None = None
    image_views: str | None = None
    people: tuple[Person, ...] | None = None
    url: str | None = None

    @property
    def captured_date(self) -> datetime | None:
        """UTC instant of capture, or None when the timestamp is invalid."""
        return parse_epoch_seconds(self.photo_taken_time.timestamp)

    @property
    def has_location(self) -> bool:
        return not self.geo_data.is_empty


def parse_metadata(data: bytes | str) -> MetadataRecord:
    """Parse sidecar JSON into a MetadataRecord.

    Raises FormatError when the payload is not JSON or does not match the
    sidecar schema. Unknown keys are ignored.
    """
    try:
        raw = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise FormatError(f"Invalid sidecar JSON: {e}") from e
    if not isinstance(raw, dict):
        raise FormatError("Sidecar JSON must be an object.")

    return MetadataRecord(
        title=_req_str(raw, "title"),
        description=_opt_str(raw, "description"),
        image_views=_opt_str(raw, "imageViews"),
        creation_time=_time_info(raw, "creationTime"),
        photo_taken_time=_time_info(raw, "photoTakenTime"),
        geo_data=_geo_data(raw),
        people=_people(raw),
        url=_opt_str(raw, "url"),
    )

def load_metadata(path: Path) -> MetadataRecord:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FormatError(f"Cannot read sidecar {path}: {e}") from e
    try:
        return parse_metadata(data)
    except FormatError as e:
        raise FormatError(f"{path.name}: {e}") from e

def _req_str(obj: dict[str, Any], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise FormatError(f"Missing or non-string field '{key}'.")
    return v

def _opt_str(obj: dict[str, Any], key: str) -> str | None:
    v = obj.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise FormatError(f"Field '{key}' must be a string.")
    return v

def _req_obj(obj: dict[str, Any], key: str) -> dict[str, Any]:
    v = obj.get(key)
    if not isinstance(v, dict):
        raise FormatError(f"Missing or non-object field '{key}'.")
    return v

def _time_info(obj: dict[str, Any], key: str) -> TimeInfo:
    t = _req_obj(obj, key)
    return TimeInfo(
        timestamp=_req_str(t, "timestamp"),
        formatted=_req_str(t, "formatted"),
    )

def _number(obj: dict[str, Any], key: str, required: bool = True) -> float | None:
    v = obj.get(key)
    if v is None and not required:
        return None
    # bool is an int subclass; reject it explicitly.
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise FormatError(f"geoData.{key} must be a number.")
    return float(v)

def _geo_data(obj: dict[str, Any]) -> GeoData:
    g = _req_obj(obj, "geoData")
    return GeoData(
        latitude=_number(g, "latitude"),
        longitude=_number(g, "longitude"),
        altitude=_number(g, "altitude"),
        latitude_span=_number(g, "latitudeSpan", required=False),
        longitude_span=_number(g, "longitudeSpan", required=False),
    )

def _people(obj: dict[str, Any]) -> tuple[Person, ...] | None:
    v = obj.get("people")
    if v is None:
        return None
    if not isinstance(v, list):
        raise FormatError("Field 'people' must be a list.")
    out: list[Person] = []
    for p in v:
        if not isinstance(p, dict) or not isinstance(p.get("name"), str):
            raise FormatError("Each entry in 'people' needs a string 'name'.")
        out.append(Person(name=p["name"]))
    return tuple(out)
