from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from takeout_fixer.core.events import FileResultEvent, FileStartedEvent, ProgressEvent
from takeout_fixer.core.pipeline import ArchivePipeline, ArchiveStage, ArchiveState
from takeout_fixer.core.results import MetadataStatus
from takeout_fixer.exif.exiftool_writer import ExifToolWriter
from takeout_fixer.ops.copier import copy_verbatim
from takeout_fixer.util.errors import UserCancelledError


class _Proc:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _media(p: Path, payload: bytes = b"\xff\xd8\xff\xe0jpeg") -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(payload + p.name.encode())
    return p


def _sidecar(path: Path, taken: str = "1700000000", lat: float = 37.0, lon: float = -122.0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({
        "title": path.name.split(".supplemental")[0],
        "creationTime": {"timestamp": taken, "formatted": ""},
        "photoTakenTime": {"timestamp": taken, "formatted": ""},
        "geoData": {"latitude": lat, "longitude": lon, "altitude": 0.0},
    }), encoding="utf-8")
    return path


@pytest.fixture
def exiftool_calls(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(cmd, **_kwargs):
        calls.append(cmd)
        return _Proc(returncode=0)

    monkeypatch.setattr("takeout_fixer.exif.exiftool_writer.subprocess.run", fake_run)
    return calls


def _pipeline(out: Path, **kwargs) -> ArchivePipeline:
    return ArchivePipeline(output_root=out, writer=ExifToolWriter(exiftool_path="exiftool"), **kwargs)


def _call_for(calls: list[list[str]], name: str) -> list[str]:
    stem = Path(name).stem
    for cmd in calls:
        if Path(cmd[-1]).name.startswith(f".{stem}."):
            return cmd
    raise AssertionError(f"no exiftool call for {name}")


def test_original_and_edited_scenario(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    album = tmp_path / "extracted" / "Takeout" / "Google Photos" / "Trip"
    _media(album / "IMG_01.jpg")
    _media(album / "IMG_01-edited.jpg")
    sc = _sidecar(album / "IMG_01.jpg.supplemental-metadata.json", lat=37.0, lon=-122.0)
    out = tmp_path / "out"

    outcome = _pipeline(out).process_extracted(tmp_path / "extracted", "zip-1", "takeout-001", cleanup=False)

    by_name = {r.filename: r for r in outcome.results}
    assert set(by_name) == {"IMG_01.jpg", "IMG_01-edited.jpg"}
    assert by_name["IMG_01.jpg"].metadata_status == MetadataStatus.FOUND_AND_APPLIED
    assert by_name["IMG_01-edited.jpg"].metadata_status == MetadataStatus.INHERITED_FROM_ORIGINAL
    assert all(r.processed_with_metadata for r in outcome.results)

    original_cmd = _call_for(exiftool_calls, "IMG_01.jpg")
    edited_cmd = _call_for(exiftool_calls, "IMG_01-edited.jpg")
    assert "-GPSLatitudeRef=N" in original_cmd
    assert "-GPSLongitudeRef=W" in original_cmd
    date_arg = "-EXIF:DateTimeOriginal=2023:11:14 22:13:20"
    assert date_arg in original_cmd
    assert date_arg in edited_cmd

    expected = out / "Takeout" / "Google Photos" / "Trip"
    assert (expected / "IMG_01.jpg").exists()
    assert (expected / "IMG_01-edited.jpg").exists()
    assert by_name["IMG_01.jpg"].output_path == expected / "IMG_01.jpg"
    # The original's sidecar was consumed; the edited copy consumed nothing.
    assert not sc.exists()
    assert by_name["IMG_01-edited.jpg"].sidecar_path is None
    assert outcome.summary == "Processed 2 / 2 files"


def test_zero_coordinates_write_no_gps(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout"
    _media(root / "IMG.jpg")
    _sidecar(root / "IMG.jpg.supplemental-metadata.json", lat=0.0, lon=0.0)

    _pipeline(tmp_path / "out").process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    cmd = _call_for(exiftool_calls, "IMG.jpg")
    assert not any(a.startswith("-GPS") for a in cmd)


def test_no_match_is_byte_identical_passthrough(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout" / "Album"
    src = _media(root / "IMG_02.jpg")
    _sidecar(root / "OTHER.jpg.supplemental-metadata.json")

    outcome = _pipeline(tmp_path / "out").process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    [r] = outcome.results
    assert r.metadata_status == MetadataStatus.NO_METADATA_FOUND
    assert r.processed_with_metadata is False
    assert r.output_path.read_bytes() == src.read_bytes()
    assert exiftool_calls == []
    # Unmatched sidecars stay where they are.
    assert (root / "OTHER.jpg.supplemental-metadata.json").exists()


def test_every_file_gets_one_result_even_on_failure(tmp_path: Path) -> None:
    class _ExplodingWriter:
        def embed(self, media_path, record, output_path):
            if "bad" in media_path.name:
                raise RuntimeError("boom")
            return copy_verbatim(media_path, output_path)

        def apply_file_times(self, path, record):
            return False

    root = tmp_path / "extracted" / "Takeout"
    for name in ("good.jpg", "bad.jpg", "clip.mp4", "none.heic"):
        _media(root / name)
    for name in ("good.jpg", "bad.jpg", "clip.mp4"):
        _sidecar(root / f"{name}.supplemental-metadata.json")

    pipeline = ArchivePipeline(output_root=tmp_path / "out", writer=_ExplodingWriter())
    outcome = pipeline.process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    assert len(outcome.results) == 4
    assert len({r.original_path for r in outcome.results}) == 4
    bad = next(r for r in outcome.results if r.filename == "bad.jpg")
    assert bad.metadata_status == MetadataStatus.NO_METADATA_FOUND
    assert bad.error == "boom"
    assert bad.output_path is not None and bad.output_path.exists()
    # A failed embed does not consume the sidecar.
    assert (root / "bad.jpg.supplemental-metadata.json").exists()


def test_embed_error_degrades_to_copy_with_capture_time(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "takeout_fixer.exif.exiftool_writer.subprocess.run",
        lambda *_a, **_k: _Proc(returncode=1, stderr="corrupt"),
    )
    root = tmp_path / "extracted" / "Takeout"
    src = _media(root / "IMG.jpg")
    sc = _sidecar(root / "IMG.jpg.supplemental-metadata.json", taken="1609459200")
    log: list[str] = []

    outcome = _pipeline(tmp_path / "out", log=log.append).process_extracted(
        tmp_path / "extracted", "z", "a", cleanup=False
    )

    [r] = outcome.results
    assert r.metadata_status == MetadataStatus.NO_METADATA_FOUND
    assert r.processed_with_metadata is False
    assert "corrupt" in r.error
    assert r.output_path.read_bytes() == src.read_bytes()
    assert os.stat(r.output_path).st_mtime == 1609459200
    assert sc.exists()
    assert any("Embedding failed" in m for m in log)


def test_second_run_finds_no_sidecars(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout"
    _media(root / "A.jpg")
    _media(root / "A-edited.jpg")
    _media(root / "B.mov")
    _sidecar(root / "A.jpg.supplemental-metadata.json")
    _sidecar(root / "B.mov.supplemental-metadat.json")
    out = tmp_path / "out"

    first = _pipeline(out).process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)
    second = _pipeline(out).process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    assert all(r.processed_with_metadata for r in first.results)
    assert len(second.results) == 3
    assert all(r.metadata_status == MetadataStatus.NO_METADATA_FOUND for r in second.results)


def test_events_and_progress(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout"
    for name in ("1.jpg", "2.jpg", "3.mp4"):
        _media(root / name)
    events = []

    _pipeline(tmp_path / "out", on_event=events.append).process_extracted(
        tmp_path / "extracted", "zip-7", "a", cleanup=False
    )

    progress = [e for e in events if isinstance(e, ProgressEvent)]
    assert [p.processed for p in progress] == [0, 1, 2, 3]
    assert progress[-1].fraction == 1.0
    assert all(p.archive_id == "zip-7" and p.total == 3 for p in progress)
    assert len([e for e in events if isinstance(e, FileStartedEvent)]) == 3
    assert len([e for e in events if isinstance(e, FileResultEvent)]) == 3


def test_cleanup_removes_extraction_dir(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    extracted = tmp_path / "job-uuid" / "extracted"
    _media(extracted / "Takeout" / "IMG.jpg")
    state = ArchiveState()

    _pipeline(tmp_path / "out").process_extracted(extracted, "z", "a", state=state, cleanup=True)

    assert not (tmp_path / "job-uuid").exists()
    assert state.stage == ArchiveStage.COMPLETED
    assert (tmp_path / "out" / "Takeout" / "IMG.jpg").exists()


def test_cancel_between_files(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    extracted = tmp_path / "job" / "extracted"
    root = extracted / "Takeout"
    for name in ("1.jpg", "2.jpg", "3.jpg"):
        _media(root / name)
    seen: list[FileResultEvent] = []

    def on_event(ev) -> None:
        if isinstance(ev, FileResultEvent):
            seen.append(ev)

    pipeline = _pipeline(tmp_path / "out", on_event=on_event, cancel_cb=lambda: len(seen) >= 1)
    with pytest.raises(UserCancelledError):
        pipeline.process_extracted(extracted, "z", "a", cleanup=True)

    assert len(seen) == 1
    assert not (tmp_path / "job").exists()


def test_edited_keeps_its_own_sidecar_when_inheriting(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout"
    _media(root / "X.jpg")
    _media(root / "X-edited.jpg")
    original_sc = _sidecar(root / "X.jpg.supplemental-metadata.json")
    own_sc = _sidecar(root / "X-edited.jpg.supplemental-metadata.json", taken="1600000000")

    outcome = _pipeline(tmp_path / "out").process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    edited = next(r for r in outcome.results if r.filename == "X-edited.jpg")
    assert edited.metadata_status == MetadataStatus.INHERITED_FROM_ORIGINAL
    assert edited.sidecar_path is None
    assert own_sc.exists()
    assert not original_sc.exists()


def test_failed_fallback_copy_still_reports_every_file(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout" / "Album"
    _media(root / "one.jpg")
    _media(root / "two.mov")
    out = tmp_path / "out"
    out.mkdir()
    # A file where the output directory should be makes every copy fail.
    (out / "Takeout").write_bytes(b"in the way")
    log: list[str] = []

    outcome = _pipeline(out, log=log.append).process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    assert len(outcome.results) == 2
    for r in outcome.results:
        assert r.output_path is None
        assert r.metadata_status == MetadataStatus.NO_METADATA_FOUND
        assert "copy failed" in r.error
    assert outcome.summary == "Processed 2 / 2 files"
    assert any("Fallback copy failed" in m for m in log)


def test_undeletable_sidecar_is_logged_not_fatal(
    tmp_path: Path, exiftool_calls: list[list[str]], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("takeout_fixer.core.pipeline.remove_quietly", lambda _p: False)
    root = tmp_path / "extracted" / "Takeout"
    _media(root / "IMG.jpg")
    sc = _sidecar(root / "IMG.jpg.supplemental-metadata.json")
    log: list[str] = []
    state = ArchiveState()

    outcome = _pipeline(tmp_path / "out", log=log.append).process_extracted(
        tmp_path / "extracted", "z", "a", state=state, cleanup=False
    )

    [r] = outcome.results
    assert r.metadata_status == MetadataStatus.FOUND_AND_APPLIED
    assert state.stage == ArchiveStage.COMPLETED
    assert sc.exists()
    assert any(m.startswith("Could not delete sidecar") for m in log)


def test_existing_output_is_logged(tmp_path: Path, exiftool_calls: list[list[str]]) -> None:
    root = tmp_path / "extracted" / "Takeout"
    _media(root / "IMG.jpg")
    existing = tmp_path / "out" / "Takeout" / "IMG.jpg"
    existing.parent.mkdir(parents=True)
    existing.write_bytes(b"from another archive")
    log: list[str] = []

    _pipeline(tmp_path / "out", log=log.append).process_extracted(tmp_path / "extracted", "z", "a", cleanup=False)

    assert any(m.startswith("Overwriting existing output") for m in log)
