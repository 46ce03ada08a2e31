"""Application entrypoint.

Run in development:
    python -m takeout_fixer.app Takeout-001.zip Takeout-002.zip -o ~/Pictures/Fixed

Installed, this is the ``takeout-fixer`` console script.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from takeout_fixer.core.events import BatchEvent, FileResultEvent, StatusEvent
from takeout_fixer.core.orchestrator import BatchOrchestrator, BatchReport
from takeout_fixer.core.settings import AppSettings
from takeout_fixer.exif.exiftool_writer import is_exiftool_available
from takeout_fixer.util.platform import open_in_finder


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="takeout-fixer",
        description="Merge Google Takeout archives and re-embed sidecar metadata into photos.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  %(prog)s takeout-001.zip takeout-002.zip -o ~/Pictures/Fixed
  %(prog)s --extracted ~/Downloads/Takeout -o ~/Pictures/Fixed --reprocess
        """,
    )
    parser.add_argument("inputs", nargs="+", type=Path,
                        help="Archives to process (or extracted folders with --extracted)")
    parser.add_argument("-o", "--output", type=Path, default=None,
                        help="Output root (default: last used output folder)")
    parser.add_argument("--extracted", action="store_true",
                        help="Treat inputs as already extracted folders; nothing is deleted")
    parser.add_argument("--reprocess", action="store_true",
                        help="Recheck files without metadata after the batch")
    parser.add_argument("--no-cleanup", action="store_true",
                        help="Keep temporary extraction folders")
    parser.add_argument("--async", dest="use_async", action="store_true",
                        help="Run the batch on an asyncio event loop")
    parser.add_argument("--open", dest="open_output", action="store_true",
                        help="Reveal the output folder when done")
    parser.add_argument("--settings", type=Path, default=None,
                        help="Settings JSON path (default: per-user config dir)")
    return parser


def _print_event(event: BatchEvent) -> None:
    if isinstance(event, StatusEvent):
        print(event.message)
    elif isinstance(event, FileResultEvent):
        r = event.result
        suffix = f" ({r.error})" if r.error else ""
        print(f"  {r.filename}: {r.metadata_status.label}{suffix}")


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)

    settings = AppSettings.load(args.settings)
    if settings.exiftool_path:
        os.environ["TAKEOUT_FIXER_EXIFTOOL_PATH"] = settings.exiftool_path
    if settings.extractor_path:
        os.environ["TAKEOUT_FIXER_EXTRACTOR_PATH"] = settings.extractor_path
    if args.no_cleanup:
        settings.cleanup_extracted = False

    output_root = args.output or (Path(settings.last_output_dir) if settings.last_output_dir else None)
    if output_root is None:
        print("No output folder given (use -o).", file=sys.stderr)
        return 2
    output_root = output_root.expanduser().resolve()
    output_root.mkdir(parents=True, exist_ok=True)

    if not is_exiftool_available():
        print("Warning: ExifTool not found; photos will be copied without embedded metadata.",
              file=sys.stderr)

    run_folder = AppSettings.new_run_folder(output_root) if settings.write_run_artifacts else None
    orchestrator = BatchOrchestrator(
        output_root=output_root,
        settings=settings,
        on_event=_print_event,
        run_folder=run_folder,
    )

    inputs = [p.expanduser().resolve() for p in args.inputs]
    try:
        report: BatchReport
        if args.extracted:
            report = orchestrator.run_extracted(inputs)
        elif args.use_async:
            report = asyncio.run(orchestrator.run_async(inputs))
        else:
            report = orchestrator.run(inputs)

        if args.reprocess and report.missed:
            orchestrator.reprocess_missed()
    except KeyboardInterrupt:
        orchestrator.cancel()
        print("Cancelled by user.", file=sys.stderr)
        return 130

    missed = sum(1 for r in orchestrator.results if r.missed)
    print(f"{len(orchestrator.results)} files written to {output_root} ({missed} without metadata)")
    if run_folder:
        print(f"Run log and manifest: {run_folder}")

    settings.last_output_dir = str(output_root)
    try:
        settings.save(args.settings)
    except OSError as e:
        print(f"Could not save settings: {e}", file=sys.stderr)

    if args.open_output:
        open_in_finder(output_root)

    return 0 if not report.failed and not report.cancelled else 1


if __name__ == "__main__":
    raise SystemExit(main())
