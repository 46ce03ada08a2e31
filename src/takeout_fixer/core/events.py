from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from takeout_fixer.core.results import ProcessingResult

@dataclass(frozen=True)
class ProgressEvent:
    archive_id: str
    fraction: float  # 0..1
    total: int
    processed: int

@dataclass(frozen=True)
class StatusEvent:
    message: str

@dataclass(frozen=True)
class FileStartedEvent:
    archive_id: str
    filename: str

@dataclass(frozen=True)
class FileResultEvent:
    result: ProcessingResult

BatchEvent = Union[ProgressEvent, StatusEvent, FileStartedEvent, FileResultEvent]
EventCb = Callable[[BatchEvent], None]

def ignore_event(_event: BatchEvent) -> None:
    return None
