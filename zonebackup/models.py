from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class ZoneRecord:
    """Configuration of one zone as captured during a run"""
    name: str
    body: bytes

    @property
    def entry_name(self) -> str:
        return f"{self.name}.zone"


# Collection order, not sorted
ZoneSnapshot = List[ZoneRecord]


@dataclass(frozen=True, order=True)
class ArchiveFile:
    """A committed archive in the output directory"""
    timestamp: int
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


class RunState(str, Enum):
    COLLECTING = 'collecting'
    FINGERPRINTING = 'fingerprinting'
    SKIPPING = 'skipping'
    BUILDING = 'building'
    ROTATING = 'rotating'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class RotationResult:
    """Outcome of one retention pass"""
    pruned: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    latest: Optional[ArchiveFile] = None
    pointer_updated: bool = False
    pointer_error: Optional[str] = None


@dataclass
class BackupResult:
    """What a backup run reports when it is done or has failed"""
    state: RunState = RunState.COLLECTING
    written: bool = False
    archive_path: Optional[Path] = None
    fingerprint: Optional[str] = None
    pruned: List[Path] = field(default_factory=list)
    skipped_zones: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[Exception] = None
    logs: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.DONE

    def __repr__(self):
        return f'<BackupResult state={self.state.value} written={self.written} archive={self.archive_path}>'
