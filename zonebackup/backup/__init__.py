"""
Backup module for zonebackup.

This module handles the core backup functionality including:
- Zone configuration collection (local and SSH)
- Snapshot fingerprinting
- Archive construction
- Retention and latest pointer maintenance
- Run orchestration
"""

from .executor import BackupOrchestrator, execute_backup
from .sources import LocalZoneSource, SSHZoneSource, CollectionError
from .fingerprint import compute_fingerprint
from .compression import build_archive, read_archive, BuildError
from .storage import ArchiveStore, RotationError
from .retention import RetentionManager

__all__ = [
    'BackupOrchestrator',
    'execute_backup',
    'LocalZoneSource',
    'SSHZoneSource',
    'CollectionError',
    'compute_fingerprint',
    'build_archive',
    'read_archive',
    'BuildError',
    'ArchiveStore',
    'RotationError',
    'RetentionManager'
]
