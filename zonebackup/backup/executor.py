"""
Backup orchestrator - runs one complete zone backup pass.

Workflow:
1. Collect the configuration of every zone
2. Fingerprint the snapshot and compare it with the newest archive
3. Skip, or build a new archive atomically
4. Prune old archives and refresh the latest pointer
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from zonebackup.config import Config
from zonebackup.models import BackupResult, RunState, ZoneRecord
from zonebackup.utils.runlog import RunLog
from .sources import ZoneSource, CollectionError, create_source
from .fingerprint import compute_fingerprint
from .compression import build_archive, read_archive, get_archive_size, ArchiveReadError, BuildError
from .storage import ArchiveStore, RotationError
from .retention import RetentionManager


def utc_timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class BackupOrchestrator:
    """
    Orchestrates one backup run for a configuration.
    """

    def __init__(
        self,
        config: Config,
        source: Optional[ZoneSource] = None,
        log: Optional[RunLog] = None,
        clock: Callable[[], int] = utc_timestamp
    ):
        """
        Initialize backup orchestrator.

        Args:
            config: Validated configuration
            source: Zone source; built from the configuration when omitted
            log: Run log; a fresh one is created when omitted
            clock: Returns the unix timestamp used to name a new archive
        """
        self.config = config
        self.source = source if source is not None else create_source(config)
        self.log = log or RunLog()
        self.clock = clock
        self.store = ArchiveStore(config.outdir, config.prefix)
        self.result = BackupResult()

    def execute(self) -> BackupResult:
        """
        Execute the backup run.

        Returns:
            BackupResult in state DONE, or FAILED with the error recorded
        """
        self.result = BackupResult()
        self.log.info(f"Starting zone backup into {self.config.outdir} (prefix: {self.config.prefix})")

        try:
            self._transition(RunState.COLLECTING)
            snapshot = self._collect()

            self._transition(RunState.FINGERPRINTING)
            changed = self._has_changed(snapshot)

            if changed:
                self._transition(RunState.BUILDING)
                self._build(snapshot)
            else:
                self._transition(RunState.SKIPPING)
                self.log.info("No changes in zone configs detected, skipping write.")

            self._transition(RunState.ROTATING)
            self._rotate()

            self._transition(RunState.DONE)
            self.log.info("Backup completed successfully")

        except Exception as e:
            self.result.state = RunState.FAILED
            self.result.error = e
            self.log.error(f"Backup failed: {e}")

        finally:
            self.result.logs = list(self.log.entries)

        return self.result

    def _transition(self, state: RunState):
        self.log.debug(f"state {self.result.state.value} -> {state.value}")
        self.result.state = state

    def _collect(self) -> List[ZoneRecord]:
        """
        Acquire the zone snapshot from the source.

        Raises:
            CollectionError: If enumeration fails, a zone query fails (unless
                skipping is enabled), or every listed zone was skipped
        """
        try:
            snapshot = self.source.acquire(
                skip_failed_zones=self.config.skip_failed_zones,
                log=self.log
            )
            self.result.skipped_zones = list(self.source.skipped_zones)
        finally:
            # Always cleanup source connections
            self.source.cleanup()

        for zone in self.result.skipped_zones:
            self.result.warnings.append(f"zone {zone} omitted from backup")

        if not snapshot and self.result.skipped_zones:
            raise CollectionError("No zone configurations collected: every zone was skipped")

        if not snapshot:
            self.log.info("No zones configured, archiving an empty snapshot")
        else:
            self.log.info(f"Collected {len(snapshot)} zone configuration(s)")
        return snapshot

    def _has_changed(self, snapshot: List[ZoneRecord]) -> bool:
        """
        Compare the snapshot with the contents of the newest archive.

        Raises:
            RotationError: If the output directory cannot be listed
        """
        self.result.fingerprint = compute_fingerprint(snapshot)
        self.log.debug(f"snapshot fingerprint {self.result.fingerprint}")

        latest = self.store.newest()
        if latest is None:
            self.log.info("No previous backup found")
            return True

        try:
            previous = compute_fingerprint(read_archive(latest.path))
        except ArchiveReadError as e:
            message = f"Cannot read previous backup {latest.path}, writing a new one: {e}"
            self.result.warnings.append(message)
            self.log.warning(message)
            return True

        return previous != self.result.fingerprint

    def _build(self, snapshot: List[ZoneRecord]):
        timestamp = self.clock()

        # The new archive must sort last or rotation would prune it
        newest = self.store.newest()
        if newest is not None and timestamp < newest.timestamp:
            message = (
                f"Clock is behind newest backup {newest.path.name}; "
                f"naming new archive with timestamp {newest.timestamp + 1}"
            )
            self.result.warnings.append(message)
            self.log.warning(message)
            timestamp = newest.timestamp + 1

        archive = build_archive(
            snapshot,
            self.config.outdir,
            self.config.prefix,
            timestamp,
            self.config.compression_level
        )
        self.result.written = True
        self.result.archive_path = archive.path

        try:
            size = get_archive_size(archive.path)
        except BuildError as e:
            self.log.warning(f"zone backup file written to {archive.path}, size unknown: {e}")
        else:
            self.log.info(f"zone backup file written to {archive.path} ({size / 1024:.1f} KB)")

    def _rotate(self):
        """
        Apply retention. Failures here never undo a written archive.
        """
        manager = RetentionManager(self.store, self.log)
        try:
            rotation = manager.rotate(self.config.number_of_backups)
        except RotationError as e:
            message = f"Retention skipped: {e}"
            self.result.warnings.append(message)
            self.log.warning(message)
            return

        self.result.pruned = list(rotation.pruned)
        self.result.warnings.extend(rotation.errors)
        if rotation.pointer_error:
            self.result.warnings.append(rotation.pointer_error)


def execute_backup(config: Config, source: Optional[ZoneSource] = None, log: Optional[RunLog] = None) -> BackupResult:
    """
    Execute a backup run for a configuration.

    Args:
        config: Validated configuration
        source: Optional zone source override
        log: Optional run log

    Returns:
        BackupResult with execution results
    """
    orchestrator = BackupOrchestrator(config, source=source, log=log)
    return orchestrator.execute()
