"""
Retention policy enforcement for zone archives.

Keeps the newest number_of_backups archives of a prefix, prunes the rest
oldest first, and keeps the {prefix}_latest pointer on the newest survivor.
"""

from typing import Optional

from zonebackup.config import validate_keep
from zonebackup.models import RotationResult
from zonebackup.utils.runlog import RunLog
from .storage import ArchiveStore, RotationError


class RetentionManager:
    """
    Manages retention for the archives of one prefix.
    """

    def __init__(self, store: ArchiveStore, log: Optional[RunLog] = None):
        """
        Initialize retention manager.

        Args:
            store: ArchiveStore for the output directory and prefix
            log: Run log for progress messages
        """
        self.store = store
        self.log = log or RunLog()

    def rotate(self, keep: int) -> RotationResult:
        """
        Prune old archives and refresh the latest pointer.

        Deletion failures are logged and recorded; the next oldest archive is
        not removed in place of one that could not be deleted.

        Args:
            keep: Number of archives to retain, at least 1

        Returns:
            RotationResult describing what was pruned and the pointer state

        Raises:
            ConfigError: If keep is less than 1
            RotationError: If the output directory cannot be listed
        """
        validate_keep(keep)
        result = RotationResult()

        self._remove_stale_temp_files(result)

        archives = self.store.list_archives()
        excess = len(archives) - keep

        if excess > 0:
            for archive in archives[:excess]:
                try:
                    self.store.delete(archive)
                    result.pruned.append(archive.path)
                    self.log.info(f"pruned {archive.path}")
                except RotationError as e:
                    result.errors.append(str(e))
                    self.log.warning(f"Failed to prune {archive.path}: {e}")

        survivors = [a for a in archives if a.path not in result.pruned]
        result.latest = survivors[-1] if survivors else None

        try:
            if result.latest is None:
                if self.store.remove_latest_pointer():
                    self.log.info(f"removed stale pointer {self.store.latest_link_path}")
            elif self.store.update_latest_pointer(result.latest):
                result.pointer_updated = True
                self.log.info(f"symlinked {result.latest.path} to {self.store.latest_link_path}")
        except RotationError as e:
            result.pointer_error = str(e)
            self.log.warning(f"Failed to update latest pointer: {e}")

        return result

    def _remove_stale_temp_files(self, result: RotationResult):
        for path in self.store.stale_temp_files():
            try:
                path.unlink()
                self.log.info(f"removed leftover temporary file {path}")
            except FileNotFoundError:
                pass
            except OSError as e:
                result.errors.append(f"removing {path}: {e}")
                self.log.warning(f"Failed to remove leftover temporary file {path}: {e}")
