"""
Archive storage in the output directory.

The output directory itself is the only state kept between runs:
- {prefix}_{unix_timestamp}.zones.tar.zst   committed archives
- {prefix}_latest                           symlink to the newest archive
- .{prefix}_*.tmp                           in-progress files, never committed
"""

import os
import re
from pathlib import Path
from typing import List, Optional

from zonebackup.models import ArchiveFile


ARCHIVE_SUFFIX = '.zones.tar.zst'
TEMP_SUFFIX = '.tmp'


class RotationError(Exception):
    """Raised when listing, deleting or re-pointing archives fails."""
    pass


def archive_filename(prefix: str, timestamp: int) -> str:
    """
    Generate the archive filename for a run.

    Format: {prefix}_{unix_timestamp}.zones.tar.zst
    """
    return f"{prefix}_{int(timestamp)}{ARCHIVE_SUFFIX}"


def latest_link_name(prefix: str) -> str:
    return f"{prefix}_latest"


def temp_file_prefix(prefix: str) -> str:
    """Hidden prefix for in-progress files, which never match the archive pattern."""
    return f".{prefix}_"


def archive_name_pattern(prefix: str) -> re.Pattern:
    return re.compile(r'^' + re.escape(prefix) + r'_(\d+)' + re.escape(ARCHIVE_SUFFIX) + r'$')


def parse_archive_timestamp(prefix: str, filename: str) -> Optional[int]:
    """
    Extract the unix timestamp embedded in an archive filename.

    Returns:
        The timestamp, or None if filename is not an archive for prefix
    """
    match = archive_name_pattern(prefix).match(filename)
    if not match:
        return None
    return int(match.group(1))


class ArchiveStore:
    """
    Handler for the archives of one prefix in the output directory.
    """

    def __init__(self, outdir, prefix: str):
        self.outdir = Path(outdir)
        self.prefix = prefix
        self._pattern = archive_name_pattern(prefix)

    @property
    def latest_link_path(self) -> Path:
        return self.outdir / latest_link_name(self.prefix)

    def archive_path(self, timestamp: int) -> Path:
        return self.outdir / archive_filename(self.prefix, timestamp)

    def list_archives(self) -> List[ArchiveFile]:
        """
        List committed archives, oldest first.

        Returns:
            ArchiveFiles ordered by embedded timestamp, then filename

        Raises:
            RotationError: If the directory cannot be read
        """
        if not self.outdir.exists():
            return []

        archives = []
        try:
            with os.scandir(self.outdir) as entries:
                for entry in entries:
                    match = self._pattern.match(entry.name)
                    if not match:
                        continue
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    archives.append(ArchiveFile(timestamp=int(match.group(1)), path=Path(entry.path)))
        except OSError as e:
            raise RotationError(f"reading {self.outdir}: {e}")

        return sorted(archives)

    def newest(self) -> Optional[ArchiveFile]:
        archives = self.list_archives()
        return archives[-1] if archives else None

    def delete(self, archive: ArchiveFile):
        """
        Delete an archive.

        Raises:
            RotationError: If deletion fails
        """
        try:
            archive.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise RotationError(f"removing file {archive.path}: {e}")

    def read_latest_pointer(self) -> Optional[str]:
        """Return the target of the latest pointer, or None if there is none."""
        try:
            return os.readlink(self.latest_link_path)
        except OSError:
            return None

    def update_latest_pointer(self, archive: ArchiveFile) -> bool:
        """
        Point {prefix}_latest at archive.

        The new link is created under a temporary name and renamed over the old
        one, so readers always see either the old or the new target.

        Returns:
            True if the pointer changed, False if it already named archive

        Raises:
            RotationError: If the link cannot be created
        """
        target = archive.path.name
        if self.read_latest_pointer() == target:
            return False

        link_path = self.latest_link_path
        tmp_link = self.outdir / f"{temp_file_prefix(self.prefix)}latest.{os.getpid()}{TEMP_SUFFIX}"
        try:
            if os.path.lexists(tmp_link):
                tmp_link.unlink()
            os.symlink(target, tmp_link)
            os.replace(tmp_link, link_path)
        except OSError as e:
            if os.path.lexists(tmp_link):
                try:
                    tmp_link.unlink()
                except OSError:
                    pass
            raise RotationError(f"symlink {archive.path} -> {link_path}: {e}")

        return True

    def remove_latest_pointer(self) -> bool:
        """
        Remove the latest pointer if present.

        Returns:
            True if a pointer was removed

        Raises:
            RotationError: If the pointer exists but cannot be removed
        """
        link_path = self.latest_link_path
        if not os.path.lexists(link_path):
            return False
        try:
            link_path.unlink()
        except OSError as e:
            raise RotationError(f"removing {link_path}: {e}")
        return True

    def stale_temp_files(self) -> List[Path]:
        """List in-progress files left behind by an interrupted run."""
        if not self.outdir.exists():
            return []

        prefix = temp_file_prefix(self.prefix)
        try:
            return sorted(
                path for path in self.outdir.iterdir()
                if path.name.startswith(prefix) and path.name.endswith(TEMP_SUFFIX)
            )
        except OSError as e:
            raise RotationError(f"reading {self.outdir}: {e}")
