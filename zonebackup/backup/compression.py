"""
Zone archive construction.

Archives are tar streams compressed as a single zstd frame:
- one entry per zone, named {zone}.zone, in snapshot order
- uniform entry metadata (root owner, mode 0644, mtime 0)
- built under a hidden temporary name and renamed into place
"""

import io
import os
import tarfile
import tempfile
from pathlib import Path
from typing import List

import zstandard

from zonebackup.config import validate_compression_level
from zonebackup.models import ArchiveFile, ZoneRecord
from .storage import archive_filename, temp_file_prefix, TEMP_SUFFIX


ENTRY_SUFFIX = '.zone'
ENTRY_MODE = 0o644


class BuildError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveReadError(Exception):
    """Raised when an existing archive cannot be read back."""
    pass


def _entry_info(record: ZoneRecord) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name=record.entry_name)
    info.size = len(record.body)
    info.mode = ENTRY_MODE
    info.mtime = 0
    info.uid = 0
    info.gid = 0
    info.uname = ''
    info.gname = ''
    return info


def _write_archive(snapshot: List[ZoneRecord], raw, compression_level: int):
    cctx = zstandard.ZstdCompressor(level=compression_level, write_checksum=True)
    with cctx.stream_writer(raw, closefd=False) as compressor:
        with tarfile.open(fileobj=compressor, mode='w|', format=tarfile.GNU_FORMAT) as tar:
            for record in snapshot:
                tar.addfile(_entry_info(record), io.BytesIO(record.body))


def _fsync_directory(directory: Path):
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def build_archive(
    snapshot: List[ZoneRecord],
    dest_dir,
    prefix: str,
    timestamp: int,
    compression_level: int
) -> ArchiveFile:
    """
    Create a compressed archive of a zone snapshot.

    Args:
        snapshot: ZoneRecords to archive, in order; may be empty
        dest_dir: Output directory (created if missing)
        prefix: Archive name prefix
        timestamp: Unix timestamp embedded in the archive name
        compression_level: zstd level, 1-21

    Returns:
        The committed ArchiveFile

    Raises:
        ConfigError: If compression_level is out of range
        BuildError: If archive creation fails; no file is left behind
    """
    validate_compression_level(compression_level)

    dest_dir = Path(dest_dir)
    final_path = dest_dir / archive_filename(prefix, timestamp)
    tmp_path = None

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)

        if os.path.lexists(final_path):
            raise BuildError(f"Archive already exists: {final_path}")

        fd, tmp_name = tempfile.mkstemp(dir=dest_dir, prefix=temp_file_prefix(prefix), suffix=TEMP_SUFFIX)
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, 'wb') as raw:
            _write_archive(snapshot, raw, compression_level)
            raw.flush()
            os.fsync(raw.fileno())

        os.replace(tmp_path, final_path)
        tmp_path = None

    except BuildError:
        raise
    except (OSError, tarfile.TarError, zstandard.ZstdError) as e:
        raise BuildError(f"Failed to create archive {final_path}: {e}") from e
    finally:
        # Clean up partial archive on failure
        if tmp_path is not None and os.path.lexists(tmp_path):
            try:
                tmp_path.unlink()
            except OSError:
                pass

    _fsync_directory(dest_dir)
    return ArchiveFile(timestamp=int(timestamp), path=final_path)


def read_archive(path) -> List[ZoneRecord]:
    """
    Read the zone records back out of an archive.

    Args:
        path: Archive file path

    Returns:
        ZoneRecords in archive entry order

    Raises:
        ArchiveReadError: If the archive is missing, truncated or corrupt
    """
    records = []
    dctx = zstandard.ZstdDecompressor()

    try:
        with open(path, 'rb') as fh:
            with dctx.stream_reader(fh) as reader:
                with tarfile.open(fileobj=reader, mode='r|') as tar:
                    for member in tar:
                        if not member.isfile() or not member.name.endswith(ENTRY_SUFFIX):
                            continue
                        extracted = tar.extractfile(member)
                        records.append(ZoneRecord(
                            name=member.name[:-len(ENTRY_SUFFIX)],
                            body=extracted.read()
                        ))
    except (OSError, tarfile.TarError, zstandard.ZstdError, EOFError) as e:
        raise ArchiveReadError(f"Failed to read archive {path}: {e}") from e

    return records


def get_archive_size(archive_path) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        BuildError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise BuildError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise BuildError(f"Failed to get archive size: {e}")
