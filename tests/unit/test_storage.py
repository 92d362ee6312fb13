"""
Unit tests for archive storage (zonebackup/backup/storage.py).

Tests archive naming, listing and the latest pointer.
"""

import os
from unittest.mock import patch

import pytest

from zonebackup.backup.storage import (
    ArchiveStore,
    RotationError,
    archive_filename,
    latest_link_name,
    parse_archive_timestamp
)
from zonebackup.models import ArchiveFile


def touch(directory, name, content=b'x'):
    path = directory / name
    path.write_bytes(content)
    return path


class TestArchiveNaming:
    """Test archive name helpers."""

    def test_archive_filename(self):
        """Test the archive filename format."""
        assert archive_filename('zcfgbak', 1000) == 'zcfgbak_1000.zones.tar.zst'

    def test_latest_link_name(self):
        """Test the latest pointer name."""
        assert latest_link_name('zcfgbak') == 'zcfgbak_latest'

    def test_parse_archive_timestamp(self):
        """Test extracting the timestamp from an archive name."""
        assert parse_archive_timestamp('zcfgbak', 'zcfgbak_1700000000.zones.tar.zst') == 1700000000

    @pytest.mark.parametrize("name", [
        'zcfgbak_latest',
        'zcfgbak_12ab.zones.tar.zst',
        'zcfgbak_1000.zones.tar.zst.tmp',
        'other_1000.zones.tar.zst',
        'zcfgbak_1000.tar.zst',
        '.zcfgbak_1000.zones.tar.zst',
    ])
    def test_parse_rejects_non_archives(self, name):
        """Test that names not matching the archive pattern are ignored."""
        assert parse_archive_timestamp('zcfgbak', name) is None

    def test_prefix_is_matched_literally(self):
        """Test that regex characters in a prefix have no special meaning."""
        assert parse_archive_timestamp('zone.bak', 'zone.bak_5.zones.tar.zst') == 5
        assert parse_archive_timestamp('zone.bak', 'zoneXbak_5.zones.tar.zst') is None


class TestListArchives:
    """Test ArchiveStore.list_archives."""

    def test_empty_directory(self, outdir):
        """Test that an empty directory has no archives."""
        assert ArchiveStore(outdir, 'zcfgbak').list_archives() == []

    def test_missing_directory(self, tmp_path):
        """Test that a missing directory has no archives."""
        assert ArchiveStore(tmp_path / 'missing', 'zcfgbak').list_archives() == []

    def test_sorted_by_timestamp_numerically(self, outdir):
        """Test that 999 sorts before 1000."""
        touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        touch(outdir, 'zcfgbak_999.zones.tar.zst')
        touch(outdir, 'zcfgbak_2000.zones.tar.zst')

        archives = ArchiveStore(outdir, 'zcfgbak').list_archives()

        assert [a.timestamp for a in archives] == [999, 1000, 2000]
        assert all(isinstance(a, ArchiveFile) for a in archives)

    def test_ignores_other_files(self, outdir):
        """Test that foreign files, other prefixes and temp files are ignored."""
        touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        touch(outdir, 'notes.txt')
        touch(outdir, 'other_500.zones.tar.zst')
        touch(outdir, '.zcfgbak_abc.tmp')
        (outdir / 'zcfgbak_3000.zones.tar.zst').mkdir()

        archives = ArchiveStore(outdir, 'zcfgbak').list_archives()

        assert [a.name for a in archives] == ['zcfgbak_1000.zones.tar.zst']

    def test_ignores_symlinks(self, outdir):
        """Test that symlinks matching the archive pattern are not archives."""
        touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        os.symlink('zcfgbak_1000.zones.tar.zst', outdir / 'zcfgbak_2000.zones.tar.zst')
        os.symlink('zcfgbak_1000.zones.tar.zst', outdir / 'zcfgbak_latest')

        archives = ArchiveStore(outdir, 'zcfgbak').list_archives()

        assert [a.timestamp for a in archives] == [1000]

    def test_newest(self, outdir):
        """Test that newest returns the archive with the largest timestamp."""
        touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        touch(outdir, 'zcfgbak_3000.zones.tar.zst')

        store = ArchiveStore(outdir, 'zcfgbak')

        assert store.newest().timestamp == 3000

    def test_newest_none(self, outdir):
        """Test that newest is None without archives."""
        assert ArchiveStore(outdir, 'zcfgbak').newest() is None

    @patch('zonebackup.backup.storage.os.scandir')
    def test_listing_failure(self, mock_scandir, outdir):
        """Test that an unreadable directory raises RotationError."""
        mock_scandir.side_effect = PermissionError(13, 'Permission denied')

        with pytest.raises(RotationError, match="reading"):
            ArchiveStore(outdir, 'zcfgbak').list_archives()


class TestDeleteArchive:
    """Test ArchiveStore.delete."""

    def test_delete(self, outdir):
        """Test that delete removes the file."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst')

        ArchiveStore(outdir, 'zcfgbak').delete(ArchiveFile(1000, path))

        assert not path.exists()

    def test_delete_already_gone(self, outdir):
        """Test that deleting a vanished file is not an error."""
        path = outdir / 'zcfgbak_1000.zones.tar.zst'

        ArchiveStore(outdir, 'zcfgbak').delete(ArchiveFile(1000, path))

    def test_delete_failure(self, outdir):
        """Test that a failed deletion raises RotationError."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst')

        with patch('pathlib.Path.unlink', side_effect=PermissionError(13, 'Permission denied')):
            with pytest.raises(RotationError, match="removing file"):
                ArchiveStore(outdir, 'zcfgbak').delete(ArchiveFile(1000, path))

        assert path.exists()


class TestLatestPointer:
    """Test maintenance of the {prefix}_latest symlink."""

    def test_create_pointer(self, outdir):
        """Test that the pointer is created as a relative symlink."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst', b'archive')
        store = ArchiveStore(outdir, 'zcfgbak')

        assert store.update_latest_pointer(ArchiveFile(1000, path)) is True

        link = outdir / 'zcfgbak_latest'
        assert link.is_symlink()
        assert os.readlink(link) == 'zcfgbak_1000.zones.tar.zst'
        assert link.read_bytes() == b'archive'

    def test_pointer_unchanged_when_current(self, outdir):
        """Test that re-pointing at the same archive is a no-op."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        store = ArchiveStore(outdir, 'zcfgbak')
        store.update_latest_pointer(ArchiveFile(1000, path))

        assert store.update_latest_pointer(ArchiveFile(1000, path)) is False

    def test_replace_pointer(self, outdir, outdir_names):
        """Test that the pointer moves to a newer archive without leftovers."""
        old = touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        new = touch(outdir, 'zcfgbak_2000.zones.tar.zst')
        store = ArchiveStore(outdir, 'zcfgbak')
        store.update_latest_pointer(ArchiveFile(1000, old))

        store.update_latest_pointer(ArchiveFile(2000, new))

        assert store.read_latest_pointer() == 'zcfgbak_2000.zones.tar.zst'
        assert outdir_names(outdir) == [
            'zcfgbak_1000.zones.tar.zst',
            'zcfgbak_2000.zones.tar.zst',
            'zcfgbak_latest',
        ]

    def test_replace_regular_file_pointer(self, outdir):
        """Test that a regular file in the pointer's place is replaced."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        touch(outdir, 'zcfgbak_latest', b'stray')
        store = ArchiveStore(outdir, 'zcfgbak')

        store.update_latest_pointer(ArchiveFile(1000, path))

        assert (outdir / 'zcfgbak_latest').is_symlink()

    def test_pointer_failure(self, outdir, outdir_names):
        """Test that a failed symlink raises RotationError and leaves no temp link."""
        path = touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        store = ArchiveStore(outdir, 'zcfgbak')

        with patch('zonebackup.backup.storage.os.replace', side_effect=PermissionError(13, 'Permission denied')):
            with pytest.raises(RotationError, match="symlink"):
                store.update_latest_pointer(ArchiveFile(1000, path))

        assert outdir_names(outdir) == ['zcfgbak_1000.zones.tar.zst']

    def test_read_missing_pointer(self, outdir):
        """Test that a missing pointer reads as None."""
        assert ArchiveStore(outdir, 'zcfgbak').read_latest_pointer() is None

    def test_remove_pointer(self, outdir):
        """Test removing a dangling pointer."""
        os.symlink('zcfgbak_1000.zones.tar.zst', outdir / 'zcfgbak_latest')
        store = ArchiveStore(outdir, 'zcfgbak')

        assert store.remove_latest_pointer() is True
        assert not os.path.lexists(outdir / 'zcfgbak_latest')
        assert store.remove_latest_pointer() is False


class TestStaleTempFiles:
    """Test detection of files left by interrupted runs."""

    def test_stale_temp_files(self, outdir):
        """Test that only this prefix's hidden temp files are listed."""
        touch(outdir, '.zcfgbak_k2j3h4.tmp')
        touch(outdir, '.other_k2j3h4.tmp')
        touch(outdir, 'zcfgbak_1000.zones.tar.zst')
        touch(outdir, '.zcfgbak_notes')

        stale = ArchiveStore(outdir, 'zcfgbak').stale_temp_files()

        assert [p.name for p in stale] == ['.zcfgbak_k2j3h4.tmp']

    def test_stale_temp_files_missing_directory(self, tmp_path):
        """Test that a missing directory has no temp files."""
        assert ArchiveStore(tmp_path / 'missing', 'zcfgbak').stale_temp_files() == []
