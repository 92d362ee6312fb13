"""
Shared pytest fixtures for zonebackup tests.

This module provides fixtures for:
- A fake zone source producing canned snapshots
- Output directory and configuration objects
- Configuration files on disk
- Logger cleanup between tests
"""

import logging

import pytest

from zonebackup import LOGGER_NAME
from zonebackup.config import Config
from zonebackup.models import ZoneRecord
from zonebackup.backup.sources import ZoneSource, ZoneEnumerationError, ZoneQueryError


class FakeZoneSource(ZoneSource):
    """
    Zone source returning canned zone configurations.

    zones is a list of (name, body) pairs in enumeration order.
    """

    def __init__(self, zones, failing=(), enumeration_error=None):
        super().__init__()
        self.zones = [(name, body.encode() if isinstance(body, str) else body) for name, body in zones]
        self.failing = set(failing)
        self.enumeration_error = enumeration_error
        self.cleaned_up = False

    def list_zones(self):
        if self.enumeration_error:
            raise ZoneEnumerationError(self.enumeration_error)
        return [name for name, _ in self.zones]

    def get_zone_config(self, zone):
        if zone in self.failing:
            raise ZoneQueryError(zone, "exec /usr/sbin/zonecfg: failed (exit 1)")
        return dict(self.zones)[zone]

    def cleanup(self):
        self.cleaned_up = True


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by configure_logging during a test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_source():
    """Factory for FakeZoneSource instances."""
    return FakeZoneSource


@pytest.fixture
def outdir(tmp_path):
    """Empty backup output directory."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def make_config(outdir):
    """
    Factory for Config objects writing into outdir.

    Defaults: prefix 'zcfgbak', keep 2, compression level 3.
    """
    def _make(**overrides):
        options = {
            'outdir': outdir,
            'number_of_backups': 2,
            'prefix': 'zcfgbak',
            'compression_level': 3,
        }
        options.update(overrides)
        return Config(**options)

    return _make


@pytest.fixture
def snapshot():
    """The two-zone snapshot used throughout the tests."""
    return [
        ZoneRecord(name='dns', body=b'soa 1'),
        ZoneRecord(name='irc', body=b'soa 2'),
    ]


@pytest.fixture
def write_config(tmp_path):
    """
    Write a TOML configuration file and return its path.

    Usage: write_config('outdir = "/x"\\nnumber_of_backups = 3\\n')
    """
    def _write(content, name='zonebackup.toml'):
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


def list_outdir(path):
    """Sorted names of everything in a directory, including hidden files."""
    return sorted(p.name for p in path.iterdir())


@pytest.fixture
def outdir_names():
    return list_outdir
