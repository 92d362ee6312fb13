"""
Configuration loading for zonebackup.

The configuration is a TOML file:

    outdir = "/var/backups/zones"
    number_of_backups = 14
    prefix = "zonecfg-backup"        # optional
    compression_level = 10           # optional, 1-21
    skip_failed_zones = false        # optional

    [ssh]                            # only with source = "ssh"
    host = "zonehost.example.com"
    username = "backup"
    private_key = "~/.ssh/id_ed25519"
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional


class ConfigError(ValueError):
    """Raised when the configuration is missing, unreadable or invalid."""
    pass


DEFAULT_PREFIX = 'zonecfg-backup'
DEFAULT_COMPRESSION_LEVEL = 10
MIN_COMPRESSION_LEVEL = 1
MAX_COMPRESSION_LEVEL = 21

ZONEADM = '/usr/sbin/zoneadm'
ZONECFG = '/usr/sbin/zonecfg'

SOURCE_TYPES = ('local', 'ssh')

KNOWN_OPTIONS = {
    'outdir', 'number_of_backups', 'prefix', 'compression_level',
    'skip_failed_zones', 'source', 'zoneadm', 'zonecfg', 'command_timeout',
    'log_file', 'log_level', 'ssh',
}
KNOWN_SSH_OPTIONS = {'host', 'hostname', 'port', 'username', 'password', 'private_key'}


def validate_compression_level(level: Any) -> int:
    """Return level if it is an integer in [1, 21], raise ConfigError otherwise."""
    if isinstance(level, bool) or not isinstance(level, int):
        raise ConfigError(f"compression_level must be an integer, got {level!r}")
    if not MIN_COMPRESSION_LEVEL <= level <= MAX_COMPRESSION_LEVEL:
        raise ConfigError(
            f"compression_level must be between {MIN_COMPRESSION_LEVEL}-{MAX_COMPRESSION_LEVEL}, got {level}"
        )
    return level


def validate_keep(keep: Any) -> int:
    """Return keep if it is an integer >= 1, raise ConfigError otherwise."""
    if isinstance(keep, bool) or not isinstance(keep, int):
        raise ConfigError(f"number_of_backups must be an integer, got {keep!r}")
    if keep < 1:
        raise ConfigError(f"number_of_backups must be at least 1, got {keep}")
    return keep


def validate_prefix(prefix: Any) -> str:
    """Return prefix if it can be embedded in an archive file name."""
    if not isinstance(prefix, str) or not prefix:
        raise ConfigError("prefix must be a non-empty string")
    if '/' in prefix or '\0' in prefix:
        raise ConfigError(f"prefix must not contain path separators: {prefix!r}")
    if prefix.startswith('.'):
        raise ConfigError(f"prefix must not start with '.': {prefix!r}")
    return prefix


class Config:
    """Validated backup configuration."""

    def __init__(
        self,
        outdir,
        number_of_backups: int,
        prefix: str = DEFAULT_PREFIX,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
        skip_failed_zones: bool = False,
        source: str = 'local',
        zoneadm: str = ZONEADM,
        zonecfg: str = ZONECFG,
        command_timeout: int = 60,
        log_file: Optional[str] = None,
        log_level: str = 'INFO',
        ssh: Optional[Dict[str, Any]] = None,
    ):
        if isinstance(outdir, str):
            if not outdir:
                raise ConfigError("outdir must not be empty")
            outdir = Path(outdir).expanduser()
        elif not isinstance(outdir, Path):
            raise ConfigError(f"outdir must be a string, got {outdir!r}")
        if outdir.exists() and not outdir.is_dir():
            raise ConfigError(f"outdir is not a directory: {outdir}")

        self.outdir = outdir
        self.number_of_backups = validate_keep(number_of_backups)
        self.prefix = validate_prefix(prefix)
        self.compression_level = validate_compression_level(compression_level)

        if not isinstance(skip_failed_zones, bool):
            raise ConfigError(f"skip_failed_zones must be true or false, got {skip_failed_zones!r}")
        self.skip_failed_zones = skip_failed_zones

        if source not in SOURCE_TYPES:
            raise ConfigError(f"Invalid source type: {source!r}. Valid options: {list(SOURCE_TYPES)}")
        self.source = source

        for name, value in (('zoneadm', zoneadm), ('zonecfg', zonecfg)):
            if not isinstance(value, str) or not value:
                raise ConfigError(f"{name} must be a non-empty command path")
        self.zoneadm = zoneadm
        self.zonecfg = zonecfg

        if isinstance(command_timeout, bool) or not isinstance(command_timeout, int) or command_timeout < 1:
            raise ConfigError(f"command_timeout must be a positive integer, got {command_timeout!r}")
        self.command_timeout = command_timeout

        if log_file is not None and not isinstance(log_file, str):
            raise ConfigError(f"log_file must be a string, got {log_file!r}")
        self.log_file = log_file
        self.log_level = os.environ.get('ZONEBACKUP_LOG_LEVEL') or log_level

        self.ssh = self._validate_ssh(ssh) if source == 'ssh' else (ssh or {})
        self.unknown_options: List[str] = []

    @staticmethod
    def _validate_ssh(ssh: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(ssh, dict):
            raise ConfigError("source 'ssh' requires an [ssh] table")

        host = ssh.get('host') or ssh.get('hostname')
        if not host:
            raise ConfigError("ssh.host is required")
        if not ssh.get('username'):
            raise ConfigError("ssh.username is required")
        if not ssh.get('password') and not ssh.get('private_key'):
            raise ConfigError("ssh requires either password or private_key")

        port = ssh.get('port', 22)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigError(f"ssh.port must be a valid port number, got {port!r}")

        return dict(ssh)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """
        Build a Config from parsed TOML data.

        Raises:
            ConfigError: If a required option is missing or any value is invalid
        """
        for required in ('outdir', 'number_of_backups'):
            if required not in data:
                raise ConfigError(f"missing required option: {required}")

        options = {key: value for key, value in data.items() if key in KNOWN_OPTIONS}
        config = cls(**options)

        unknown = sorted(key for key in data if key not in KNOWN_OPTIONS)
        if isinstance(data.get('ssh'), dict):
            unknown.extend(sorted(f"ssh.{key}" for key in data['ssh'] if key not in KNOWN_SSH_OPTIONS))
        config.unknown_options = unknown
        return config

    @classmethod
    def from_file(cls, path) -> 'Config':
        """
        Load and validate a TOML configuration file.

        Args:
            path: Path to the configuration file

        Returns:
            Validated Config

        Raises:
            ConfigError: If the file cannot be read or parsed, or is invalid
        """
        try:
            with open(path, 'rb') as f:
                data = tomllib.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"failed to parse config file {path}: {e}")
        except OSError as e:
            raise ConfigError(f"failed to read config file {path}: {e}")

        return cls.from_dict(data)

    def __repr__(self):
        return (
            f'<Config outdir={self.outdir} keep={self.number_of_backups} '
            f'prefix={self.prefix} level={self.compression_level} source={self.source}>'
        )
