"""
Zone configuration sources.

Supports:
- LocalZoneSource: query zoneadm/zonecfg on this host
- SSHZoneSource: query zoneadm/zonecfg on a zone host via SSH
"""

import re
import shlex
import subprocess
from pathlib import Path
from typing import List, Dict, Any, Optional

import paramiko
from paramiko import SSHClient, AutoAddPolicy

from zonebackup.config import ZONEADM, ZONECFG
from zonebackup.models import ZoneRecord
from zonebackup.utils.runlog import RunLog


class CollectionError(Exception):
    """Raised when zone configurations cannot be collected."""
    pass


class ZoneEnumerationError(CollectionError):
    """Raised when the list of configured zones cannot be obtained."""
    pass


class ZoneQueryError(CollectionError):
    """Raised when the configuration of a single zone cannot be retrieved."""

    def __init__(self, zone: str, message: str):
        super().__init__(f"no info for {zone}: {message}")
        self.zone = zone


# illumos zone names: alphanumeric start, then alphanumerics, '-', '_' and '.'
ZONE_NAME_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')


def parse_zone_list(output: bytes) -> List[str]:
    """
    Parse `zoneadm list -n -c` output into zone names.

    Args:
        output: Raw command output, one zone name per line

    Returns:
        Zone names in the order zoneadm printed them

    Raises:
        ZoneEnumerationError: If the output is not text or names an invalid zone
    """
    try:
        text = output.decode('utf-8')
    except UnicodeDecodeError as e:
        raise ZoneEnumerationError(f"failed to parse zoneadm output: {e}")

    zones = []
    for line in text.splitlines():
        name = line.strip()
        if not name:
            continue
        if not ZONE_NAME_RE.match(name):
            raise ZoneEnumerationError(f"invalid zone name in zoneadm output: {name!r}")
        zones.append(name)
    return zones


class ZoneSource:
    """
    Base class for zone configuration sources.

    Subclasses implement list_zones() and get_zone_config(); acquire() walks
    the zones in enumeration order and builds the snapshot.
    """

    def __init__(self):
        self.skipped_zones: List[str] = []

    def list_zones(self) -> List[str]:
        raise NotImplementedError

    def get_zone_config(self, zone: str) -> bytes:
        raise NotImplementedError

    def acquire(self, skip_failed_zones: bool = False, log: Optional[RunLog] = None) -> List[ZoneRecord]:
        """
        Collect the configuration of every configured zone.

        Args:
            skip_failed_zones: Omit zones whose query fails instead of aborting
            log: Run log for progress messages

        Returns:
            ZoneRecords in enumeration order

        Raises:
            ZoneEnumerationError: If zones cannot be listed
            ZoneQueryError: If a zone query fails and skip_failed_zones is False
        """
        log = log or RunLog()
        self.skipped_zones = []
        records = []

        for zone in self.list_zones():
            try:
                body = self.get_zone_config(zone)
            except ZoneQueryError as e:
                if not skip_failed_zones:
                    raise
                # perhaps the zone no longer exists
                log.warning(f"Skipping zone {zone}: {e}")
                self.skipped_zones.append(zone)
                continue

            records.append(ZoneRecord(name=zone, body=body))
            log.info(f"appending zone {zone}")

        return records

    def cleanup(self):
        """Release any resources held by the source."""
        pass


class LocalZoneSource(ZoneSource):
    """
    Source for zones configured on this host.

    Runs zoneadm and zonecfg with an empty environment so their output does
    not depend on the caller's locale.
    """

    def __init__(self, zoneadm: str = ZONEADM, zonecfg: str = ZONECFG, timeout: int = 60):
        super().__init__()
        self.zoneadm = zoneadm
        self.zonecfg = zonecfg
        self.timeout = timeout

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            args,
            env={},
            stdin=subprocess.DEVNULL,
            capture_output=True,
            timeout=self.timeout,
            check=False
        )

    def list_zones(self) -> List[str]:
        try:
            proc = self._run([self.zoneadm, 'list', '-n', '-c'])
        except subprocess.TimeoutExpired:
            raise ZoneEnumerationError(f"exec {self.zoneadm}: timed out after {self.timeout}s")
        except OSError as e:
            raise ZoneEnumerationError(f"exec {self.zoneadm}: {e}")

        if proc.returncode != 0:
            stderr = proc.stderr.decode('utf-8', errors='replace').strip()
            raise ZoneEnumerationError(f"exec {self.zoneadm}: failed (exit {proc.returncode}) -- {stderr}")

        return parse_zone_list(proc.stdout)

    def get_zone_config(self, zone: str) -> bytes:
        try:
            proc = self._run([self.zonecfg, '-z', zone, 'info'])
        except subprocess.TimeoutExpired:
            raise ZoneQueryError(zone, f"exec {self.zonecfg}: timed out after {self.timeout}s")
        except OSError as e:
            raise ZoneQueryError(zone, f"exec {self.zonecfg}: {e}")

        if proc.returncode != 0:
            stderr = proc.stderr.decode('utf-8', errors='replace').strip()
            raise ZoneQueryError(zone, f"exec {self.zonecfg}: failed (exit {proc.returncode}) -- {stderr}")

        if not proc.stdout:
            raise ZoneQueryError(zone, "empty zonecfg info")

        return proc.stdout


class SSHZoneSource(ZoneSource):
    """
    Source for zones configured on a remote zone host.

    Runs the same zoneadm/zonecfg commands as LocalZoneSource over an SSH
    session, so a central backup host can collect zone configurations.
    """

    def __init__(self, config: Dict[str, Any], zoneadm: str = ZONEADM, zonecfg: str = ZONECFG, timeout: int = 60):
        """
        Initialize SSH zone source.

        Args:
            config: SSH configuration dict with keys:
                - host: SSH hostname or IP
                - port: SSH port (default 22)
                - username: SSH username
                - password: SSH password (optional if using key)
                - private_key: Path to private key file (optional)
            zoneadm: zoneadm path on the remote host
            zonecfg: zonecfg path on the remote host
            timeout: Per-command timeout in seconds
        """
        super().__init__()
        self.host = config.get('host') or config.get('hostname')
        self.port = config.get('port', 22)
        self.username = config.get('username')
        self.password = config.get('password')
        self.private_key_path = config.get('private_key')
        self.zoneadm = zoneadm
        self.zonecfg = zonecfg
        self.timeout = timeout

        self.ssh_client = None

    def _connect(self):
        """
        Establish SSH connection.

        Raises:
            ZoneEnumerationError: If connection fails
        """
        try:
            self.ssh_client = SSHClient()
            self.ssh_client.set_missing_host_key_policy(AutoAddPolicy())

            connect_kwargs = {
                'hostname': self.host,
                'port': self.port,
                'username': self.username,
                'timeout': 30
            }

            if self.password:
                connect_kwargs['password'] = self.password
            elif self.private_key_path:
                key_path = Path(self.private_key_path).expanduser()
                if not key_path.exists():
                    raise ZoneEnumerationError(f"Private key not found: {self.private_key_path}")
                connect_kwargs['key_filename'] = str(key_path)
            else:
                raise ZoneEnumerationError("Either password or private_key must be provided")

            self.ssh_client.connect(**connect_kwargs)

        except ZoneEnumerationError:
            raise
        except paramiko.AuthenticationException as e:
            raise ZoneEnumerationError(f"SSH authentication failed: {e}")
        except paramiko.SSHException as e:
            raise ZoneEnumerationError(f"SSH connection failed: {e}")
        except OSError as e:
            raise ZoneEnumerationError(f"Failed to connect to {self.host}: {e}")

    def _exec(self, command: str):
        """
        Run a command on the remote host.

        Returns:
            Tuple of (exit status, stdout bytes, stderr text)
        """
        if self.ssh_client is None:
            self._connect()

        _stdin, stdout, stderr = self.ssh_client.exec_command(command, timeout=self.timeout)
        # Drain output before waiting for the exit status so large outputs cannot block the channel
        out = stdout.read()
        err = stderr.read().decode('utf-8', errors='replace').strip()
        status = stdout.channel.recv_exit_status()
        return status, out, err

    def list_zones(self) -> List[str]:
        command = f"{shlex.quote(self.zoneadm)} list -n -c"
        try:
            status, out, err = self._exec(command)
        except ZoneEnumerationError:
            raise
        except (paramiko.SSHException, OSError) as e:
            raise ZoneEnumerationError(f"{self.host}: exec {self.zoneadm}: {e}")

        if status != 0:
            raise ZoneEnumerationError(f"{self.host}: exec {self.zoneadm}: failed (exit {status}) -- {err}")

        return parse_zone_list(out)

    def get_zone_config(self, zone: str) -> bytes:
        command = f"{shlex.quote(self.zonecfg)} -z {shlex.quote(zone)} info"
        try:
            status, out, err = self._exec(command)
        except (paramiko.SSHException, OSError) as e:
            raise ZoneQueryError(zone, f"{self.host}: exec {self.zonecfg}: {e}")

        if status != 0:
            raise ZoneQueryError(zone, f"{self.host}: exec {self.zonecfg}: failed (exit {status}) -- {err}")

        if not out:
            raise ZoneQueryError(zone, "empty zonecfg info")

        return out

    def cleanup(self):
        """Close the SSH connection."""
        if self.ssh_client:
            try:
                self.ssh_client.close()
            except (paramiko.SSHException, OSError):
                pass
            self.ssh_client = None


def create_source(config) -> ZoneSource:
    """
    Factory function to create the zone source named by the configuration.

    Args:
        config: zonebackup Config

    Returns:
        LocalZoneSource or SSHZoneSource instance

    Raises:
        ValueError: If the source type is invalid
    """
    if config.source == 'local':
        return LocalZoneSource(config.zoneadm, config.zonecfg, config.command_timeout)
    elif config.source == 'ssh':
        return SSHZoneSource(config.ssh, config.zoneadm, config.zonecfg, config.command_timeout)
    else:
        raise ValueError(f"Invalid source type: {config.source}")
