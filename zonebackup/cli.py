"""
Command line entry point.

Usage:
    zonebackup /etc/zonebackup.toml

Exit status is 0 when the run succeeds (including when nothing changed),
1 when the run fails and 2 when the configuration is invalid.
"""

import argparse
import logging
import sys
from typing import List, Optional

from zonebackup import __version__, configure_logging
from zonebackup.config import Config, ConfigError
from zonebackup.backup.executor import BackupOrchestrator
from zonebackup.utils.runlog import RunLog


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

logger = logging.getLogger('zonebackup.cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='zonebackup',
        description="Back up the configuration of every zone into a rotating set of archives"
    )
    parser.add_argument("config_file", help="Path to the TOML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = Config.from_file(args.config_file)
    except ConfigError as e:
        configure_logging('DEBUG' if args.verbose else 'INFO')
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    configure_logging('DEBUG' if args.verbose else config.log_level, config.log_file)
    for option in config.unknown_options:
        logger.warning(f"Ignoring unknown configuration option: {option}")

    orchestrator = BackupOrchestrator(config, log=RunLog())
    result = orchestrator.execute()

    if not result.succeeded:
        if isinstance(result.error, ConfigError):
            return EXIT_CONFIG
        return EXIT_FAILED

    if result.warnings:
        logger.warning(f"Backup finished with {len(result.warnings)} warning(s)")

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
