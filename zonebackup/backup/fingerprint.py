"""
Change detection for zone snapshots.

The fingerprint covers every record's name and body in snapshot order. Each
field is length-prefixed so ("a", "bc") and ("ab", "c") hash differently.
"""

import hashlib
import struct
from typing import Iterable

from zonebackup.models import ZoneRecord


def _length_prefix(value: bytes) -> bytes:
    return struct.pack('>Q', len(value))


def compute_fingerprint(snapshot: Iterable[ZoneRecord]) -> str:
    """
    Compute the SHA-256 fingerprint of a zone snapshot.

    Args:
        snapshot: ZoneRecords in collection order

    Returns:
        Hex digest string
    """
    records = list(snapshot)
    hasher = hashlib.sha256()
    hasher.update(struct.pack('>Q', len(records)))

    for record in records:
        name = record.name.encode('utf-8')
        hasher.update(_length_prefix(name))
        hasher.update(name)
        hasher.update(_length_prefix(record.body))
        hasher.update(record.body)

    return hasher.hexdigest()
