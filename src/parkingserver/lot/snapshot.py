"""
=============================================================================
SNAPSHOT STORE
=============================================================================

Persists the registry's full state to a single flat binary file.

=============================================================================
FILE LAYOUT (little-endian)
=============================================================================

    ┌──────────────────────────────────────────────────────────────────┐
    │ HEADER                                                           │
    │   magic     4s   b"PKLT"                                         │
    │   version   H    1                                               │
    │   capacity  I                                                    │
    │   occupied  I    number of present records                       │
    │   small     d    hourly rate, small vehicles                     │
    │   large     d    hourly rate, large vehicles                     │
    │   count     I    number of records that follow                   │
    ├──────────────────────────────────────────────────────────────────┤
    │ RECORD  (repeated `count` times)                                 │
    │   plate_len H  + plate bytes (UTF-8)                             │
    │   type_len  H  + category bytes (UTF-8)                          │
    │   entry     d                                                    │
    │   exit      d    NaN while the vehicle is still present          │
    │   fee       d                                                    │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
WRITE STRATEGY
=============================================================================

Every save rewrites the whole file. The bytes go to "<file>.tmp" first,
are fsync'd, and are then moved over the real file with os.replace(). A
reader therefore sees either the previous snapshot or the new one, never
a partially written file.

=============================================================================
"""

import logging
import math
import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .models import OccupantRecord, VehicleCategory


logger = logging.getLogger(__name__)


MAGIC = b"PKLT"
VERSION = 1
MAX_CAPACITY = 1000

_HEADER = struct.Struct("<4sHIIddI")
_LENGTH = struct.Struct("<H")
_TIMES = struct.Struct("<ddd")


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be decoded."""


@dataclass
class LotState:
    """Point-in-time copy of everything the registry persists."""

    capacity: int
    small_rate: float
    large_rate: float
    active: List[OccupantRecord] = field(default_factory=list)
    history: List[OccupantRecord] = field(default_factory=list)

    @property
    def occupied(self) -> int:
        return len(self.active)


# =============================================================================
# ENCODING
# =============================================================================

def _pack_text(text: str) -> bytes:
    raw = text.encode("utf-8")
    if len(raw) > 0xFFFF:
        raise SnapshotError(f"Field too long to store: {len(raw)} bytes")
    return _LENGTH.pack(len(raw)) + raw


def encode_state(state: LotState) -> bytes:
    """Serialize a LotState to the snapshot byte format."""
    records = state.active + state.history
    parts = [
        _HEADER.pack(
            MAGIC,
            VERSION,
            state.capacity,
            state.occupied,
            state.small_rate,
            state.large_rate,
            len(records),
        )
    ]

    for record in records:
        exit_time = math.nan if record.exit_time is None else record.exit_time
        parts.append(_pack_text(record.plate))
        parts.append(_pack_text(record.category.value))
        parts.append(_TIMES.pack(record.entry_time, exit_time, record.fee))

    return b"".join(parts)


# =============================================================================
# DECODING
# =============================================================================

class _Reader:
    """Sequential reader over a bytes buffer."""

    def __init__(self, data: bytes):
        self._data = memoryview(data)
        self._offset = 0

    def unpack(self, fmt: struct.Struct) -> tuple:
        values = fmt.unpack_from(self._data, self._offset)
        self._offset += fmt.size
        return values

    def text(self) -> str:
        (length,) = self.unpack(_LENGTH)
        end = self._offset + length
        if end > len(self._data):
            raise SnapshotError("Truncated text field")
        raw = bytes(self._data[self._offset:end])
        self._offset = end
        return raw.decode("utf-8")

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset


def decode_state(data: bytes) -> LotState:
    """
    Parse snapshot bytes back into a LotState.

    Raises:
        SnapshotError: If the data is truncated, has the wrong magic or
            version, or describes a state that breaks the lot invariants.
    """
    reader = _Reader(data)
    try:
        magic, version, capacity, occupied, small, large, count = reader.unpack(_HEADER)
        if magic != MAGIC:
            raise SnapshotError(f"Bad magic: {magic!r}")
        if version != VERSION:
            raise SnapshotError(f"Unsupported snapshot version: {version}")

        active: List[OccupantRecord] = []
        history: List[OccupantRecord] = []
        for _ in range(count):
            plate = reader.text()
            category = VehicleCategory(reader.text())
            entry_time, exit_time, fee = reader.unpack(_TIMES)
            record = OccupantRecord(
                plate=plate,
                category=category,
                entry_time=entry_time,
                exit_time=None if math.isnan(exit_time) else exit_time,
                fee=fee,
            )
            (active if record.is_present else history).append(record)
    except (struct.error, UnicodeDecodeError, ValueError) as e:
        raise SnapshotError(f"Corrupt snapshot: {e}") from e

    if reader.remaining:
        raise SnapshotError(f"{reader.remaining} trailing bytes after records")
    if not 0 < capacity <= MAX_CAPACITY:
        raise SnapshotError(f"Capacity out of range: {capacity}")
    if occupied != len(active):
        raise SnapshotError(
            f"Occupied count {occupied} does not match {len(active)} present records"
        )
    if occupied > capacity:
        raise SnapshotError(f"{occupied} vehicles present but capacity is {capacity}")
    if len({r.plate for r in active}) != len(active):
        raise SnapshotError("Duplicate plate among present records")
    if not (small > 0 and large > 0):
        raise SnapshotError(f"Non-positive rates: {small}, {large}")

    return LotState(
        capacity=capacity,
        small_rate=small,
        large_rate=large,
        active=active,
        history=history,
    )


# =============================================================================
# FILE STORE
# =============================================================================

class SnapshotStore:
    """
    Reads and writes the snapshot file.

    The store holds nothing but the path; callers serialize access to it.

    Usage:
        store = SnapshotStore("parking_data.dat")
        state = store.load()        # None if the file does not exist
        store.save(state)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[LotState]:
        """
        Load the snapshot.

        Returns:
            The stored state, or None if there is no snapshot file yet.

        Raises:
            SnapshotError: If the file exists but cannot be decoded.
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SnapshotError(f"Cannot read {self.path}: {e}") from e

        state = decode_state(data)
        logger.debug(
            f"Loaded snapshot {self.path}: {state.occupied}/{state.capacity} present, "
            f"{len(state.history)} in history"
        )
        return state

    def save(self, state: LotState) -> None:
        """
        Atomically replace the snapshot file with `state`.

        Raises:
            OSError: If the file cannot be written.
        """
        data = encode_state(state)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
        logger.debug(f"Wrote snapshot {self.path} ({len(data)} bytes)")
