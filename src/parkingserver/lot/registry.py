"""
=============================================================================
PARKING REGISTRY
=============================================================================

The single owner of lot state: capacity, hourly rates, the vehicles that
are currently parked and the history of finished stays.

=============================================================================
STATE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  capacity          fixed at startup (or loaded from the snapshot)   │
    │  rates             {SMALL: 5.0, LARGE: 8.0}, changed by set_rates() │
    │                                                                     │
    │  active            dict plate -> OccupantRecord   (present)         │
    │  history           list of OccupantRecord         (released)        │
    │  last_released     dict plate -> newest released record             │
    └─────────────────────────────────────────────────────────────────────┘

    occupied == len(active) <= capacity, always.

A plate lives in `active` at most once. When it leaves, its record is
frozen and appended to `history`, so the same plate can park again later.

=============================================================================
LOCKING
=============================================================================

    admit / release / set_rates         query / list / status
    ───────────────────────────         ─────────────────────
    1. write lock                       read lock
    2. mutate in memory                 copy what is needed
    3. release write lock
    4. persist lock
       └── read lock: capture LotState
       └── write snapshot file

File I/O never happens under the write lock. Because the state is
captured only after the persist lock is taken, a later save always writes
a state at least as new as an earlier one.

A full lot makes admit() wait on `_space_available`, a condition on the
write side of the lock. Each release() wakes exactly one waiter, and the
waiter re-checks `len(active) < capacity` before taking the space.

=============================================================================
FAILURES
=============================================================================

Business failures (duplicate plate, lot full, unknown plate, bad rate...)
are returned as RegistryResult values and never raised. Snapshot write
errors are logged; the in-memory change stays applied.

=============================================================================
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .models import OccupantRecord, VehicleCategory, compute_fee
from .rwlock import ReadWriteLock
from .snapshot import LotState, SnapshotError, SnapshotStore


logger = logging.getLogger(__name__)


class Failure(Enum):
    """Why a registry operation did not succeed."""

    DUPLICATE = "duplicate"
    FULL = "full"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    ALREADY_RELEASED = "already_released"
    INVALID_RATE = "invalid_rate"
    INVALID_CATEGORY = "invalid_category"


@dataclass
class RegistryResult:
    """
    Outcome of a registry operation.

    Truthy on success, so callers can write `if registry.admit(...):`.
    """

    ok: bool
    failure: Optional[Failure] = None
    record: Optional[OccupantRecord] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, record: Optional[OccupantRecord] = None, message: str = "") -> "RegistryResult":
        return cls(ok=True, record=record, message=message)

    @classmethod
    def fail(cls, failure: Failure, message: str) -> "RegistryResult":
        return cls(ok=False, failure=failure, message=message)


@dataclass
class LotStatus:
    """Occupancy summary returned by ParkingRegistry.status()."""

    capacity: int
    occupied: int
    small_rate: float
    large_rate: float

    @property
    def available(self) -> int:
        return self.capacity - self.occupied


def _valid_rate(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


class ParkingRegistry:
    """
    Capacity-bounded, thread-safe table of parked vehicles.

    Usage:
        registry = ParkingRegistry(
            capacity=100, small_rate=5.0, large_rate=8.0,
            store=SnapshotStore("parking_data.dat"),
        )

        result = registry.admit("京A12345", "small")
        if not result:
            print(result.failure, result.message)

        result = registry.release("京A12345")
        print(result.record.fee)

    When a store is given, its snapshot is loaded once here. If there is
    no snapshot, or it cannot be decoded, the lot starts empty with the
    capacity and rates passed in.
    """

    def __init__(
        self,
        capacity: int = 100,
        small_rate: float = 5.0,
        large_rate: float = 8.0,
        store: Optional[SnapshotStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValueError(f"capacity must be a positive integer, got {capacity!r}")
        if not (_valid_rate(small_rate) and _valid_rate(large_rate)):
            raise ValueError(f"rates must be positive, got {small_rate!r}, {large_rate!r}")

        self._capacity = capacity
        self._rates: Dict[VehicleCategory, float] = {
            VehicleCategory.SMALL: float(small_rate),
            VehicleCategory.LARGE: float(large_rate),
        }
        self._active: Dict[str, OccupantRecord] = {}
        self._history: List[OccupantRecord] = []
        self._last_released: Dict[str, OccupantRecord] = {}

        self._lock = ReadWriteLock()
        self._space_available = self._lock.new_condition()
        self._persist_lock = threading.Lock()

        self._store = store
        self._clock = clock

        if store is not None:
            self._load()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def admit(self, plate: str, category, wait_timeout: float = 0.0) -> RegistryResult:
        """
        Park a vehicle.

        Args:
            plate: Licence plate. Must not already be in the lot.
            category: VehicleCategory, or a string VehicleCategory.parse()
                accepts.
            wait_timeout: Seconds to wait for a free space when the lot is
                full. 0 fails at once.

        Returns:
            Success with a copy of the new record, or a failure of
            DUPLICATE, FULL, TIMEOUT or INVALID_CATEGORY.
        """
        try:
            category = VehicleCategory.parse(category)
        except ValueError as e:
            return RegistryResult.fail(Failure.INVALID_CATEGORY, str(e))

        with self._lock.write():
            if plate in self._active:
                return RegistryResult.fail(Failure.DUPLICATE, f"Vehicle {plate} is already in the lot")

            if len(self._active) >= self._capacity:
                if wait_timeout <= 0:
                    return RegistryResult.fail(Failure.FULL, "Parking lot is full")

                logger.debug(f"Lot full, {plate} waiting up to {wait_timeout}s for a space")
                has_space = self._space_available.wait_for(
                    lambda: len(self._active) < self._capacity, wait_timeout
                )
                if not has_space:
                    return RegistryResult.fail(
                        Failure.TIMEOUT,
                        f"Parking lot is full, no space freed within {wait_timeout}s",
                    )

                if plate in self._active:
                    # The space we were woken for is unused; hand it on.
                    self._space_available.notify()
                    return RegistryResult.fail(Failure.DUPLICATE, f"Vehicle {plate} is already in the lot")

            record = OccupantRecord(plate=plate, category=category, entry_time=self._clock())
            self._active[plate] = record
            occupied = len(self._active)
            result = RegistryResult.success(record.copy(), "Vehicle admitted")

        logger.info(f"Admitted {plate} ({category.value}), {occupied}/{self._capacity} occupied")
        self._persist()
        return result

    def release(self, plate: str) -> RegistryResult:
        """
        Check a vehicle out and compute its fee.

        Returns:
            Success with a copy of the finished record, or a failure of
            NOT_FOUND or ALREADY_RELEASED.
        """
        with self._lock.write():
            record = self._active.pop(plate, None)
            if record is None:
                if plate in self._last_released:
                    return RegistryResult.fail(Failure.ALREADY_RELEASED, f"Vehicle {plate} has already left")
                return RegistryResult.fail(Failure.NOT_FOUND, f"Vehicle {plate} not found")

            # Never bill a negative stay if the wall clock steps backwards.
            record.exit_time = max(self._clock(), record.entry_time)
            record.fee = compute_fee(record.entry_time, record.exit_time, self._rates[record.category])

            self._history.append(record)
            self._last_released[plate] = record
            self._space_available.notify()

            occupied = len(self._active)
            result = RegistryResult.success(record.copy(), "Vehicle released")

        logger.info(f"Released {plate}, fee {record.fee:.2f}, {occupied}/{self._capacity} occupied")
        self._persist()
        return result

    def set_rates(self, small_rate: float, large_rate: float) -> RegistryResult:
        """
        Replace both hourly rates. Fees already charged are not touched.

        Returns:
            Success, or INVALID_RATE unless both rates are positive numbers.
        """
        if not (_valid_rate(small_rate) and _valid_rate(large_rate)):
            return RegistryResult.fail(Failure.INVALID_RATE, "Rates must be positive numbers")

        with self._lock.write():
            self._rates[VehicleCategory.SMALL] = float(small_rate)
            self._rates[VehicleCategory.LARGE] = float(large_rate)

        logger.info(f"Rates changed: small={small_rate}, large={large_rate}")
        self._persist()
        return RegistryResult.success(message="Rates updated")

    # =========================================================================
    # QUERIES
    # =========================================================================

    def query(self, plate: str) -> RegistryResult:
        """Look up a present vehicle, or failing that its latest finished stay."""
        with self._lock.read():
            record = self._active.get(plate) or self._last_released.get(plate)
            if record is None:
                return RegistryResult.fail(Failure.NOT_FOUND, f"Vehicle {plate} not found")
            return RegistryResult.success(record.copy(), "Vehicle found")

    def list_current(self) -> List[OccupantRecord]:
        with self._lock.read():
            return [r.copy() for r in self._active.values()]

    def list_history(self) -> List[OccupantRecord]:
        with self._lock.read():
            return [r.copy() for r in self._history]

    def status(self) -> LotStatus:
        with self._lock.read():
            return LotStatus(
                capacity=self._capacity,
                occupied=len(self._active),
                small_rate=self._rates[VehicleCategory.SMALL],
                large_rate=self._rates[VehicleCategory.LARGE],
            )

    def rate_for(self, category) -> float:
        category = VehicleCategory.parse(category)
        with self._lock.read():
            return self._rates[category]

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def occupied(self) -> int:
        with self._lock.read():
            return len(self._active)

    def snapshot(self) -> LotState:
        """Consistent copy of everything that gets persisted."""
        with self._lock.read():
            return LotState(
                capacity=self._capacity,
                small_rate=self._rates[VehicleCategory.SMALL],
                large_rate=self._rates[VehicleCategory.LARGE],
                active=[r.copy() for r in self._active.values()],
                history=[r.copy() for r in self._history],
            )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _persist(self) -> None:
        if self._store is None:
            return

        with self._persist_lock:
            state = self.snapshot()
            try:
                self._store.save(state)
            except (OSError, SnapshotError):
                logger.exception(f"Failed to save snapshot to {self._store.path}")

    def _load(self) -> None:
        try:
            state = self._store.load()
        except SnapshotError as e:
            logger.warning(f"Ignoring unreadable snapshot {self._store.path}: {e}; starting empty")
            return

        if state is None:
            logger.info(f"No snapshot at {self._store.path}, starting empty")
            return

        self._capacity = state.capacity
        self._rates[VehicleCategory.SMALL] = state.small_rate
        self._rates[VehicleCategory.LARGE] = state.large_rate
        self._active = {r.plate: r for r in state.active}
        self._history = list(state.history)
        self._last_released = {r.plate: r for r in state.history}

        logger.info(
            f"Restored snapshot {self._store.path}: "
            f"{len(self._active)}/{self._capacity} occupied, {len(self._history)} in history"
        )
