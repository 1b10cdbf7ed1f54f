"""
Parking lot domain: the registry, its records and the snapshot file.
"""

from .models import OccupantRecord, VehicleCategory, compute_fee
from .registry import Failure, LotStatus, ParkingRegistry, RegistryResult
from .rwlock import ReadWriteLock, WriteCondition
from .snapshot import LotState, SnapshotError, SnapshotStore

__all__ = [
    "OccupantRecord",
    "VehicleCategory",
    "compute_fee",
    "Failure",
    "LotStatus",
    "ParkingRegistry",
    "RegistryResult",
    "ReadWriteLock",
    "WriteCondition",
    "LotState",
    "SnapshotError",
    "SnapshotStore",
]
