"""
=============================================================================
PARKING LOT DATA MODEL
=============================================================================

The value types shared by the registry, the snapshot store and the HTTP
handlers.

=============================================================================
RECORD LIFECYCLE
=============================================================================

    ┌──────────────┐   admit()    ┌──────────────┐   release()   ┌──────────────┐
    │   (absent)   │ ───────────► │   PRESENT    │ ────────────► │   RELEASED   │
    └──────────────┘              │ exit = None  │               │ exit, fee    │
           ▲                      └──────────────┘               └──────────────┘
           │                                                            │
           └──────────── same plate may be admitted again ──────────────┘

A present record lives in the registry's active set. Once released it is
frozen and appended to history; its timestamps and fee never change again.

=============================================================================
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Dict, Any


class VehicleCategory(Enum):
    """
    Vehicle size category. Selects which hourly rate applies.

    The frontend labels vehicles in Chinese ("小型" / "大型"), so parse()
    accepts those alongside the English names.
    """

    SMALL = "small"
    LARGE = "large"

    @classmethod
    def parse(cls, value: Any) -> "VehicleCategory":
        """
        Convert user input to a category.

        Raises:
            ValueError: If the value names no known category.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid vehicle category: {value!r}")

        key = value.strip().lower()
        category = _CATEGORY_ALIASES.get(key)
        if category is None:
            raise ValueError(f"Invalid vehicle category: {value!r}")
        return category


_CATEGORY_ALIASES: Dict[str, VehicleCategory] = {
    "small": VehicleCategory.SMALL,
    "小型": VehicleCategory.SMALL,
    "large": VehicleCategory.LARGE,
    "大型": VehicleCategory.LARGE,
}


@dataclass
class OccupantRecord:
    """
    One vehicle's stay in the lot.

    Attributes:
        plate: Licence plate, the unique key while present.
        category: Size category, selects the rate.
        entry_time: Admission time (epoch seconds).
        exit_time: Release time, or None while the vehicle is present.
        fee: Parking fee, only meaningful once released.
    """

    plate: str
    category: VehicleCategory
    entry_time: float
    exit_time: Optional[float] = None
    fee: float = 0.0

    @property
    def is_present(self) -> bool:
        return self.exit_time is None

    @property
    def duration_hours(self) -> Optional[float]:
        """Elapsed stay in fractional hours, None while present."""
        if self.exit_time is None:
            return None
        return (self.exit_time - self.entry_time) / 3600

    def copy(self) -> "OccupantRecord":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape used by the API (exitTime is 0 while present)."""
        return {
            "plate": self.plate,
            "type": self.category.value,
            "entryTime": self.entry_time,
            "exitTime": self.exit_time if self.exit_time is not None else 0,
            "fee": self.fee,
        }


def compute_fee(entry_time: float, exit_time: float, rate: float) -> float:
    """
    Fee for a stay: elapsed hours times the hourly rate, to 2 decimals.

    Example:
        >>> compute_fee(0.0, 5400.0, 10.0)
        15.0
    """
    hours = (exit_time - entry_time) / 3600
    return round(hours * rate, 2)
