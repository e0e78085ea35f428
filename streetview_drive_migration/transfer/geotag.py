"""
Geotag values injected into a photo's EXIF metadata.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from streetview_drive_migration.models import Pose, _is_number

Rational = Tuple[int, int]


@dataclass(frozen=True)
class Geotag:
    """Latitude/longitude plus the optional pose values that are numerically present."""
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    heading: Optional[float] = None
    pitch: Optional[float] = None
    roll: Optional[float] = None

    @classmethod
    def from_pose(cls, pose: Optional[Pose]) -> 'Geotag':
        """
        Build a geotag from a photo pose.

        Raises:
            ValueError: If the pose has no latitude/longitude pair
        """
        if pose is None or not pose.has_lat_lng:
            raise ValueError("Photo pose has no latitude/longitude pair")

        def optional(value):
            return float(value) if _is_number(value) else None

        return cls(
            latitude=float(pose.latitude),
            longitude=float(pose.longitude),
            altitude=optional(pose.altitude),
            heading=optional(pose.heading),
            pitch=optional(pose.pitch),
            roll=optional(pose.roll),
        )

    @property
    def has_orientation(self) -> bool:
        return self.pitch is not None or self.roll is not None


def deg_to_dms_rational(deg: float) -> List[Rational]:
    """
    Convert non-negative decimal degrees to EXIF degrees/minutes/seconds rationals.

    Seconds keep two decimal places (denominator 100).
    """
    d = int(deg)
    min_float = (deg - d) * 60
    m = int(min_float)
    sec_float = (min_float - m) * 60
    s = round(sec_float * 100)
    # Rounding can produce 60.00 seconds; carry it.
    if s >= 6000:
        s -= 6000
        m += 1
    if m >= 60:
        m -= 60
        d += 1
    return [(d, 1), (m, 1), (s, 100)]


def to_rational(value: float, precision: int = 100) -> Rational:
    return (int(round(value * precision)), precision)
