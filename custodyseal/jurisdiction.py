"""
CustodySeal Jurisdiction Router

Classifies a set of coordinates into jurisdictions using an ordered table
of inclusive bounding boxes.

Algorithm:
    - each coordinate votes for the FIRST box that contains it
    - coordinates matching no box contribute no vote
    - primary = code with the most votes; ties go to the
      lexicographically smallest code
    - crossBorder = more than one distinct code matched
    - no matches at all -> primary "UNKNOWN"

Table order is precedence. The default table lists UAE before SA, so a
point inside both boxes (Abu Dhabi) routes to UAE.

Assignments are derived values: they are never persisted and are
recomputed whenever needed.
"""

import json
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .summary import Coordinate

UNKNOWN_JURISDICTION = "UNKNOWN"


@dataclass(frozen=True)
class JurisdictionBox:
    code: str
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    def __post_init__(self):
        if not self.code or self.code == UNKNOWN_JURISDICTION:
            raise ValueError("jurisdiction code must be non-empty and not UNKNOWN")
        if self.lat_min > self.lat_max or self.lon_min > self.lon_max:
            raise ValueError(f"empty bounding box for {self.code}")

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.lat_min <= latitude <= self.lat_max
            and self.lon_min <= longitude <= self.lon_max
        )

    def intersects(self, other: 'JurisdictionBox') -> bool:
        return (
            self.lat_min <= other.lat_max and other.lat_min <= self.lat_max
            and self.lon_min <= other.lon_max and other.lon_min <= self.lon_max
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "latMin": self.lat_min,
            "latMax": self.lat_max,
            "lonMin": self.lon_min,
            "lonMax": self.lon_max,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'JurisdictionBox':
        return cls(
            code=data["code"],
            lat_min=float(data["latMin"]),
            lat_max=float(data["latMax"]),
            lon_min=float(data["lonMin"]),
            lon_max=float(data["lonMax"]),
        )


DEFAULT_TABLE: Tuple[JurisdictionBox, ...] = (
    JurisdictionBox("ZA", -34.8, -22.1, 16.5, 32.9),
    JurisdictionBox("UAE", 22.5, 26.3, 51.6, 56.4),
    JurisdictionBox("SA", 16.3, 32.1, 34.4, 55.9),
    JurisdictionBox("EU", 35.0, 71.0, -25.0, 40.0),
)


@dataclass(frozen=True)
class JurisdictionAssignment:
    primary: str
    all: FrozenSet[str]
    cross_border: bool
    votes: Mapping[str, int]
    unmatched: int = 0

    @property
    def is_unknown(self) -> bool:
        return self.primary == UNKNOWN_JURISDICTION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "all": sorted(self.all),
            "crossBorder": self.cross_border,
            "votes": dict(sorted(self.votes.items())),
            "unmatched": self.unmatched,
        }


CoordinateLike = Union[Coordinate, Tuple[float, float], Mapping[str, Any]]


def _lat_lon(coord: CoordinateLike) -> Tuple[float, float]:
    if isinstance(coord, Coordinate):
        return coord.latitude, coord.longitude
    if isinstance(coord, Mapping):
        c = Coordinate.from_dict(coord)
        return c.latitude, c.longitude
    latitude, longitude = coord
    c = Coordinate(latitude=latitude, longitude=longitude)
    return c.latitude, c.longitude


class JurisdictionRouter:
    """
    Pure, reentrant classifier over an ordered bounding-box table.
    """

    def __init__(self, table: Optional[Sequence[JurisdictionBox]] = None):
        self.table: Tuple[JurisdictionBox, ...] = tuple(table) if table is not None else DEFAULT_TABLE
        codes = [box.code for box in self.table]
        if len(codes) != len(set(codes)):
            raise ValueError("jurisdiction codes must be unique")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'JurisdictionRouter':
        """Build from {"jurisdictions": [{"code", "latMin", "latMax", "lonMin", "lonMax"}, ...]}."""
        return cls([JurisdictionBox.from_dict(entry) for entry in config["jurisdictions"]])

    @classmethod
    def from_file(cls, path: str) -> 'JurisdictionRouter':
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_config(json.load(f))

    def locate(self, latitude: float, longitude: float) -> Optional[str]:
        """Code of the first box containing the point, or None."""
        for box in self.table:
            if box.contains(latitude, longitude):
                return box.code
        return None

    def classify(self, coordinates: Iterable[CoordinateLike]) -> JurisdictionAssignment:
        votes: Counter = Counter()
        unmatched = 0
        for coord in coordinates:
            code = self.locate(*_lat_lon(coord))
            if code is None:
                unmatched += 1
            else:
                votes[code] += 1

        if not votes:
            return JurisdictionAssignment(
                primary=UNKNOWN_JURISDICTION,
                all=frozenset(),
                cross_border=False,
                votes={},
                unmatched=unmatched,
            )

        top = max(votes.values())
        primary = min(code for code, count in votes.items() if count == top)
        return JurisdictionAssignment(
            primary=primary,
            all=frozenset(votes),
            cross_border=len(votes) > 1,
            votes=dict(votes),
            unmatched=unmatched,
        )

    def overlaps(self) -> List[Tuple[str, str]]:
        """Pairs of box codes whose regions intersect, in table order."""
        pairs = []
        for i, a in enumerate(self.table):
            for b in self.table[i + 1:]:
                if a.intersects(b):
                    pairs.append((a.code, b.code))
        return pairs
