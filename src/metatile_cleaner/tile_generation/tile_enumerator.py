"""
Tile Coordinate Enumerator

Lazily enumerates the slippy-map tiles (Web Mercator, z/x/y) covering a
geographic bounding box. Enumeration is a pure function of the bounds, the
zoom level and the y-axis convention, so the same request can be iterated
any number of times and always yields the same tiles.

Tiles are produced column by column (x outer, y inner) for one zoom level;
multiple zoom levels are concatenated in ascending order without any
cross-zoom deduplication.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple


# Latitude limit of the Web Mercator projection
MAX_LATITUDE = 85.0511287798066

# Nudge applied to the east/south edges so a box ending exactly on a tile
# boundary does not pick up the neighbouring row or column
EDGE_EPSILON = 1e-9


@dataclass(frozen=True)
class Tile:
    """A single tile address."""
    z: int
    x: int
    y: int

    @property
    def tile_id(self) -> str:
        """Get unique tile identifier."""
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box in degrees (west, south, east, north)."""
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def world(cls) -> "BoundingBox":
        return cls(-180.0, -90.0, 180.0, 90.0)

    @classmethod
    def parse(cls, value: str) -> "BoundingBox":
        """
        Parse a "west,south,east,north" string.

        Raises:
            ValueError: If the string does not hold exactly four numbers
        """
        parts = [part.strip() for part in value.split(",")]
        if len(parts) != 4:
            raise ValueError(f"Bounds must be west,south,east,north: {value!r}")

        west, south, east, north = (float(part) for part in parts)
        return cls(west, south, east, north)

    def validate(self) -> None:
        """Check ordering and coordinate ranges."""
        if not (-180.0 <= self.west <= 180.0 and -180.0 <= self.east <= 180.0):
            raise ValueError("Longitudes must be between -180 and 180")

        if not (-90.0 <= self.south <= 90.0 and -90.0 <= self.north <= 90.0):
            raise ValueError("Latitudes must be between -90 and 90")

        # Antimeridian-crossing boxes are not supported
        if self.west > self.east:
            raise ValueError("West must not be greater than east")

        if self.south > self.north:
            raise ValueError("South must not be greater than north")

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)


@dataclass(frozen=True)
class EnumerationRequest:
    """
    Drives one enumeration run over several zoom levels.

    Iterating the request yields every tile for every zoom; each call to
    iter() starts a fresh enumeration.
    """
    bounds: BoundingBox
    zooms: Tuple[int, ...]
    inverted_y: bool = False

    def __post_init__(self):
        object.__setattr__(self, "zooms", tuple(self.zooms))

    def __iter__(self) -> Iterator[Tile]:
        return enumerate_tiles(self.bounds, self.zooms, self.inverted_y)

    def count(self) -> int:
        """Number of tiles the request yields, computed without enumerating."""
        return sum(count_tiles(self.bounds, zoom) for zoom in self.zooms)


def _deg_to_tile_fraction(lon: float, lat: float, zoom: int) -> Tuple[float, float]:
    """Convert longitude/latitude to fractional tile coordinates."""
    n = 2.0 ** zoom

    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    lat_rad = math.radians(lat)

    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n

    return (x, y)


def _clamp(value: int, upper: int) -> int:
    return max(0, min(upper, value))


def tile_range(bounds: BoundingBox, zoom: int) -> Tuple[int, int, int, int]:
    """
    Get the inclusive tile index range covering the bounds at a zoom level.

    Rows are numbered from the north (row 0 is the northernmost row).

    Args:
        bounds: Bounding box in degrees
        zoom: Zoom level

    Returns:
        Tuple of (min_x, min_y, max_x, max_y), each clamped to [0, 2^zoom - 1]
    """
    if zoom < 0:
        raise ValueError(f"Zoom level must not be negative: {zoom}")

    last = (1 << zoom) - 1

    # Upper-left corner gives the minimum column and row
    ul_x, ul_y = _deg_to_tile_fraction(bounds.west, bounds.north, zoom)

    # Lower-right corner gives the maximum column and row
    east = max(bounds.west, bounds.east - EDGE_EPSILON)
    south = min(bounds.north, bounds.south + EDGE_EPSILON)
    lr_x, lr_y = _deg_to_tile_fraction(east, south, zoom)

    min_x = _clamp(int(math.floor(ul_x)), last)
    min_y = _clamp(int(math.floor(ul_y)), last)
    max_x = _clamp(int(math.floor(lr_x)), last)
    max_y = _clamp(int(math.floor(lr_y)), last)

    return (min_x, min_y, max(min_x, max_x), max(min_y, max_y))


def count_tiles(bounds: BoundingBox, zoom: int) -> int:
    """Number of tiles covering the bounds at a zoom level."""
    min_x, min_y, max_x, max_y = tile_range(bounds, zoom)
    return (max_x - min_x + 1) * (max_y - min_y + 1)


def generate_tiles(bounds: BoundingBox, zoom: int, inverted_y: bool = False) -> Iterator[Tile]:
    """
    Lazily yield every tile intersecting the bounds at one zoom level.

    Args:
        bounds: Bounding box in degrees
        zoom: Zoom level
        inverted_y: Number rows from the south (TMS) instead of the north

    Yields:
        Tile for each (x, y) in the covering range, without duplicates
    """
    min_x, min_y, max_x, max_y = tile_range(bounds, zoom)
    last = (1 << zoom) - 1

    for x in range(min_x, max_x + 1):
        for y in range(min_y, max_y + 1):
            if inverted_y:
                yield Tile(z=zoom, x=x, y=last - y)
            else:
                yield Tile(z=zoom, x=x, y=y)


def enumerate_tiles(
    bounds: BoundingBox,
    zooms: Iterable[int],
    inverted_y: bool = False
) -> Iterator[Tile]:
    """Yield the tiles of every zoom level, in ascending zoom order."""
    for zoom in sorted(zooms):
        yield from generate_tiles(bounds, zoom, inverted_y)
