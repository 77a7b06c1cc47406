"""
Tile Generation Module

Tile coordinate enumeration over a bounding box and zoom range, and the
derivation of sharded storage keys for the metatile objects of a build.
"""

from .tile_enumerator import (
    BoundingBox,
    EnumerationRequest,
    Tile,
    count_tiles,
    enumerate_tiles,
    generate_tiles,
    tile_range,
)
from .storage_keys import derive_key, shard_prefix, tile_path

__all__ = [
    "BoundingBox",
    "EnumerationRequest",
    "Tile",
    "count_tiles",
    "enumerate_tiles",
    "generate_tiles",
    "tile_range",
    "derive_key",
    "shard_prefix",
    "tile_path",
]
