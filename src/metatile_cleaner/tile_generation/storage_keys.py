"""
Storage key derivation for metatile objects.

Keys have the form "{hash5}/{build_id}/{z}/{x}/{y}.zip". The five hex
character prefix is taken from the MD5 of the unprefixed "{z}/{x}/{y}.zip"
path only, so a tile shards to the same prefix in every build.
"""

import hashlib

from .tile_enumerator import Tile


HASH_PREFIX_LENGTH = 5
METATILE_EXTENSION = "zip"


def tile_path(tile: Tile) -> str:
    return f"{tile.z}/{tile.x}/{tile.y}.{METATILE_EXTENSION}"


def shard_prefix(path: str) -> str:
    """First five lowercase hex characters of the path's MD5 digest."""
    return hashlib.md5(path.encode("utf-8")).hexdigest()[:HASH_PREFIX_LENGTH]


def derive_key(build_id: str, tile: Tile) -> str:
    """
    Derive the object key of a tile for a build.

    Args:
        build_id: Build identifier the metatile belongs to
        tile: Tile address

    Returns:
        Storage key such as "df4c9/abc123/0/0/0.zip"
    """
    path = tile_path(tile)
    return f"{shard_prefix(path)}/{build_id}/{path}"
