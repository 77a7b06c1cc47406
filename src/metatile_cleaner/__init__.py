"""
Metatile Cleaner

Bulk deletion of a build's metatile pyramid from S3: tile enumeration over
a bounding box and zoom range, sharded key derivation, and concurrent
batched DeleteObjects calls with progress reporting.
"""

__version__ = "1.0.0"

# Core modules
from . import deletion
from . import monitoring
from . import processing
from . import tile_generation
from . import utils

__all__ = [
    "deletion",
    "monitoring",
    "processing",
    "tile_generation",
    "utils"
]
