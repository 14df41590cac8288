"""
tilestack - Export and rebuild multi-resolution tile pyramids
from large tiled (x, y, z) image stacks
"""

__version__ = "0.1.0"

from .cache import TileCache
from .config import ConfigurationError, ExportJob, OutputConfig, ScaleJob, SourceConfig
from .exporter import TileExporter
from .naming import TilePattern
from .pyramid import PyramidBuilder
from .resample import AffineTransform, Interpolation, Orientation, ResampledVolume
from .tile_store import TileStore
from .volume import Bounds, RemoteVolume

__all__ = [
    "AffineTransform",
    "Bounds",
    "ConfigurationError",
    "ExportJob",
    "Interpolation",
    "Orientation",
    "OutputConfig",
    "PyramidBuilder",
    "RemoteVolume",
    "ResampledVolume",
    "ScaleJob",
    "SourceConfig",
    "TileCache",
    "TileExporter",
    "TilePattern",
    "TileStore",
]
