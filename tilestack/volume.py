"""
Remote Volume - lazily fetched, cached view of a tiled (x, y, z) image stack
"""

import logging
import math
from collections import namedtuple

import numpy as np

from .cache import TileCache
from .naming import TilePattern
from .pixels import filled_tile
from .tile_store import TileStore

logger = logging.getLogger(__name__)

TileKey = namedtuple('TileKey', ['row', 'col', 'z', 'level'])


class Bounds:
    """Axis-aligned integer box, min and max inclusive on every axis."""

    def __init__(self, min, max):
        self.min = tuple(int(v) for v in min)
        self.max = tuple(int(v) for v in max)
        if len(self.min) != len(self.max):
            raise ValueError("min and max must have the same number of dimensions")

    @classmethod
    def from_size(cls, size, min=None):
        if min is None:
            min = (0,) * len(size)
        return cls(min, [m + s - 1 for m, s in zip(min, size)])

    @property
    def ndim(self):
        return len(self.min)

    def dimension(self, d):
        return self.max[d] - self.min[d] + 1

    @property
    def dimensions(self):
        return tuple(self.dimension(d) for d in range(self.ndim))

    def is_empty(self):
        return any(self.dimension(d) <= 0 for d in range(self.ndim))

    def permuted(self, order):
        """Bounds with axes taken in the given order."""
        return Bounds([self.min[d] for d in order], [self.max[d] for d in order])

    def contains(self, *position):
        return all(lo <= p <= hi for p, lo, hi in zip(position, self.min, self.max))

    def __eq__(self, other):
        return isinstance(other, Bounds) and self.min == other.min and self.max == other.max

    def __repr__(self):
        return f"Bounds(min={self.min}, max={self.max})"


class VolumeCursor:
    """
    Movable read position inside a RemoteVolume.

    The owning tile (row, col) and the offset inside it (x_mod, y_mod) are
    kept as incremental state: single steps only touch the offset and move
    to the neighbouring tile when it wraps, jumps recompute both by integer
    division. The tile buffer is resolved on demand and dropped whenever the
    owning tile changes.
    """

    def __init__(self, volume):
        self.volume = volume
        self.tile_width = volume.tile_width
        self.tile_height = volume.tile_height
        self.position = [0, 0, 0]
        self.row = 0
        self.col = 0
        self.x_mod = 0
        self.y_mod = 0
        self._pixels = None

    @property
    def tile_index(self):
        return self.row, self.col

    @property
    def tile_offset(self):
        return self.x_mod, self.y_mod

    def _invalidate(self):
        self._pixels = None

    def fwd(self, d):
        self.position[d] += 1
        if d == 0:
            self.x_mod += 1
            if self.x_mod == self.tile_width:
                self.col += 1
                self.x_mod = 0
                self._invalidate()
        elif d == 1:
            self.y_mod += 1
            if self.y_mod == self.tile_height:
                self.row += 1
                self.y_mod = 0
                self._invalidate()
        else:
            self._invalidate()

    def bck(self, d):
        self.position[d] -= 1
        if d == 0:
            self.x_mod -= 1
            if self.x_mod == -1:
                self.col -= 1
                self.x_mod = self.tile_width - 1
                self._invalidate()
        elif d == 1:
            self.y_mod -= 1
            if self.y_mod == -1:
                self.row -= 1
                self.y_mod = self.tile_height - 1
                self._invalidate()
        else:
            self._invalidate()

    def move(self, distance, d):
        if distance == 0:
            return
        self.set_position_dim(self.position[d] + distance, d)

    def set_position_dim(self, value, d):
        value = int(value)
        if d == 0:
            col, self.x_mod = divmod(value, self.tile_width)
            if col != self.col:
                self.col = col
                self._invalidate()
        elif d == 1:
            row, self.y_mod = divmod(value, self.tile_height)
            if row != self.row:
                self.row = row
                self._invalidate()
        elif value != self.position[d]:
            self._invalidate()
        self.position[d] = value

    def set_position(self, position):
        x, y, z = (int(p) for p in position)
        col, self.x_mod = divmod(x, self.tile_width)
        row, self.y_mod = divmod(y, self.tile_height)
        if col != self.col or row != self.row or z != self.position[2]:
            self.col = col
            self.row = row
            self._invalidate()
        self.position = [x, y, z]

    def get(self):
        """Packed ARGB value at the current position."""
        if not self.volume.bounds.contains(*self.position):
            return self.volume.background
        if self._pixels is None:
            self._pixels = self.volume.fetch_tile(self.row, self.col, self.position[2])
        return int(self._pixels[self.y_mod, self.x_mod])

    def copy(self):
        other = VolumeCursor(self.volume)
        other.position = list(self.position)
        other.row, other.col = self.row, self.col
        other.x_mod, other.y_mod = self.x_mod, self.y_mod
        other._pixels = self._pixels
        return other


class RemoteVolume:
    """
    Read-only 3D volume backed by a remote tile set.

    Tiles are addressed by scale level, scale, x, y, z, tile width, tile
    height, row and column through a TilePattern and fetched only when a
    pixel inside them is read. Fetched tiles are kept in a bounded TileCache
    shared by all readers of this volume.
    """

    def __init__(self, pattern, width, height, depth, scale_level=0,
                 tile_width=256, tile_height=256, cache_size=0,
                 background=0, store=None):
        """
        Args:
            pattern: TilePattern or template string addressing source tiles
            width, height, depth: extent of the stack at scale level 0
            scale_level: scale level to read, the volume is 2^scale_level
                times smaller than level 0 in x and y
            tile_width, tile_height: source tile size in pixels
            cache_size: maximum number of cached tiles (<= 0 for the default)
            background: packed ARGB value of tiles that cannot be loaded
            store: TileStore used for fetching
        """
        if not isinstance(pattern, TilePattern):
            pattern = TilePattern(pattern)
        self.pattern = pattern
        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)
        self.scale_level = int(scale_level)
        self.scale = 1.0 / (1 << self.scale_level)
        self.tile_width = int(tile_width)
        self.tile_height = int(tile_height)
        self.background = int(background)
        self.store = store if store is not None else TileStore()
        self.cache = TileCache(cache_size)

        self.bounds = self.bounds_of(self.scale_level)
        self.cols = math.ceil(self.scale * self.width / self.tile_width)
        self.rows = math.ceil(self.scale * self.height / self.tile_height)

        self._background_tile = filled_tile(self.tile_width, self.tile_height, self.background)
        self._background_tile.flags.writeable = False

    def bounds_of(self, scale_level):
        """Extent of the stack at a scale level."""
        scale = 1.0 / (1 << scale_level)
        return Bounds(
            (0, 0, 0),
            (math.ceil(scale * self.width) - 1,
             math.ceil(scale * self.height) - 1,
             self.depth - 1))

    def cursor(self):
        return VolumeCursor(self)

    def fetch_tile(self, row, col, z):
        """
        Return the decoded tile at (row, col, z) of this volume's scale level.

        Tiles that fail to load come back filled with the background value.
        Running out of memory while loading evicts half of the cache and
        retries once.
        """
        try:
            return self._fetch_tile(row, col, z)
        except MemoryError:
            logger.warning(
                "Out of memory while fetching tile (%d, %d, %d), trying to recover",
                col, row, z)
            self.cache.reclaim()
            return self._fetch_tile(row, col, z)

    def _fetch_tile(self, row, col, z):
        key = TileKey(int(row), int(col), int(z), self.scale_level)
        return self.cache.get(key, lambda: self._load(key))

    def _load(self, key):
        location = self.pattern.location(
            self.scale_level, self.scale,
            key.col * self.tile_width, key.row * self.tile_height, key.z,
            self.tile_width, self.tile_height, key.row, key.col)
        logger.debug("Load s=%d r=%d c=%d z=%d url(%s)",
                     key.level, key.row, key.col, key.z, location)
        pixels = self.store.read(location, self._background_tile)
        if pixels is not self._background_tile:
            pixels.flags.writeable = False
        return pixels

    def sample(self, x, y, z):
        """Packed ARGB value at an integer position."""
        if not self.bounds.contains(x, y, z):
            return self.background
        row, y_mod = divmod(int(y), self.tile_height)
        col, x_mod = divmod(int(x), self.tile_width)
        return int(self.fetch_tile(row, col, z)[y_mod, x_mod])

    def gather(self, xs, ys, zs):
        """
        Sample arrays of integer positions.

        Positions are grouped by their owning tile so that every touched
        tile is fetched once per call. Positions outside the volume read as
        background.

        Returns:
            np.ndarray: uint32 array with the broadcast shape of the inputs
        """
        xs, ys, zs = np.broadcast_arrays(
            np.asarray(xs, dtype=np.int64),
            np.asarray(ys, dtype=np.int64),
            np.asarray(zs, dtype=np.int64))
        out = np.full(xs.shape, self.background, dtype=np.uint32)

        lo, hi = self.bounds.min, self.bounds.max
        inside = ((xs >= lo[0]) & (xs <= hi[0]) &
                  (ys >= lo[1]) & (ys <= hi[1]) &
                  (zs >= lo[2]) & (zs <= hi[2]))
        if not inside.any():
            return out

        x = xs[inside]
        y = ys[inside]
        z = zs[inside]
        rows = y // self.tile_height
        cols = x // self.tile_width
        keys, inverse, counts = np.unique(
            np.stack([z, rows, cols], axis=1), axis=0, return_inverse=True, return_counts=True)

        # positions sorted by owning tile, one contiguous run per tile
        order = np.argsort(inverse.reshape(-1), kind='stable')
        ends = np.cumsum(counts)

        values = np.empty(x.shape, dtype=np.uint32)
        for (tz, row, col), start, end in zip(keys, ends - counts, ends):
            sel = order[start:end]
            tile = self.fetch_tile(int(row), int(col), int(tz))
            values[sel] = tile[y[sel] - row * self.tile_height, x[sel] - col * self.tile_width]
        out[inside] = values
        return out

    def read_block(self, x0, y0, z, width, height):
        """Read a (height, width) block with its top-left corner at (x0, y0, z)."""
        ys, xs = np.mgrid[y0:y0 + height, x0:x0 + width]
        return self.gather(xs, ys, z)
