"""
Resampling - reorient, re-raster and crop addressable volumes
"""

import enum
import itertools

import numpy as np

from .pixels import pack_argb, unpack_argb
from .volume import Bounds

# fractional offsets closer than this to an integer are treated as integers
EPSILON = 1e-9


class Orientation(enum.Enum):
    """Which world axes map to a tile's columns, rows and sections."""

    XY = (0, 1, 2)
    XZ = (0, 2, 1)
    ZY = (2, 1, 0)

    @property
    def permutation(self):
        return self.value

    @classmethod
    def parse(cls, name):
        name = name.lower()
        if name in ('xz', 'zx'):
            return cls.XZ
        if name in ('zy', 'yz'):
            return cls.ZY
        if name == 'xy':
            return cls.XY
        raise ValueError(f"Unknown orientation {name!r}")


class Interpolation(enum.Enum):
    NEAREST = 'nearest'
    LINEAR = 'linear'

    @classmethod
    def parse(cls, name):
        name = name.lower()
        if name in ('nn', 'nearest'):
            return cls.NEAREST
        if name in ('nl', 'linear'):
            return cls.LINEAR
        raise ValueError(f"Unknown interpolation {name!r}")


class AffineTransform:
    """3x4 row-major affine map, the last column being the translation."""

    def __init__(self, matrix):
        self.matrix = np.asarray(matrix, dtype=np.float64).reshape(3, 4)

    @classmethod
    def identity(cls):
        return cls(np.eye(3, 4))

    @classmethod
    def scale_translate(cls, scale, translation):
        matrix = np.zeros((3, 4))
        matrix[:, :3] = np.diag(scale)
        matrix[:, 3] = translation
        return cls(matrix)

    def inverse(self):
        full = np.eye(4)
        full[:3] = self.matrix
        return AffineTransform(np.linalg.inv(full)[:3])

    def apply(self, points):
        """Transform an array of points with shape (..., 3)."""
        points = np.asarray(points, dtype=np.float64)
        return points @ self.matrix[:, :3].T + self.matrix[:, 3]

    def apply_inverse(self, points):
        return self.inverse().apply(points)

    def __repr__(self):
        return f"AffineTransform({self.matrix.tolist()})"


class OrientedVolume:
    """Axis-permuted view of a volume."""

    def __init__(self, source, orientation):
        self.source = source
        self.orientation = orientation
        self.bounds = source.bounds.permuted(orientation.permutation)

    def gather(self, xs, ys, zs):
        coords = (xs, ys, zs)
        order = self.orientation.permutation
        return self.source.gather(coords[order[0]], coords[order[1]], coords[order[2]])

    def sample(self, x, y, z):
        return int(self.gather(x, y, z))


class ResampledVolume:
    """
    Volume sampled from a source through an affine transform.

    The transform maps source coordinates to the coordinates of this
    volume; sampling applies its inverse and interpolates the source at the
    resulting real position. The interpolation rule is chosen once, when
    the volume is created.
    """

    def __init__(self, source, transform, interpolation=Interpolation.NEAREST, extent=None):
        self.source = source
        self.transform = transform
        self.interpolation = interpolation
        self.bounds = extent if extent is not None else source.bounds
        self._to_source = transform.inverse()
        if interpolation is Interpolation.LINEAR:
            self._gather = self._gather_linear
        else:
            self._gather = self._gather_nearest

    def gather(self, xs, ys, zs):
        xs, ys, zs = np.broadcast_arrays(
            np.asarray(xs, dtype=np.float64),
            np.asarray(ys, dtype=np.float64),
            np.asarray(zs, dtype=np.float64))
        coords = self._to_source.apply(np.stack([xs, ys, zs], axis=-1))
        nearest = np.rint(coords)
        coords = np.where(np.abs(coords - nearest) < EPSILON, nearest, coords)
        return self._gather(coords)

    def sample(self, x, y, z):
        return int(self.gather(x, y, z))

    def _gather_nearest(self, coords):
        idx = np.floor(coords + 0.5).astype(np.int64)
        return self.source.gather(idx[..., 0], idx[..., 1], idx[..., 2])

    def _gather_linear(self, coords):
        base = np.floor(coords)
        frac = coords - base
        base = base.astype(np.int64)
        axes = [d for d in range(3) if np.any(frac[..., d] != 0)]

        acc = np.zeros(coords.shape[:-1] + (4,), dtype=np.float64)
        for corner in itertools.product((0, 1), repeat=len(axes)):
            weight = np.ones(coords.shape[:-1])
            idx = base.copy()
            for step, d in zip(corner, axes):
                if step:
                    idx[..., d] += 1
                    weight *= frac[..., d]
                else:
                    weight *= 1.0 - frac[..., d]
            values = self.source.gather(idx[..., 0], idx[..., 1], idx[..., 2])
            acc += weight[..., None] * unpack_argb(values)

        channels = np.clip(np.floor(acc + 0.5), 0, 255).astype(np.uint32)
        return pack_argb(channels[..., 0], channels[..., 1], channels[..., 2], channels[..., 3])


def resample_remote(volume, res_xy=1.0, res_z=1.0, offset=(0, 0, 0),
                    interpolation=Interpolation.NEAREST):
    """
    Isotropic, cropped view of a RemoteVolume.

    x and y are read at the volume's own scale level, z is stretched by
    res_z / res_xy at that level, and the level 0 pixel ``offset`` is moved
    to the origin.

    Args:
        volume: RemoteVolume
        res_xy: x,y-resolution of the stack
        res_z: z-resolution of the stack, only the ratio to res_xy matters
        offset: crop origin in level 0 pixels
        interpolation: Interpolation mode

    Returns:
        ResampledVolume
    """
    scale_xy = volume.scale
    scale_z = res_z / res_xy * scale_xy

    offset_x = offset[0] * scale_xy
    offset_y = offset[1] * scale_xy
    offset_z = offset[2] * scale_z

    transform = AffineTransform([
        [1, 0, 0, -offset_x],
        [0, 1, 0, -offset_y],
        [0, 0, scale_z, -offset_z]])
    extent = Bounds.from_size((
        int(scale_xy * volume.width - offset_x),
        int(scale_xy * volume.height - offset_y),
        int(scale_z * volume.depth - offset_z)))
    return ResampledVolume(volume, transform, interpolation, extent)
