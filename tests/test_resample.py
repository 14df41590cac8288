"""
Tests for orientation, affine resampling and interpolation
"""

import unittest

import numpy as np

from tilestack.pixels import pack_argb, unpack_argb
from tilestack.resample import (AffineTransform, Interpolation, Orientation, OrientedVolume,
                                ResampledVolume, resample_remote)
from tilestack.volume import Bounds, RemoteVolume


class ArrayVolume:
    """In-memory volume over a (z, y, x) array of packed pixels."""

    def __init__(self, data, background=0):
        self.data = data
        self.background = background
        depth, height, width = data.shape
        self.bounds = Bounds((0, 0, 0), (width - 1, height - 1, depth - 1))

    def gather(self, xs, ys, zs):
        xs, ys, zs = np.broadcast_arrays(xs, ys, zs)
        inside = self.bounds.contains
        out = np.full(xs.shape, self.background, dtype=np.uint32)
        for index in np.ndindex(xs.shape):
            x, y, z = int(xs[index]), int(ys[index]), int(zs[index])
            if inside(x, y, z):
                out[index] = self.data[z, y, x]
        return out


def coordinate_volume(width, height, depth):
    zs, ys, xs = np.mgrid[0:depth, 0:height, 0:width]
    return ArrayVolume(pack_argb(0xFF, xs * 10, ys * 10, zs * 10))


def rgb(value):
    return tuple(int(c) for c in unpack_argb(value)[1:])


class TestParsing(unittest.TestCase):

    def test_orientation(self):
        self.assertIs(Orientation.parse('XY'), Orientation.XY)
        self.assertIs(Orientation.parse('zx'), Orientation.XZ)
        self.assertIs(Orientation.parse('yz'), Orientation.ZY)
        with self.assertRaises(ValueError):
            Orientation.parse('xyz')

    def test_interpolation(self):
        self.assertIs(Interpolation.parse('nn'), Interpolation.NEAREST)
        self.assertIs(Interpolation.parse('NL'), Interpolation.LINEAR)
        with self.assertRaises(ValueError):
            Interpolation.parse('cubic')


class TestAffineTransform(unittest.TestCase):

    def test_inverse(self):
        transform = AffineTransform([[2, 0, 0, 1], [0, 1, 0, -3], [0, 0, 0.5, 4]])
        points = np.array([[1.0, 2.0, 3.0], [-4.0, 0.5, 10.0]])
        np.testing.assert_allclose(transform.apply_inverse(transform.apply(points)), points)

    def test_scale_translate(self):
        transform = AffineTransform.scale_translate((1, 2, 3), (4, 5, 6))
        np.testing.assert_allclose(transform.apply([1, 1, 1]), [5, 7, 9])


class TestOrientedVolume(unittest.TestCase):

    def test_bounds(self):
        source = coordinate_volume(4, 3, 2)
        self.assertEqual(OrientedVolume(source, Orientation.XZ).bounds.max, (3, 1, 2))
        self.assertEqual(OrientedVolume(source, Orientation.ZY).bounds.max, (1, 2, 3))

    def test_axes(self):
        source = coordinate_volume(4, 3, 2)
        xz = OrientedVolume(source, Orientation.XZ)
        self.assertEqual(rgb(xz.sample(3, 1, 2)), (30, 20, 10))
        zy = OrientedVolume(source, Orientation.ZY)
        self.assertEqual(rgb(zy.sample(1, 2, 3)), (30, 20, 10))


class TestResampledVolume(unittest.TestCase):

    def test_nearest_translation(self):
        source = coordinate_volume(4, 4, 1)
        transform = AffineTransform.scale_translate((1, 1, 1), (-2, -1, 0))
        view = ResampledVolume(source, transform)
        self.assertEqual(rgb(view.sample(0, 0, 0)), (20, 10, 0))
        self.assertEqual(rgb(view.sample(1, 2, 0)), (30, 30, 0))

    def test_nearest_rounds_half_up(self):
        source = coordinate_volume(4, 1, 1)
        view = ResampledVolume(source, AffineTransform.scale_translate((2, 1, 1), (0, 0, 0)))
        self.assertEqual(rgb(view.sample(1, 0, 0)), (10, 0, 0))
        self.assertEqual(rgb(view.sample(3, 0, 0)), (20, 0, 0))

    def test_linear_midpoint(self):
        data = np.array([[[pack_argb(0xFF, 10, 0, 100), pack_argb(0xFF, 21, 0, 200)]]], dtype=np.uint32)
        source = ArrayVolume(data)
        view = ResampledVolume(source, AffineTransform.scale_translate((2, 1, 1), (0, 0, 0)),
                               Interpolation.LINEAR)
        value = view.sample(1, 0, 0)
        np.testing.assert_array_equal(unpack_argb(value), [0xFF, 16, 0, 150])

    def test_linear_on_grid_is_exact(self):
        source = coordinate_volume(3, 3, 2)
        view = ResampledVolume(source, AffineTransform.identity(), Interpolation.LINEAR)
        ys, xs = np.mgrid[0:3, 0:3]
        np.testing.assert_array_equal(view.gather(xs, ys, 1), source.data[1])

    def test_linear_blends_two_axes(self):
        source = coordinate_volume(2, 2, 1)
        view = ResampledVolume(source, AffineTransform.scale_translate((2, 2, 1), (0, 0, 0)),
                               Interpolation.LINEAR)
        self.assertEqual(rgb(view.sample(1, 1, 0)), (5, 5, 0))

    def test_extent(self):
        source = coordinate_volume(4, 4, 1)
        extent = Bounds.from_size((2, 2, 1))
        view = ResampledVolume(source, AffineTransform.identity(), extent=extent)
        self.assertEqual(view.bounds, extent)


class MemoryStore:

    def __init__(self, tiles):
        self.tiles = tiles

    def read(self, location, fallback):
        tile = self.tiles.get(location)
        return fallback if tile is None else tile.copy()


class TestResampleRemote(unittest.TestCase):
    """Test the isotropic, cropped view of a remote stack."""

    def setUp(self):
        tiles = {}
        for z in range(2):
            ys, xs = np.mgrid[0:8, 0:8]
            tiles[f'{z}/0_0_0'] = pack_argb(0xFF, xs * 10, ys * 10, z * 10)
            tiles[f'{z}/0_0_1'] = pack_argb(0xFF, xs[:4, :4] * 20, ys[:4, :4] * 20, z * 10)
        self.store = MemoryStore(tiles)

    def remote(self, scale_level=0):
        return RemoteVolume('{z}/{row}_{col}_{level}', 8, 8, 2, scale_level=scale_level,
                            tile_width=8 >> scale_level, tile_height=8 >> scale_level,
                            store=self.store)

    def test_crop_offset(self):
        view = resample_remote(self.remote(), offset=(4, 2, 1))
        self.assertEqual(view.bounds.dimensions, (4, 6, 1))
        self.assertEqual(rgb(view.sample(0, 0, 0)), (40, 20, 10))

    def test_z_stretch(self):
        view = resample_remote(self.remote(), res_xy=1.0, res_z=2.0)
        self.assertEqual(view.bounds.dimensions, (8, 8, 4))
        self.assertEqual(rgb(view.sample(3, 3, 0)), (30, 30, 0))
        self.assertEqual(rgb(view.sample(3, 3, 2)), (30, 30, 10))

    def test_scale_level(self):
        view = resample_remote(self.remote(scale_level=1), res_xy=1.0, res_z=2.0)
        self.assertEqual(view.bounds.dimensions, (4, 4, 2))
        self.assertEqual(rgb(view.sample(1, 2, 1)), (20, 40, 10))

    def test_crop_offset_at_scale_level(self):
        view = resample_remote(self.remote(scale_level=1), offset=(4, 0, 0))
        self.assertEqual(view.bounds.dimensions, (2, 4, 1))
        self.assertEqual(rgb(view.sample(0, 0, 0)), (40, 0, 0))


if __name__ == '__main__':
    unittest.main()
