"""
Tests for the level 0 tile exporter
"""

import shutil
import tempfile
import unittest
from pathlib import Path

import numpy as np

from tilestack.config import ExportJob, OutputConfig
from tilestack.exporter import TileExporter
from tilestack.naming import TilePattern
from tilestack.pixels import RGB_MASK, background_argb, filled_tile, pack_argb
from tilestack.resample import Orientation
from tilestack.tile_store import TileStore
from tilestack.volume import Bounds


class MemoryStore:
    """Tile store over a dict."""

    def __init__(self, tiles=None):
        self.tiles = tiles if tiles is not None else {}
        self.written = {}

    def read(self, location, fallback):
        tile = self.tiles.get(location)
        return fallback if tile is None else tile.copy()

    def write(self, pixels, location, format='jpg', quality=0.85, pixel_type='rgb'):
        self.written[location] = pixels.copy()


def uniform_tiles(values, tile_width, tile_height, pattern='src/{z}/{row}_{col}_{level}.png'):
    """Source tiles filled with one gray value each, keyed by (z, row, col)."""
    return {
        pattern.format(z=z, row=row, col=col, level=0):
            filled_tile(tile_width, tile_height, background_argb(value))
        for (z, row, col), value in values.items()
    }


def coordinate_tiles(width, height, depth, tile_width, tile_height):
    tiles = {}
    for z in range(depth):
        for row in range(-(-height // tile_height)):
            for col in range(-(-width // tile_width)):
                ys, xs = np.mgrid[row * tile_height:(row + 1) * tile_height,
                                  col * tile_width:(col + 1) * tile_width]
                tiles[f'src/{z}/{row}_{col}_0.png'] = pack_argb(0xFF, xs, ys, z)
    return tiles


def export_job(**options):
    defaults = dict(source_url_format='src/{z}/{row}_{col}_{level}.png', format='png',
                    export_base_path='out')
    defaults.update(options)
    return ExportJob.from_options(**defaults)


class TestExportGrid(unittest.TestCase):
    """Test exporting whole sections."""

    def test_two_by_two_grid(self):
        values = {(z, r, c): 10 + 40 * z + 20 * r + 10 * c
                  for z in range(2) for r in range(2) for c in range(2)}
        store = MemoryStore(uniform_tiles(values, 256, 256))
        job = export_job(source_width=512, source_height=512, source_depth=2)

        result = TileExporter.from_job(job, store).run(job)

        self.assertEqual(result, {'written': 8, 'skipped': 0})
        self.assertEqual(len(store.written), 8)
        for (z, r, c), value in values.items():
            tile = store.written[f'out/{z}/{r}_{c}_0.png']
            self.assertEqual(tile.shape, (256, 256))
            self.assertTrue(np.all(tile & RGB_MASK == background_argb(value) & RGB_MASK))

    def test_partial_tiles_are_padded(self):
        store = MemoryStore(uniform_tiles({(0, 0, 0): 50, (0, 0, 1): 60}, 256, 256))
        job = export_job(source_width=300, source_height=200, source_depth=1, bg_value=5)

        result = TileExporter.from_job(job, store).run(job)

        self.assertEqual(result['written'], 2)
        tile = store.written['out/0/0_1_0.png'] & RGB_MASK
        self.assertEqual(tile.shape, (256, 256))
        self.assertTrue(np.all(tile[:200, :44] == background_argb(60) & RGB_MASK))
        self.assertTrue(np.all(tile[200:, :] == background_argb(5) & RGB_MASK))
        self.assertTrue(np.all(tile[:, 44:] == background_argb(5) & RGB_MASK))

    def test_empty_tiles_are_skipped(self):
        store = MemoryStore(uniform_tiles({(0, 0, 0): 90}, 256, 256))
        job = export_job(source_width=512, source_height=512, source_depth=1,
                         ignore_empty_tiles=True)

        result = TileExporter.from_job(job, store).run(job)

        self.assertEqual(result, {'written': 1, 'skipped': 3})
        self.assertEqual(list(store.written), ['out/0/0_0_0.png'])

    def test_empty_tiles_are_written_by_default(self):
        store = MemoryStore(uniform_tiles({(0, 0, 0): 90}, 256, 256))
        job = export_job(source_width=512, source_height=512, source_depth=1)

        result = TileExporter.from_job(job, store).run(job)

        self.assertEqual(result, {'written': 4, 'skipped': 0})
        self.assertIn('out/0/1_1_0.png', store.written)

    def test_row_and_column_ranges(self):
        store = MemoryStore(uniform_tiles({(0, 1, 1): 70}, 256, 256))
        job = export_job(source_width=512, source_height=512, source_depth=1,
                         export_min_r=1, export_max_r=1, export_min_c=1, export_max_c=1)

        result = TileExporter.from_job(job, store).run(job)

        self.assertEqual(result['written'], 1)
        self.assertIn('out/0/1_1_0.png', store.written)

    def test_crop_box(self):
        store = MemoryStore(coordinate_tiles(8, 8, 1, 4, 4))
        job = export_job(source_width=8, source_height=8, source_depth=1,
                         source_tile_width=4, source_tile_height=4,
                         tile_width=4, tile_height=4, min_x=3, min_y=2, width=4, height=4)

        TileExporter.from_job(job, store).run(job)

        self.assertEqual(list(store.written), ['out/0/0_0_0.png'])
        tile = store.written['out/0/0_0_0.png']
        ys, xs = np.mgrid[2:6, 3:7]
        np.testing.assert_array_equal(tile, pack_argb(0xFF, xs, ys, 0))


class TestRenderTile(unittest.TestCase):
    """Test sampling of single output tiles."""

    def setUp(self):
        self.store = MemoryStore(coordinate_tiles(4, 2, 3, 2, 2))
        output = OutputConfig(tile_width=4, tile_height=4, pattern=TilePattern('{z}/{row}_{col}.png'),
                              format='png')
        job = export_job(source_width=4, source_height=2, source_depth=3,
                         source_tile_width=2, source_tile_height=2, tile_width=4, tile_height=4)
        self.exporter = TileExporter(TileExporter.from_job(job, self.store).source, output, self.store)
        self.window = job.window

    def test_outside_window_is_empty(self):
        tile, origin, not_empty = self.exporter.render_tile(
            self.exporter.source, self.window, 0, 5, 5)
        self.assertFalse(not_empty)
        self.assertEqual(origin, (20, 20))
        self.assertTrue(np.all(tile == self.exporter.background))

    def test_zy_orientation(self):
        result = self.exporter.export(self.window, Orientation.ZY)

        self.assertEqual(result['written'], 4)
        for x in range(4):
            tile = self.store.written[f'{x}/0_0.png']
            ys, zs = np.mgrid[0:2, 0:3]
            np.testing.assert_array_equal(tile[:2, :3], pack_argb(0xFF, x, ys, zs))
            self.assertTrue(np.all(tile[2:, :] == self.exporter.background))
            self.assertTrue(np.all(tile[:, 3:] == self.exporter.background))

    def test_xz_orientation(self):
        result = self.exporter.export(self.window, Orientation.XZ)

        self.assertEqual(result['written'], 2)
        for y in range(2):
            tile = self.store.written[f'{y}/0_0.png']
            zs, xs = np.mgrid[0:3, 0:4]
            np.testing.assert_array_equal(tile[:3, :4], pack_argb(0xFF, xs, y, zs))


class TestExportToDisk(unittest.TestCase):
    """Test a full export through the file store."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if Path(self.temp_dir).exists():
            shutil.rmtree(self.temp_dir)

    def test_png_export_is_exact(self):
        store = TileStore()
        source = coordinate_tiles(8, 8, 1, 4, 4)
        for location, tile in source.items():
            store.write(tile, f'{self.temp_dir}/{location}', 'png')

        job = export_job(source_url_format=self.temp_dir + '/src/{z}/{row}_{col}_{level}.png',
                         export_base_path=self.temp_dir + '/out',
                         source_width=8, source_height=8, source_depth=1,
                         source_tile_width=4, source_tile_height=4, tile_width=8, tile_height=8)
        TileExporter.from_job(job, store).run(job)

        pixels = store.read(f'{self.temp_dir}/out/0/0_0_0.png', filled_tile(8, 8, 0))
        ys, xs = np.mgrid[0:8, 0:8]
        np.testing.assert_array_equal(pixels, pack_argb(0xFF, xs, ys, 0))

    def test_jpeg_export(self):
        store = TileStore()
        store.write(filled_tile(8, 8, background_argb(128)), f'{self.temp_dir}/src/0/0_0_0.png', 'png')

        job = export_job(source_url_format=self.temp_dir + '/src/{z}/{row}_{col}_{level}.png',
                         export_base_path=self.temp_dir + '/out', format='jpg', quality=0.95,
                         source_width=8, source_height=8, source_depth=1,
                         source_tile_width=8, source_tile_height=8, tile_width=8, tile_height=8)
        TileExporter.from_job(job, store).run(job)

        self.assertTrue(Path(self.temp_dir, 'out', '0', '0_0_0.jpg').is_file())
        pixels = store.read(f'{self.temp_dir}/out/0/0_0_0.jpg', filled_tile(8, 8, 0))
        gray = (pixels >> 8) & 0xFF
        self.assertLessEqual(np.abs(gray.astype(int) - 128).max(), 3)


class TestExportWindow(unittest.TestCase):

    def test_default_ranges_cover_window(self):
        store = MemoryStore()
        output = OutputConfig(tile_width=4, tile_height=4, format='png',
                              pattern=TilePattern('{z}/{row}_{col}.png'))
        job = export_job(source_width=10, source_height=5, source_depth=2,
                         source_tile_width=4, source_tile_height=4)
        exporter = TileExporter(TileExporter.from_job(job, store).source, output, store)

        result = exporter.export(Bounds.from_size((10, 5, 2)))

        self.assertEqual(result['written'], 2 * 2 * 3)


if __name__ == '__main__':
    unittest.main()
