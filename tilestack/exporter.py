"""
Tile Exporter - write scale level 0 of a tile set from a volume window
"""

import logging
import math

import numpy as np

from .pixels import background_argb, filled_tile, has_content
from .resample import Orientation, OrientedVolume, resample_remote
from .tile_store import TileStore
from .volume import RemoteVolume

logger = logging.getLogger(__name__)


class TileExporter:
    """
    Walks a volume in tile sized windows and writes every tile.

    Tiles at the border of the window are padded with the background value
    so that every written tile has the full tile size. With
    ``ignore_empty_tiles`` set, tiles whose RGB equals the background
    everywhere are not written at all.
    """

    def __init__(self, source, output, store=None):
        """
        Args:
            source: addressable volume (RemoteVolume, ResampledVolume, ...)
            output: OutputConfig
            store: TileStore used for writing
        """
        self.source = source
        self.output = output
        self.store = store if store is not None else TileStore()
        self.background = background_argb(output.background_value, alpha=0)

    @classmethod
    def from_job(cls, job, store=None):
        """Exporter reading the remote source stack of an ExportJob."""
        store = store if store is not None else TileStore()
        source = job.source
        volume = RemoteVolume(
            source.pattern,
            source.width,
            source.height,
            source.depth,
            scale_level=source.scale_level,
            tile_width=source.tile_width,
            tile_height=source.tile_height,
            cache_size=job.tile_cache_size,
            background=background_argb(job.output.background_value, alpha=0),
            store=store)
        view = resample_remote(
            volume, source.res_xy, source.res_z, job.crop_min, job.interpolation)
        return cls(view, job.output, store)

    def run(self, job):
        """Export the ranges of an ExportJob."""
        return self.export(
            job.window,
            job.orientation,
            z_range=job.z_range,
            row_range=job.row_range,
            col_range=job.col_range)

    def export(self, window, orientation=Orientation.XY, z_range=None,
               row_range=None, col_range=None):
        """
        Export a window of the source.

        Args:
            window: Bounds of the source to export, xyz orientation
            orientation: Orientation of the exported tiles
            z_range: inclusive (first, last) section, relative to the window
            row_range: inclusive (first, last) tile row
            col_range: inclusive (first, last) tile column

        Returns:
            dict: counts of written and skipped tiles
        """
        tile_width = self.output.tile_width
        tile_height = self.output.tile_height

        view = self.source
        if orientation is not Orientation.XY:
            view = OrientedVolume(self.source, orientation)
        view_window = window.permuted(orientation.permutation)

        if z_range is None:
            z_range = (0, view_window.dimension(2) - 1)
        if row_range is None:
            row_range = (0, math.ceil(view_window.dimension(1) / tile_height) - 1)
        if col_range is None:
            col_range = (0, math.ceil(view_window.dimension(0) / tile_width) - 1)

        written = skipped = 0
        for z in range(z_range[0], z_range[1] + 1):
            logger.info("Exporting section z=%d, rows %d-%d, columns %d-%d",
                        z, row_range[0], row_range[1], col_range[0], col_range[1])
            for row in range(row_range[0], row_range[1] + 1):
                for col in range(col_range[0], col_range[1] + 1):
                    tile, origin, not_empty = self.render_tile(
                        view, view_window, z, row, col,
                        column_major=orientation is Orientation.ZY)
                    if not_empty or not self.output.ignore_empty_tiles:
                        self._write(tile, origin, z, row, col)
                        written += 1
                    else:
                        logger.debug("Skipping empty tile z=%d r=%d c=%d", z, row, col)
                        skipped += 1

        return {'written': written, 'skipped': skipped}

    def render_tile(self, view, view_window, z, row, col, column_major=False):
        """
        Sample one output tile.

        Returns:
            tuple: (tile buffer, (x, y) tile origin, True if the tile has content)
        """
        tile_width = self.output.tile_width
        tile_height = self.output.tile_height

        x0 = col * tile_width + view_window.min[0]
        y0 = row * tile_height + view_window.min[1]
        z0 = z + view_window.min[2]
        width = min(view_window.max[0], x0 + tile_width - 1) - x0 + 1
        height = min(view_window.max[1], y0 + tile_height - 1) - y0 + 1

        tile = filled_tile(tile_width, tile_height, self.background)
        if width <= 0 or height <= 0 or not view_window.min[2] <= z0 <= view_window.max[2]:
            return tile, (x0, y0), False

        if column_major:
            xs, ys = np.mgrid[x0:x0 + width, y0:y0 + height]
            block = view.gather(xs, ys, z0).T
        else:
            ys, xs = np.mgrid[y0:y0 + height, x0:x0 + width]
            block = view.gather(xs, ys, z0)

        tile[:height, :width] = block
        return tile, (x0, y0), has_content(block, self.background)

    def _write(self, tile, origin, z, row, col):
        output = self.output
        location = output.pattern.resolve(
            output.base_path, 0, 1.0, origin[0], origin[1], z,
            output.tile_width, output.tile_height, row, col)
        self.store.write(tile, location, output.format, output.quality, output.pixel_type)
