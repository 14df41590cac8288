"""
Pyramid Builder - derive coarser scale levels from an existing tile set

Scale level s is built from level s - 1 by merging 2x2 blocks of tiles and
averaging 2x2 pixel neighbourhoods. A z-section can only be scaled once its
level 0 tiles are completely written, so scaling parallelizes over
z-sections but not within one.
"""

import logging

import numpy as np

from .pixels import background_argb, filled_tile, has_content, pack_argb, unpack_argb
from .tile_store import TileStore

logger = logging.getLogger(__name__)

LEVEL_DONE = 'done'
FIRST_BLOCK_EMPTY = 'first-block-empty'
EXHAUSTED = 'exhausted'
NO_DATA = 'no-data'


def downsample(pixels):
    """
    Halve a packed buffer with a 2x2 box filter.

    All four channels, alpha included, are averaged independently.
    """
    height, width = pixels.shape
    channels = unpack_argb(pixels).astype(np.uint32)
    sums = channels.reshape(height // 2, 2, width // 2, 2, 4).sum(axis=(1, 3))
    averaged = sums // 4
    return pack_argb(averaged[..., 0], averaged[..., 1], averaged[..., 2], averaged[..., 3])


def merge_blocks(top_left, top_right, bottom_left, bottom_right):
    return np.block([[top_left, top_right], [bottom_left, bottom_right]])


class PyramidBuilder:
    """
    Builds the scale pyramid of a level 0 tile set, one z-section at a time.

    Without explicit width and height the extent of every level is probed:
    a row ends at the first block without a top-left tile, the scan of a
    level ends at the first row without one, and neither continues past a
    tile without a right (respectively lower) neighbour. This assumes the
    data of a section is contiguous; sparse sections with gaps need
    explicit bounds.
    """

    def __init__(self, output, store=None):
        """
        Args:
            output: OutputConfig describing the tile set (pattern, base path,
                tile size, format, background)
            store: TileStore for reading and writing tiles
        """
        self.output = output
        self.store = store if store is not None else TileStore()
        self.background = background_argb(output.background_value)
        self.alternative = filled_tile(output.tile_width, output.tile_height, self.background)
        self.alternative.flags.writeable = False

    def run(self, job):
        """Build the pyramids of a ScaleJob."""
        return self.build(
            min_z=job.min_z,
            max_z=job.max_z,
            min_x=job.min_x,
            width=job.width,
            min_y=job.min_y,
            height=job.height)

    def build(self, min_z=0, max_z=None, min_x=0, width=None, min_y=0, height=None):
        """
        Build the pyramids of a range of z-sections.

        Args:
            min_z: first z-section
            max_z: last z-section, None to continue until a section without
                data is found
            min_x, min_y: origin of the scaled region in level 0 pixels
            width, height: size of the scaled region in level 0 pixels, None
                to probe the extent of every level

        Returns:
            list: one summary dict per processed z-section
        """
        sections = []
        z = min_z
        while max_z is None or z <= max_z:
            summary = self.build_section(z, min_x, width, min_y, height)
            sections.append(summary)
            if summary['empty'] and max_z is None:
                logger.info("z-index %d has no data, stopping", z)
                break
            z += 1
        return sections

    def build_section(self, z, min_x=0, width=None, min_y=0, height=None):
        """
        Build all coarser levels of one z-section.

        Levels are built until one covers at most a single tile position or
        it finds no data. A section whose first level finds no data is empty.

        Returns:
            dict: z, number of levels built, tiles written, and whether the
                section had no data at all
        """
        max_x = min_x + width if width else None
        max_y = min_y + height if height else None
        summary = {'z': z, 'levels': 0, 'written': 0, 'empty': False}

        logger.info("z-index: %d", z)
        level = 1
        while True:
            outcome, positions, written = self._scan_level(z, level, min_x, max_x, min_y, max_y)
            summary['written'] += written
            logger.info("scale: %d, %d positions, %d tiles written", level, positions, written)
            if outcome in (FIRST_BLOCK_EMPTY, NO_DATA):
                summary['empty'] = level == 1
                break
            if outcome == EXHAUSTED:
                break
            summary['levels'] = level
            if positions <= 1:
                break
            level += 1
        return summary

    def _scan_level(self, z, level, min_x, max_x, min_y, max_y):
        """
        Build one level of a section.

        Blocks without any input tile are written as background unless
        ``ignore_empty_tiles`` is set, instead of being skipped. A bounded
        scan that finds no input tile at all reports NO_DATA.
        """
        tile_width = self.output.tile_width
        tile_height = self.output.tile_height
        alt = self.alternative

        # coordinates below are pixels of the finer level
        step = 1 << (level - 1)
        x_start = min_x // step
        y_start = min_y // step
        x_end = max_x // step if max_x is not None else None
        y_end = max_y // step if max_y is not None else None

        positions = written = 0
        found = False
        y = y_start
        proceed_y = True
        while proceed_y:
            if y_end is not None and y >= y_end:
                break
            yt = y // (2 * tile_height)
            x = x_start
            proceed_x = True
            while proceed_x:
                if x_end is not None and x >= x_end:
                    break
                positions += 1
                xt = x // (2 * tile_width)

                top_left = self._read(level - 1, x, y, z, 2 * yt, 2 * xt)
                if x_end is None and top_left is alt:
                    if x == x_start:
                        if y == y_start:
                            return FIRST_BLOCK_EMPTY, positions, written
                        return LEVEL_DONE, positions, written
                    break

                top_right = self._read(level - 1, x + tile_width, y, z, 2 * yt, 2 * xt + 1)
                proceed_x = x_end is not None or top_right is not alt

                bottom_left = self._read(level - 1, x, y + tile_height, z, 2 * yt + 1, 2 * xt)
                proceed_y = y_end is not None or bottom_left is not alt

                if not proceed_x and not proceed_y and x == x_start and y == y_start:
                    return EXHAUSTED, positions, written

                bottom_right = self._read(
                    level - 1, x + tile_width, y + tile_height, z, 2 * yt + 1, 2 * xt + 1)

                blocks = (top_left, top_right, bottom_left, bottom_right)
                if all(block is alt for block in blocks):
                    pixels, not_empty = alt, False
                else:
                    found = True
                    pixels = downsample(merge_blocks(*blocks))
                    not_empty = has_content(pixels, self.background)

                if not_empty or not self.output.ignore_empty_tiles:
                    self._write(pixels, level, z, yt, xt)
                    written += 1
                x += 2 * tile_width
            y += 2 * tile_height

        if not found:
            return NO_DATA, positions, written
        return LEVEL_DONE, positions, written

    def _location(self, level, x, y, z, row, col):
        output = self.output
        return output.pattern.resolve(
            output.base_path, level, 1.0 / (1 << level), x, y, z,
            output.tile_width, output.tile_height, row, col)

    def _read(self, level, x, y, z, row, col):
        return self.store.read(self._location(level, x, y, z, row, col), self.alternative)

    def _write(self, pixels, level, z, row, col):
        output = self.output
        location = self._location(
            level, col * output.tile_width, row * output.tile_height, z, row, col)
        self.store.write(pixels, location, output.format, output.quality, output.pixel_type)
