"""
Job configuration - validated parameters for export and scale runs
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .naming import DEFAULT_TEMPLATE, TilePattern
from .resample import Interpolation, Orientation
from .tile_store import FORMATS
from .volume import Bounds

PIXEL_TYPES = {'rgb': 'rgb', 'gray': 'gray', 'grey': 'gray'}


class ConfigurationError(ValueError):
    """Raised for malformed or contradictory parameters, before any tile I/O."""


def _get(options, key, default=None):
    value = options.get(key)
    return default if value is None else value


def _check_range(name, lo, hi):
    if hi < lo:
        raise ConfigurationError(
            f"The end of the {name} range must be greater than the beginning of the range")


@dataclass
class OutputConfig:
    """Where and how tiles are written."""

    tile_width: int = 256
    tile_height: int = 256
    pattern: TilePattern = field(default_factory=lambda: TilePattern.default('jpg'))
    base_path: str = ''
    format: str = 'jpg'
    quality: float = 0.85
    pixel_type: str = 'rgb'
    ignore_empty_tiles: bool = False
    background_value: int = 0

    @classmethod
    def from_options(cls, options):
        fmt = str(_get(options, 'format', 'jpg')).lower()
        if fmt not in FORMATS:
            raise ConfigurationError(f"Unsupported format {fmt!r}")

        quality = float(_get(options, 'quality', 0.85))
        if not 0.0 <= quality <= 1.0:
            raise ConfigurationError("quality must be within [0, 1]")

        pixel_type = str(_get(options, 'type', 'rgb')).lower()
        if pixel_type not in PIXEL_TYPES:
            raise ConfigurationError(f"Unknown tile type {pixel_type!r}, expected rgb or gray")

        tile_width = int(_get(options, 'tile_width', 256))
        tile_height = int(_get(options, 'tile_height', 256))
        if tile_width <= 0 or tile_height <= 0:
            raise ConfigurationError("Tile width and height must be positive")

        background_value = int(_get(options, 'bg_value', 0))
        if not 0 <= background_value <= 255:
            raise ConfigurationError("bg_value must be within [0, 255]")

        template = _get(options, 'tile_pattern')
        pattern = TilePattern(template) if template else TilePattern.default(fmt)

        return cls(
            tile_width=tile_width,
            tile_height=tile_height,
            pattern=pattern,
            base_path=_get(options, 'export_base_path', _get(options, 'base_path', '')),
            format=fmt,
            quality=quality,
            pixel_type=PIXEL_TYPES[pixel_type],
            ignore_empty_tiles=bool(_get(options, 'ignore_empty_tiles', False)),
            background_value=background_value,
        )


@dataclass
class SourceConfig:
    """The source stack, described in its xyz orientation."""

    pattern: TilePattern
    width: int
    height: int
    depth: int
    scale_level: int = 0
    tile_width: int = 256
    tile_height: int = 256
    res_xy: float = 1.0
    res_z: float = 1.0

    @property
    def scale_xy(self):
        """Divisor from level 0 pixels to pixels at the source scale level."""
        return 1 << self.scale_level

    @property
    def scale_z(self):
        """Divisor from level 0 sections to isotropic z pixels."""
        return self.scale_xy * self.res_xy / self.res_z

    @classmethod
    def from_options(cls, options):
        base_url = _get(options, 'source_base_url', '')
        template = _get(options, 'source_url_format', base_url + DEFAULT_TEMPLATE.replace('{format}', 'jpg'))

        width = int(_get(options, 'source_width', 0))
        height = int(_get(options, 'source_height', 0))
        depth = int(_get(options, 'source_depth', 0))
        if width <= 0 or height <= 0 or depth <= 0:
            raise ConfigurationError("source_width, source_height and source_depth must be positive")

        scale_level = int(_get(options, 'source_scale_level', 0))
        if scale_level < 0:
            raise ConfigurationError("source_scale_level must not be negative")

        res_xy = float(_get(options, 'source_res_xy', 1.0))
        res_z = float(_get(options, 'source_res_z', 1.0))
        if res_xy <= 0 or res_z <= 0:
            raise ConfigurationError("Source resolutions must be positive")

        return cls(
            pattern=TilePattern(template),
            width=width,
            height=height,
            depth=depth,
            scale_level=scale_level,
            tile_width=int(_get(options, 'source_tile_width', 256)),
            tile_height=int(_get(options, 'source_tile_height', 256)),
            res_xy=res_xy,
            res_z=res_z,
        )


@dataclass
class ExportJob:
    """
    A level 0 export of a cropped, re-sliced source stack.

    ``crop_min`` is the crop box origin in level 0 pixels, ``window`` the
    cropped volume in isotropic pixels at the source scale level (xyz
    orientation, origin at 0). The z, row and column ranges are inclusive and
    refer to the oriented output.
    """

    source: SourceConfig
    output: OutputConfig
    crop_min: Tuple[int, int, int]
    window: Bounds
    orientation: Orientation = Orientation.XY
    interpolation: Interpolation = Interpolation.NEAREST
    tile_cache_size: int = 0
    z_range: Tuple[int, int] = (0, 0)
    row_range: Tuple[int, int] = (0, 0)
    col_range: Tuple[int, int] = (0, 0)

    @classmethod
    def from_options(cls, **options):
        """
        Build an export job from flat options.

        Export ranges (export_min_x ... export_max_z) are inclusive, in level 0
        pixels relative to the crop box. Explicit row and column ranges
        (export_min_r ... export_max_c) take precedence over pixel ranges.
        """
        source = SourceConfig.from_options(options)
        output = OutputConfig.from_options(options)

        try:
            orientation = Orientation.parse(_get(options, 'orientation', 'xy'))
            interpolation = Interpolation.parse(_get(options, 'interpolation', 'nn'))
        except ValueError as e:
            raise ConfigurationError(str(e))

        min_x = int(_get(options, 'min_x', 0))
        min_y = int(_get(options, 'min_y', 0))
        min_z = int(_get(options, 'min_z', 0))
        width = int(_get(options, 'width', source.width - min_x))
        height = int(_get(options, 'height', source.height - min_y))
        depth = int(_get(options, 'depth', source.depth - min_z))
        if width <= 0 or height <= 0 or depth <= 0:
            raise ConfigurationError("The export box must have a positive width, height and depth")

        scale_xy = source.scale_xy
        scale_z = source.scale_z
        crop = (width // scale_xy, height // scale_xy, int(depth / scale_z))
        if min(crop) <= 0:
            raise ConfigurationError("The export box is empty at the source scale level")
        window = Bounds.from_size(crop)

        def scaled(key, divisor, default):
            value = options.get(key)
            return default if value is None else int(int(value) / divisor)

        lo = (scaled('export_min_x', scale_xy, 0),
              scaled('export_min_y', scale_xy, 0),
              scaled('export_min_z', scale_z, 0))
        hi = (scaled('export_max_x', scale_xy, window.max[0]),
              scaled('export_max_y', scale_xy, window.max[1]),
              scaled('export_max_z', scale_z, window.max[2]))
        for name, a, b in zip('XYZ', lo, hi):
            _check_range(name, a, b)

        oriented = Bounds(lo, hi).permuted(orientation.permutation)
        tile_width, tile_height = output.tile_width, output.tile_height
        row_range = (int(_get(options, 'export_min_r', oriented.min[1] // tile_height)),
                     int(_get(options, 'export_max_r', oriented.max[1] // tile_height)))
        col_range = (int(_get(options, 'export_min_c', oriented.min[0] // tile_width)),
                     int(_get(options, 'export_max_c', oriented.max[0] // tile_width)))
        _check_range('row', *row_range)
        _check_range('column', *col_range)

        return cls(
            source=source,
            output=output,
            crop_min=(min_x, min_y, min_z),
            window=window,
            orientation=orientation,
            interpolation=interpolation,
            tile_cache_size=int(_get(options, 'tile_cache_size', 0)),
            z_range=(oriented.min[2], oriented.max[2]),
            row_range=row_range,
            col_range=col_range,
        )


@dataclass
class ScaleJob:
    """
    A pyramid build over an existing level 0 tile set.

    ``width``/``height`` of None leave the scan open-ended, in which case the
    extent of each level is probed from the tiles that exist. ``max_z`` of
    None scans sections until one has no data.
    """

    output: OutputConfig
    min_x: int = 0
    width: Optional[int] = None
    min_y: int = 0
    height: Optional[int] = None
    min_z: int = 0
    max_z: Optional[int] = None

    @classmethod
    def from_options(cls, **options):
        output = OutputConfig.from_options(options)

        width = options.get('width')
        height = options.get('height')
        width = int(width) if width is not None and int(width) > 0 else None
        height = int(height) if height is not None and int(height) > 0 else None
        if output.ignore_empty_tiles:
            if width is None:
                raise ConfigurationError("Width must be defined when empty tiles are not generated")
            if height is None:
                raise ConfigurationError("Height must be defined when empty tiles are not generated")

        min_x = int(_get(options, 'min_x', 0))
        min_y = int(_get(options, 'min_y', 0))
        min_z = int(_get(options, 'min_z', 0))
        if min_x < 0 or min_y < 0 or min_z < 0:
            raise ConfigurationError("min_x, min_y and min_z must not be negative")
        max_z = options.get('max_z')
        if max_z is not None:
            max_z = int(max_z)
            _check_range('Z', min_z, max_z)

        return cls(
            output=output,
            min_x=adjust_start(min_x, output.tile_width),
            width=adjust_size(width, output.tile_width),
            min_y=adjust_start(min_y, output.tile_height),
            height=adjust_size(height, output.tile_height),
            min_z=min_z,
            max_z=max_z,
        )


def adjust_start(index, tile_size):
    """Snap a pixel index down to the start of its tile."""
    return index // tile_size * tile_size


def adjust_size(size, tile_size):
    """Grow a size to a whole number of tiles."""
    if size is not None and size > 0 and size % tile_size > 0:
        return size + tile_size - size % tile_size
    return size
