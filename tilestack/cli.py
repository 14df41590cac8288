"""
Command-line interface for tilestack
"""

import click

from .config import ConfigurationError, ExportJob, ScaleJob
from .exporter import TileExporter
from .log import setup_logging
from .pyramid import PyramidBuilder
from .server import run_server

FORMAT_CHOICES = click.Choice(['jpg', 'jpeg', 'png', 'tif', 'tiff', 'gif', 'bmp', 'webp'],
                              case_sensitive=False)
TYPE_CHOICES = click.Choice(['rgb', 'gray', 'grey'], case_sensitive=False)


def output_options(func):
    """Options shared by every command that writes tiles."""
    options = [
        click.option('--tile-width', type=int, default=256, help='Tile width in pixels (default: 256)'),
        click.option('--tile-height', type=int, default=256, help='Tile height in pixels (default: 256)'),
        click.option('--tile-pattern', default=None,
                     help='Tile location template, default {z}/{row}_{col}_{level}.<format>'),
        click.option('--format', '-f', default='jpg', type=FORMAT_CHOICES,
                     help='Tile file format (default: jpg)'),
        click.option('--quality', '-q', default=0.85, type=click.FloatRange(0.0, 1.0),
                     help='Compression quality for lossy formats (default: 0.85)'),
        click.option('--type', 'type', default='rgb', type=TYPE_CHOICES,
                     help='Pixel type of written tiles (default: rgb)'),
        click.option('--ignore-empty-tiles/--write-empty-tiles', default=False,
                     help='Do not write tiles that only contain background'),
        click.option('--bg-value', default=0, type=click.IntRange(0, 255),
                     help='Gray background value (default: 0)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (default: INFO)')
def main(log_level):
    """tilestack - export and scale tiled image stacks"""
    setup_logging(log_level)


@main.command()
@click.option('--source-base-url', default='', help='Base URL or path of the source stack')
@click.option('--source-url-format', default=None,
              help='Source tile location template, default <base-url>{z}/{row}_{col}_{level}.jpg')
@click.option('--source-width', type=int, required=True, help='Source width in level 0 pixels')
@click.option('--source-height', type=int, required=True, help='Source height in level 0 pixels')
@click.option('--source-depth', type=int, required=True, help='Source depth in sections')
@click.option('--source-scale-level', type=int, default=0, help='Source scale level to read (default: 0)')
@click.option('--source-tile-width', type=int, default=256, help='Source tile width (default: 256)')
@click.option('--source-tile-height', type=int, default=256, help='Source tile height (default: 256)')
@click.option('--source-res-xy', type=float, default=1.0, help='Source x,y-resolution (default: 1.0)')
@click.option('--source-res-z', type=float, default=1.0, help='Source z-resolution (default: 1.0)')
@click.option('--min-x', type=int, default=0, help='Crop box origin x in level 0 pixels')
@click.option('--min-y', type=int, default=0, help='Crop box origin y in level 0 pixels')
@click.option('--min-z', type=int, default=0, help='Crop box origin z in sections')
@click.option('--width', type=int, default=None, help='Crop box width (default: rest of the source)')
@click.option('--height', type=int, default=None, help='Crop box height (default: rest of the source)')
@click.option('--depth', type=int, default=None, help='Crop box depth (default: rest of the source)')
@click.option('--orientation', default='xy',
              type=click.Choice(['xy', 'xz', 'zx', 'zy', 'yz'], case_sensitive=False),
              help='Orientation of the exported stack (default: xy)')
@click.option('--interpolation', default='nn',
              type=click.Choice(['nn', 'nl', 'nearest', 'linear'], case_sensitive=False),
              help='Interpolation, nearest neighbor or n-linear (default: nn)')
@click.option('--export-min-x', type=int, default=None, help='First x to export, level 0 pixels')
@click.option('--export-max-x', type=int, default=None, help='Last x to export, level 0 pixels')
@click.option('--export-min-y', type=int, default=None, help='First y to export, level 0 pixels')
@click.option('--export-max-y', type=int, default=None, help='Last y to export, level 0 pixels')
@click.option('--export-min-z', type=int, default=None, help='First z to export, level 0 sections')
@click.option('--export-max-z', type=int, default=None, help='Last z to export, level 0 sections')
@click.option('--export-min-r', type=int, default=None, help='First tile row (overrides --export-min-y)')
@click.option('--export-max-r', type=int, default=None, help='Last tile row (overrides --export-max-y)')
@click.option('--export-min-c', type=int, default=None, help='First tile column (overrides --export-min-x)')
@click.option('--export-max-c', type=int, default=None, help='Last tile column (overrides --export-max-x)')
@click.option('--export-base-path', default='', help='Base path or URL of the exported tile set')
@click.option('--tile-cache-size', type=int, default=0, help='Maximum cached source tiles (default: 2048)')
@output_options
def export(**options):
    """Export scale level 0 of a cropped, re-sliced tile stack."""
    try:
        job = ExportJob.from_options(**options)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    click.echo(f"Source window: {job.window}, orientation {job.orientation.name}")
    click.echo(f"Sections {job.z_range[0]}-{job.z_range[1]}, rows {job.row_range[0]}-{job.row_range[1]}, "
               f"columns {job.col_range[0]}-{job.col_range[1]}")

    exporter = TileExporter.from_job(job)
    result = exporter.run(job)

    click.echo(f"Tiles written: {result['written']}, skipped as empty: {result['skipped']}")


@main.command()
@click.option('--base-path', default='', help='Base path or URL of the level 0 tile set')
@click.option('--min-x', type=int, default=0, help='First x in level 0 pixels (default: 0)')
@click.option('--width', type=int, default=None, help='Width in level 0 pixels (default: probe)')
@click.option('--min-y', type=int, default=0, help='First y in level 0 pixels (default: 0)')
@click.option('--height', type=int, default=None, help='Height in level 0 pixels (default: probe)')
@click.option('--min-z', type=int, default=0, help='First z-section (default: 0)')
@click.option('--max-z', type=int, default=None, help='Last z-section (default: until no data)')
@output_options
def scale(**options):
    """Build the scale pyramid of an existing level 0 tile set."""
    try:
        job = ScaleJob.from_options(**options)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    builder = PyramidBuilder(job.output)
    sections = builder.run(job)

    written = sum(section['written'] for section in sections)
    click.echo(f"Sections processed: {len(sections)}, tiles written: {written}")


@main.command()
@click.argument('root_dir', type=click.Path())
@click.option('--host', default='0.0.0.0', help='Host to bind to (default: 0.0.0.0)')
@click.option('--port', default=5000, type=int, help='Port to bind to (default: 5000)')
@click.option('--debug/--no-debug', default=False, help='Enable debug mode')
def serve(root_dir, host, port, debug):
    """Serve and accept tiles below ROOT_DIR over HTTP."""
    click.echo(f"Starting tile server on {host}:{port}...")
    click.echo(f"Tile directory: {root_dir}")

    run_server(root_dir, host=host, port=port, debug=debug)


if __name__ == '__main__':
    main()
