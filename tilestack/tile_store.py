"""
Tile Store - read and write single image tiles on disk or over HTTP
"""

import io
import logging
import os
from pathlib import Path

import requests
from PIL import Image

from .pixels import from_image, to_image

logger = logging.getLogger(__name__)

FILE_SCHEME = 'file://'
HTTP_SCHEMES = ('http://', 'https://')

# format name -> (PIL format, lossy)
FORMATS = {
    'jpg': ('JPEG', True),
    'jpeg': ('JPEG', True),
    'png': ('PNG', False),
    'tif': ('TIFF', False),
    'tiff': ('TIFF', False),
    'gif': ('GIF', False),
    'bmp': ('BMP', False),
    'webp': ('WEBP', True),
}


def is_http(location):
    return location.startswith(HTTP_SCHEMES)


def local_path(location):
    if location.startswith(FILE_SCHEME):
        return location[len(FILE_SCHEME):]
    return location


def encode_tile(pixels, format='jpg', quality=0.85, pixel_type='rgb'):
    """
    Encode a packed tile buffer.

    Args:
        pixels: uint32 array (height, width)
        format: file format, e.g. 'jpg' or 'png'
        quality: compression quality in [0, 1], used by lossy formats only
        pixel_type: 'rgb' or 'gray'

    Returns:
        bytes: encoded image
    """
    try:
        pil_format, lossy = FORMATS[format.lower()]
    except KeyError:
        raise ValueError(f"Unsupported tile format {format!r}")

    image = to_image(pixels, pixel_type)
    options = {}
    if lossy:
        options['quality'] = max(1, min(100, int(round(quality * 100))))

    buffer = io.BytesIO()
    image.save(buffer, pil_format, **options)
    return buffer.getvalue()


def decode_tile(data, width=None, height=None):
    """Decode image bytes into a packed tile buffer of width x height."""
    with Image.open(io.BytesIO(data)) as image:
        return from_image(image, width, height)


class TileStore:
    """
    Reads and writes encoded tiles addressed by location strings.

    Locations starting with http:// or https:// are fetched with GET and
    stored with POST; everything else (optionally prefixed with file://) is
    a filesystem path.
    """

    def __init__(self, session=None, timeout=30.0):
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def read(self, location, fallback):
        """
        Read and decode a tile.

        Args:
            location: file path or URL
            fallback: tile buffer returned when the tile cannot be loaded,
                its shape is the shape of the returned tile

        Returns:
            np.ndarray: the decoded tile, or ``fallback`` itself on failure
        """
        height, width = fallback.shape
        try:
            data = self._read_bytes(location)
            if data is None:
                return fallback
            return decode_tile(data, width, height)
        except MemoryError:
            raise
        except (OSError, requests.RequestException, ValueError) as e:
            logger.warning("Failed loading %s: %s", location, e)
            return fallback

    def write(self, pixels, location, format='jpg', quality=0.85, pixel_type='rgb'):
        """
        Encode and store a tile. Failures propagate to the caller.
        """
        data = encode_tile(pixels, format, quality, pixel_type)
        if is_http(location):
            self._post(location, data)
        else:
            path = Path(local_path(location))
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(data)
        logger.debug("Wrote %s (%d bytes)", location, len(data))

    def _read_bytes(self, location):
        if is_http(location):
            response = self.session.get(location, timeout=self.timeout)
            if response.status_code != 200:
                logger.debug("No tile at %s (HTTP %d)", location, response.status_code)
                return None
            return response.content

        path = local_path(location)
        if not os.path.exists(path):
            logger.debug("No tile at %s", location)
            return None
        with open(path, 'rb') as f:
            return f.read()

    def _post(self, location, data):
        response = self.session.post(
            location,
            data=data,
            headers={'Content-Type': 'application/octet-stream'},
            timeout=self.timeout,
        )
        response.raise_for_status()
