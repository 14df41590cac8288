"""
Packed ARGB pixel buffers and their conversion to and from PIL images
"""

import numpy as np
from PIL import Image

RGB_MASK = 0x00FFFFFF
OPAQUE = 0xFF000000


def pack_argb(a, r, g, b):
    """Pack channel values (scalars or arrays) into 0xAARRGGBB uint32 values."""
    a = np.asarray(a, dtype=np.uint32)
    r = np.asarray(r, dtype=np.uint32)
    g = np.asarray(g, dtype=np.uint32)
    b = np.asarray(b, dtype=np.uint32)
    return (a << 24) | (r << 16) | (g << 8) | b


def unpack_argb(pixels):
    """
    Split packed pixels into channels.

    Args:
        pixels: uint32 array of any shape

    Returns:
        np.ndarray: uint8 array of shape pixels.shape + (4,), channels in A, R, G, B order
    """
    pixels = np.asarray(pixels, dtype=np.uint32)
    channels = np.empty(pixels.shape + (4,), dtype=np.uint8)
    channels[..., 0] = (pixels >> 24) & 0xFF
    channels[..., 1] = (pixels >> 16) & 0xFF
    channels[..., 2] = (pixels >> 8) & 0xFF
    channels[..., 3] = pixels & 0xFF
    return channels


def background_argb(value, alpha=0xFF):
    """Packed gray background built from an 8-bit value."""
    value = int(value) & 0xFF
    return int(pack_argb(alpha, value, value, value))


def filled_tile(width, height, value):
    """Allocate a tile buffer filled with a packed value."""
    return np.full((height, width), value, dtype=np.uint32)


def has_content(pixels, background):
    """True if any pixel's RGB differs from the background's RGB."""
    return bool(np.any((pixels & RGB_MASK) != (background & RGB_MASK)))


def from_image(image, width=None, height=None):
    """
    Convert a PIL image into a packed tile buffer.

    The image is converted to RGB and drawn into an opaque black canvas of
    width x height, so odd-sized tiles are cropped or padded.
    """
    rgb = np.asarray(image.convert('RGB'), dtype=np.uint32)
    h, w = rgb.shape[:2]
    if width is None:
        width = w
    if height is None:
        height = h

    pixels = filled_tile(width, height, OPAQUE)
    ch = min(h, height)
    cw = min(w, width)
    pixels[:ch, :cw] = pack_argb(
        0xFF, rgb[:ch, :cw, 0], rgb[:ch, :cw, 1], rgb[:ch, :cw, 2])
    return pixels


def to_image(pixels, pixel_type='rgb'):
    """
    Convert a packed tile buffer into a PIL image.

    Args:
        pixels: uint32 array (height, width)
        pixel_type: 'rgb' for full color, 'gray' for a single luminance channel

    Returns:
        PIL Image
    """
    channels = unpack_argb(pixels)
    image = Image.fromarray(np.ascontiguousarray(channels[..., 1:]))
    if pixel_type in ('gray', 'grey'):
        return image.convert('L')
    return image
