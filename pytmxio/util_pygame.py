"""
Copyright (C) 2012-2023, Leif Theden <leif.theden@gmail.com>

This file is part of pytmxio.

pytmxio is free software: you can redistribute it and/or modify
it under the terms of the GNU Lesser General Public License as
published by the Free Software Foundation, either version 3 of the
License, or (at your option) any later version.

pytmxio is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Lesser General Public License for more details.

You should have received a copy of the GNU Lesser General Public
License along with pytmxio.  If not, see <https://www.gnu.org/licenses/>.
"""
import io
import logging
from typing import Tuple

import pytmxio
from pytmxio.tmx import PixelFormat, TMXReader
from pytmxio.utils import swap_pixel_byte_order

logger = logging.getLogger(__name__)

try:
    import pygame
except ImportError:
    logger.error("cannot import pygame (is it installed?)")
    raise

__all__ = [
    "image_size",
    "image_to_png",
    "image_to_raw",
    "load_pygame",
    "png_to_image",
    "pygame_image_loader",
    "raw_to_image",
]


def image_size(image: pygame.Surface) -> Tuple[int, int]:
    return image.get_size()


def image_to_png(image: pygame.Surface) -> bytes:
    """Encode a surface as PNG file data."""
    buffer = io.BytesIO()
    pygame.image.save(image, buffer, "png")
    return buffer.getvalue()


def png_to_image(data: bytes) -> pygame.Surface:
    """Decode PNG (or any format pygame knows) file data to a surface.

    The surface is not converted, so no display is needed.

    """
    return pygame.image.load(io.BytesIO(data), "png")


def image_to_raw(
    image: pygame.Surface, pixel_format: PixelFormat, big_endian: bool = True
) -> bytes:
    """Return the packed pixels of a surface, row by row.

    Parameters:
        image: surface to encode
        pixel_format: channel layout of each pixel
        big_endian: if false, the bytes of each pixel are reversed

    Returns:
        width * height * pixel size bytes

    """
    data = pygame.image.tobytes(image, pixel_format.channels)
    if not big_endian:
        data = swap_pixel_byte_order(data, pixel_format.pixel_size)
    return data


def raw_to_image(
    data: bytes,
    width: int,
    height: int,
    pixel_format: PixelFormat,
    big_endian: bool = True,
) -> pygame.Surface:
    """Build a surface from packed pixels.

    Raises:
        ValueError: if the data does not hold width * height pixels

    """
    expected = width * height * pixel_format.pixel_size
    if len(data) != expected:
        raise ValueError(
            "raw image data is {0} bytes, expected {1}".format(len(data), expected)
        )
    if not big_endian:
        data = swap_pixel_byte_order(data, pixel_format.pixel_size)
    return pygame.image.frombytes(data, (width, height), pixel_format.channels)


def pygame_image_loader(filename: str, colorkey=None, **kwargs):
    """
    pytmxio image loader for pygame

    Surfaces are left in their file format; convert() them after the
    display is set if faster blitting is needed.

    Parameters:
        filename: filename, including path, to load
        colorkey: colorkey for the image, as hex string

    Returns:
        function to load tile images

    """
    image = pygame.image.load(filename)
    if colorkey:
        image.set_colorkey(pygame.Color("#{0}".format(colorkey)))

    def load_image(rect=None, flags=None):
        if rect:
            try:
                tile = image.subsurface(rect)
            except ValueError:
                logger.error("Tile bounds outside bounds of tileset image")
                raise
        else:
            tile = image.copy()
        return tile

    return load_image


def load_pygame(filename: str, **kwargs) -> pytmxio.Map:
    """Load a TMX file, images, and return a Map

    PYGAME USERS: Use me.

    Images of tiles and tilesets are loaded as pygame surfaces.  Embedded
    images are decoded as well, so the map can be saved again with its
    images.

    Parameters:
        filename: filename to load

    Returns:
        new pytmxio.Map object

    """
    kwargs["image_loader"] = pygame_image_loader
    return TMXReader(**kwargs).read_map(filename)
