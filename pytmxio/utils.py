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
import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "convert_to_bool",
    "canonical_path",
    "get_relative_path",
    "resolve_path",
    "swap_pixel_byte_order",
]


def convert_to_bool(value) -> bool:
    """Convert a few common variations of "true" and "false" to boolean

    Args:
        value: String (or number) to test.

    Raises:
        ValueError: If `value` cannot be converted to a boolean.

    Returns:
        bool: The converted boolean.

    """
    value = str(value).strip()
    if value:
        value = value.lower()[0]
        if value in ("1", "y", "t"):
            return True
        if value in ("-", "0", "n", "f"):
            return False
    else:
        return False
    raise ValueError('cannot parse "{}" as bool'.format(value))


def canonical_path(path: str) -> str:
    """Return an absolute, symlink-free version of path.

    Falls back to plain absolute path normalization if the platform
    cannot canonicalize it.

    """
    try:
        return os.path.realpath(path)
    except (OSError, ValueError):
        logger.debug("cannot canonicalize %s, using absolute path", path)
        return os.path.abspath(path)


def _split_all(path: str) -> List[str]:
    """Split a path into the list of its parents, root first."""
    names = list()
    head = path
    while True:
        head, tail = os.path.split(head)
        if tail:
            names.insert(0, tail)
        else:
            names.insert(0, head)
            return names


def get_relative_path(from_path: str, to_path: str) -> str:
    """Return the relative path from one file to another.

    Paths stored in TMX documents are relative to the document itself,
    so a project directory can be moved as a whole.

    Args:
        from_path (str): Path of the origin file (the document).
        to_path (str): Path of the destination file.

    Returns:
        str: Relative path using "/" as separator.  `to_path` is returned
            unchanged when it is already relative, or when the two paths
            share no common root.

    """
    if not os.path.isabs(to_path):
        return to_path

    from_parents = _split_all(canonical_path(from_path))
    to_parents = _split_all(canonical_path(to_path))

    # only directories take part; the last name is always a file
    max_shared = min(len(from_parents), len(to_parents)) - 1
    shared = 0
    while shared < max_shared and from_parents[shared] == to_parents[shared]:
        shared += 1

    if shared == 0:
        return to_path

    parts = [".."] * (len(from_parents) - 1 - shared)
    parts.extend(to_parents[shared:])
    return "/".join(parts)


def resolve_path(document: Optional[str], path: str) -> str:
    """Return absolute path of a file referenced from a document.

    Args:
        document (Optional[str]): Path of the referencing document.  When
            None, the current working directory is used.
        path (str): Path as stored in the document.

    Returns:
        str: Absolute, normalized path.

    """
    if document:
        folder = os.path.dirname(os.path.abspath(document))
    else:
        folder = os.getcwd()
    return os.path.normpath(os.path.join(folder, path))


def swap_pixel_byte_order(data: bytes, pixel_size: int) -> bytes:
    """Reverse the byte order of every pixel in a packed pixel buffer.

    Args:
        data (bytes): Packed pixels.
        pixel_size (int): Number of bytes per pixel.

    Raises:
        ValueError: If the buffer is not a whole number of pixels.

    Returns:
        bytes: New buffer with every pixel's bytes reversed.

    """
    if pixel_size < 1 or len(data) % pixel_size:
        raise ValueError(
            "buffer of {0} bytes is not made of {1} byte pixels".format(
                len(data), pixel_size
            )
        )
    swapped = bytearray(len(data))
    for i in range(pixel_size):
        swapped[i::pixel_size] = data[pixel_size - 1 - i :: pixel_size]
    return bytes(swapped)
