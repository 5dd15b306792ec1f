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

from .core import *
from .tmx import *
from .utils import convert_to_bool, get_relative_path, resolve_path

logger = logging.getLogger(__name__)

try:
    from pytmxio.util_pygame import load_pygame
except ImportError:
    logger.debug("cannot import pygame tools")

__version__ = (1, 0)
__author__ = "bitcraft"
__author_email__ = "leif.theden@gmail.com"
__description__ = "Read and write TMX tile maps - Python 3.9 +"
