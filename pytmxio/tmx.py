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
from __future__ import annotations

import errno
import gzip
import logging
import os
import struct
import zlib
from base64 import b64decode, b64encode
from bisect import bisect_right
from collections import defaultdict, namedtuple
from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
from xml.etree import ElementTree

from .core import (
    Animation,
    LayerType,
    Map,
    MapLayer,
    MapObject,
    ObjectGroup,
    Orientation,
    Properties,
    SelectionLayer,
    Tile,
    TileLayer,
    TileSet,
)
from .utils import convert_to_bool, get_relative_path, resolve_path

__all__ = (
    "FILTER",
    "GidTable",
    "ImageFormat",
    "ImageStrategy",
    "PixelFormat",
    "TMXFormatError",
    "TMXReader",
    "TMXWriter",
    "WriterOptions",
    "accept",
    "assign_firstgids",
    "decode_gids",
    "default_image_loader",
    "encode_gids",
    "load_tmx",
    "parse_properties",
    "reshape_data",
    "save_tmx",
)

logger = logging.getLogger(__name__)

TMX_VERSION = "1.0"
DOCTYPE = '<!DOCTYPE map SYSTEM "http://mapeditor.org/dtd/1.0/map.dtd">'
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
FILTER = "*.tmx,*.tsx,*.tmx.gz"
EXTENSIONS = (".tmx", ".tsx", ".tmx.gz")

_LAYER_CLASSES = {
    LayerType.TILE: TileLayer,
    LayerType.OBJECTS: ObjectGroup,
    LayerType.SELECTION: SelectionLayer,
}

# original preference names, as found in saved editor settings
_PREFERENCE_NAMES = {
    "encodeLayerData": "encode_layer_data",
    "layerCompression": "layer_compression",
    "embedImages": "embed_images",
    "tileSetImages": "tileset_images",
    "imageFormat": "image_format",
    "pixelFormat": "pixel_format",
    "imageIsBigEndian": "image_is_big_endian",
    "usefulComments": "useful_comments",
    "tileImagePrefix": "tile_image_prefix",
    "maplocation": "map_location",
}


class TMXFormatError(Exception):
    """Raised when a document cannot be understood.

    Attributes:
        element: the offending ElementTree element, if known.
        location: slash separated path to the element, ie. "map/layer[1]/data".

    """

    def __init__(self, message: str, element=None, location: Optional[str] = None):
        if location:
            message = "{0} (at {1})".format(message, location)
        Exception.__init__(self, message)
        self.element = element
        self.location = location


class ImageFormat(Enum):
    PNG = "png"
    RAW = "raw"

    @classmethod
    def from_name(cls, name: str) -> ImageFormat:
        """Return format by name; unknown names fall back to PNG."""
        try:
            return cls[str(name).upper()]
        except KeyError:
            logger.warning('unknown image format "%s", using PNG', name)
            return cls.PNG


class PixelFormat(Enum):
    """Raw pixel layouts.

    The value holds the channel order of the packed pixel word, most
    significant channel first, and the pixel size in bytes.  Big endian
    data lists the channels in that order; little endian data has the
    bytes of every pixel reversed.

    """

    A8R8G8B8 = ("ARGB", 4)
    R8G8B8A8 = ("RGBA", 4)
    R8G8B8 = ("RGB", 3)

    @property
    def channels(self) -> str:
        return self.value[0]

    @property
    def pixel_size(self) -> int:
        return self.value[1]

    @classmethod
    def from_name(cls, name: str) -> PixelFormat:
        """Return format by name; unknown names fall back to A8R8G8B8."""
        try:
            return cls[str(name).upper()]
        except KeyError:
            logger.warning('unknown pixel format "%s", using A8R8G8B8', name)
            return cls.A8R8G8B8


ImageStrategy = namedtuple(
    "ImageStrategy",
    ["embed", "tileset_images", "image_format", "pixel_format", "big_endian"],
)


@dataclass
class WriterOptions:
    """Options for writing TMX documents."""

    encode_layer_data: bool = True
    layer_compression: bool = True
    embed_images: bool = True
    tileset_images: bool = False
    image_format: str = "PNG"
    pixel_format: str = "A8R8G8B8"
    image_is_big_endian: bool = True
    useful_comments: bool = False
    tile_image_prefix: str = "tile"
    map_location: str = ""

    @classmethod
    def from_preferences(cls, preferences: Mapping[str, Any]) -> WriterOptions:
        """Build options from a mapping of preference names to values.

        Both the original preference names ("encodeLayerData", ...) and
        the attribute names are accepted.  Boolean options may be given
        as strings, ie. "true" or "0".

        """
        defaults = cls()
        kwargs = dict()
        for key, value in preferences.items():
            name = _PREFERENCE_NAMES.get(key, key)
            if not hasattr(defaults, name):
                logger.warning('ignoring unknown writer preference "%s"', key)
                continue
            if isinstance(getattr(defaults, name), bool):
                value = convert_to_bool(value)
            else:
                value = str(value)
            kwargs[name] = value
        return cls(**kwargs)

    def image_strategy(self) -> ImageStrategy:
        return ImageStrategy(
            self.embed_images,
            self.tileset_images,
            ImageFormat.from_name(self.image_format),
            PixelFormat.from_name(self.pixel_format),
            self.image_is_big_endian,
        )


def accept(filename: str) -> bool:
    """Return True if the file name has a TMX extension."""
    return str(filename).lower().endswith(EXTENSIONS)


def default_image_loader(filename: str, colorkey=None, **kwargs):
    """This default image loader just returns filename, rect, and any flags.
    Suitable for loading a map without the images.

    Args:
        filename (str): The file's name.
        colorkey (Optional[str]): Transparent color of the image.
        **kwargs: Additional kwargs.

    Returns:
        Callable: function returning a tuple of the file name, rect, and flags.

    """

    def load(rect=None, flags=None):
        return filename, rect, flags

    return load


def reshape_data(gids: List[int], width: int) -> List[List[int]]:
    """Change 1D list to 2d list

    Args:
        gids (List[int]): List of gid ints.
        width (int): Width of each row.

    Returns:
        List[List[int]]: 2D nested list object.

    """
    return [gids[i : i + width] for i in range(0, len(gids), width)]


def encode_gids(gids: Sequence[int], compression: Optional[str] = None) -> str:
    """Encode gids as base64 text of 4 byte little endian integers.

    Args:
        gids (Sequence[int]): Gids in row-major order.
        compression (Optional[str]): "gzip", "zlib" or None.

    Returns:
        str: Base64 text.

    """
    data = struct.pack("<%dL" % len(gids), *gids)
    if compression == "gzip":
        data = gzip.compress(data, mtime=0)
    elif compression == "zlib":
        data = zlib.compress(data)
    elif compression:
        raise ValueError(f"layer compression {compression} is not supported.")
    return b64encode(data).decode("ascii")


def decode_gids(
    text: str,
    encoding: Optional[str] = None,
    compression: Optional[str] = None,
) -> List[int]:
    """Return all gids from encoded/compressed layer data

    Args:
        text (str): Layer data in text format.
        encoding (Optional[str]): Encoding used.
        compression (Optional[str]): Compression used.

    Returns:
        List[int]: List of all the GIDs in the layer.

    Raises:
        ValueError: if the encoding or compression is not supported, or
            the data is damaged.

    """
    if encoding == "base64":
        data = b64decode(text)
        if compression == "gzip":
            data = gzip.decompress(data)
        elif compression == "zlib":
            data = zlib.decompress(data)
        elif compression:
            raise ValueError(f"layer compression {compression} is not supported.")
        if len(data) % 4:
            raise ValueError("layer data is not made of 4 byte gids")
        fmt = "<%dL" % (len(data) // 4)
        return list(struct.unpack(fmt, data))
    elif encoding == "csv":
        return [int(i) for i in text.split(",") if i.strip()]
    raise ValueError(f"layer encoding {encoding} is not supported.")


def assign_firstgids(tilesets: Iterable[TileSet]) -> List[Tuple[int, TileSet]]:
    """Give each tileset its firstgid, in order, starting at 1.

    Each tileset claims max_tile_id + 1 gids.  The same sequence of
    tilesets always yields the same ranges.

    Returns:
        List[Tuple[int, TileSet]]: (firstgid, tileset) pairs.

    """
    ranges = list()
    firstgid = 1
    for tileset in tilesets:
        tileset.firstgid = firstgid
        ranges.append((firstgid, tileset))
        firstgid += tileset.get_max_tile_id() + 1
    logger.debug("assigned firstgids: %s", [(gid, ts.name) for gid, ts in ranges])
    return ranges


class GidTable:
    """Resolve gids to tiles with a table of tilesets sorted by firstgid."""

    def __init__(self, tilesets: Iterable[TileSet]) -> None:
        self._tilesets = sorted(tilesets, key=attrgetter("firstgid"))
        self._firstgids = [tileset.firstgid for tileset in self._tilesets]

    def lookup(self, gid: int) -> Tuple[Optional[TileSet], int]:
        """Return (tileset, local id) for a gid, (None, 0) for gid 0."""
        if gid == 0:
            return None, 0
        i = bisect_right(self._firstgids, gid) - 1
        if i < 0:
            raise ValueError("GID {0} does not belong to any tileset".format(gid))
        tileset = self._tilesets[i]
        return tileset, gid - tileset.firstgid

    def resolve(self, gid: int) -> Optional[Tile]:
        """Return the tile for a gid, None for gid 0.

        Raises:
            ValueError: if no tile has this gid.

        """
        tileset, local_id = self.lookup(gid)
        if tileset is None:
            return None
        tile = tileset.get_tile(local_id)
        if tile is None:
            raise ValueError(
                "GID {0} does not match a tile in tileset {1}".format(gid, tileset.name)
            )
        return tile


def parse_properties(node: ElementTree.Element) -> Properties:
    """Parse a TMX xml node and return its properties.

    Values are taken from the "value" attribute, or from the element text
    for values spanning several lines.

    Args:
        node (ElementTree.Element): Etree element to inspect.

    Returns:
        Properties: the properties, empty if the node has none.

    """
    d = Properties()
    for child in node.findall("properties"):
        for subnode in child.findall("property"):
            name = subnode.get("name")
            if name is None:
                continue
            if "value" in subnode.keys():
                d[name] = subnode.get("value")
            else:
                d[name] = subnode.text or ""
    return d


def _iter_children(
    node: ElementTree.Element, location: str
) -> Iterator[Tuple[ElementTree.Element, str]]:
    """Yields child, location pairs; locations look like "map/layer[2]"."""
    counts = defaultdict(int)
    for child in node:
        index = counts[child.tag]
        counts[child.tag] += 1
        yield child, "{0}/{1}[{2}]".format(location, child.tag, index)


def _int_or_float(value: str):
    try:
        return int(value)
    except ValueError:
        return float(value)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


_WriteContext = namedtuple("_WriteContext", ["document", "strategy", "tileset_ids"])
_ReadContext = namedtuple("_ReadContext", ["document", "pending"])


class TMXWriter:
    """Writes maps and tilesets in the TMX format.

    Tilesets are given their firstgid before the layers are written, so
    the gids written into layer data are always consistent.

    """

    def __init__(self, options: Optional[WriterOptions] = None, **kwargs) -> None:
        self.options = options if options is not None else WriterOptions(**kwargs)
        self._layer_writers = {
            LayerType.TILE: self._write_tile_layer,
            LayerType.SELECTION: self._write_tile_layer,
            LayerType.OBJECTS: self._write_object_group,
        }

    accept = staticmethod(accept)

    def write_map(self, tiled_map: Map, filename: str) -> None:
        """Save a map to a file.  Names ending in .tmx.gz are gzipped."""
        filename = os.path.abspath(filename)
        data = self.dump_map(tiled_map, filename)
        if filename.lower().endswith(".tmx.gz"):
            with gzip.GzipFile(filename, "wb", mtime=0) as stream:
                stream.write(data)
        else:
            with open(filename, "wb") as stream:
                stream.write(data)
        logger.debug("wrote %s", filename)

    def write_map_to_stream(self, tiled_map: Map, stream, filename: Optional[str] = None) -> None:
        """Write a map to a binary stream.

        Args:
            tiled_map (Map): Map to write.
            stream: Binary file-like object.
            filename (Optional[str]): Path the document will have; file
                references are written relative to it.  Without it they
                are relative to the current working directory.

        """
        stream.write(self.dump_map(tiled_map, filename))

    def dump_map(self, tiled_map: Map, filename: Optional[str] = None) -> bytes:
        """Return the map as UTF-8 encoded TMX document."""
        context = self._new_context(filename, tiled_map.tilesets)
        root = self._map_to_element(tiled_map, context)
        return self._serialize(root, doctype=True)

    def write_tileset(self, tileset: TileSet, filename: str) -> None:
        """Save a tileset to a .tsx file."""
        filename = os.path.abspath(filename)
        with open(filename, "wb") as stream:
            self.write_tileset_to_stream(tileset, stream, filename)

    def write_tileset_to_stream(self, tileset: TileSet, stream, filename: Optional[str] = None) -> None:
        stream.write(self.dump_tileset(tileset, filename))

    def dump_tileset(self, tileset: TileSet, filename: Optional[str] = None) -> bytes:
        context = self._new_context(filename, [tileset])
        root = self._tileset_to_element(tileset, context, tileset.firstgid)
        return self._serialize(root, doctype=False)

    def _new_context(self, filename: Optional[str], tilesets: Iterable[TileSet]) -> _WriteContext:
        if filename is None:
            document = os.path.join(os.getcwd(), "untitled.tmx")
        else:
            document = os.path.abspath(filename)
        return _WriteContext(
            document,
            self.options.image_strategy(),
            {id(tileset) for tileset in tilesets},
        )

    @staticmethod
    def _serialize(root: ElementTree.Element, doctype: bool) -> bytes:
        ElementTree.indent(root)
        lines = [XML_DECLARATION]
        if doctype:
            lines.append(DOCTYPE)
        lines.append(ElementTree.tostring(root, encoding="unicode"))
        return ("\n".join(lines) + "\n").encode("utf-8")

    @staticmethod
    def _append_properties(parent: ElementTree.Element, properties: Mapping[str, str]) -> None:
        if not properties:
            return
        node = ElementTree.SubElement(parent, "properties")
        for key, value in Properties(properties).sorted_items():
            prop = ElementTree.SubElement(node, "property", name=key)
            if "\n" in value or "\r" in value:
                # attributes cannot carry line breaks
                prop.text = value
            else:
                prop.set("value", value)

    @staticmethod
    def _gid_of(tile: Optional[Tile], context: _WriteContext) -> int:
        if tile is None:
            return 0
        if tile.tileset is None or id(tile.tileset) not in context.tileset_ids:
            raise ValueError("{0} does not belong to a tileset of the map".format(tile))
        return tile.gid

    def _map_to_element(self, tiled_map: Map, context: _WriteContext) -> ElementTree.Element:
        node = ElementTree.Element(
            "map",
            version=TMX_VERSION,
            orientation=tiled_map.orientation.value,
            width=str(tiled_map.width),
            height=str(tiled_map.height),
            tilewidth=str(tiled_map.tile_width),
            tileheight=str(tiled_map.tile_height),
            eyeDistance=str(tiled_map.eye_distance),
            viewportWidth=str(tiled_map.viewport_width),
            viewportHeight=str(tiled_map.viewport_height),
        )
        self._append_properties(node, tiled_map.properties)

        for firstgid, tileset in assign_firstgids(tiled_map.tilesets):
            node.append(self._tileset_reference_to_element(tileset, context))

        options = self.options
        if options.encode_layer_data and options.useful_comments:
            kind = "compressed (GZip) " if options.layer_compression else ""
            node.append(
                ElementTree.Comment(
                    " Layer data is {0}binary data, encoded in Base64 ".format(kind)
                )
            )

        for layer in tiled_map.layers:
            node.append(self._layer_to_element(layer, context))
        return node

    def _tileset_reference_to_element(
        self, tileset: TileSet, context: _WriteContext
    ) -> ElementTree.Element:
        """Return a reference to an external tileset, or the tileset itself."""
        if tileset.source is None:
            return self._tileset_to_element(tileset, context, tileset.firstgid)
        node = ElementTree.Element(
            "tileset",
            firstgid=str(tileset.firstgid),
            source=get_relative_path(context.document, tileset.source),
        )
        if tileset.base_dir is not None:
            node.set("basedir", tileset.base_dir)
        return node

    def _tileset_to_element(
        self, tileset: TileSet, context: _WriteContext, firstgid: Optional[int] = None
    ) -> ElementTree.Element:
        node = ElementTree.Element("tileset")
        if firstgid is not None:
            node.set("firstgid", str(firstgid))
        if tileset.name is not None:
            node.set("name", tileset.name)

        tilebmp = tileset.tilebmp_file
        if tilebmp is not None:
            node.set("tilewidth", str(tileset.tile_width))
            node.set("tileheight", str(tileset.tile_height))
            if tileset.spacing:
                node.set("spacing", str(tileset.spacing))
            if tileset.margin:
                node.set("margin", str(tileset.margin))

        if tileset.base_dir is not None:
            node.set("basedir", tileset.base_dir)

        self._append_properties(node, tileset.properties)

        if tilebmp is not None:
            image = ElementTree.SubElement(
                node, "image", source=get_relative_path(context.document, tilebmp)
            )
            if tileset.transparent_color:
                image.set("trans", tileset.transparent_color)
            if tileset.image_width and tileset.image_height:
                image.set("width", str(tileset.image_width))
                image.set("height", str(tileset.image_height))

            # tiles are implied by the image; only write those with extra data
            for tile in tileset:
                if tile.properties or tile.animation:
                    tile_node = ElementTree.SubElement(node, "tile", id=str(tile.id))
                    self._append_properties(tile_node, tile.properties)
                    if tile.animation:
                        tile_node.append(self._animation_to_element(tile.animation, context))
            return node

        strategy = context.strategy
        if strategy.tileset_images:
            for image_id in tileset.image_ids():
                source = tileset.get_image_source(image_id)
                if not strategy.embed and source is not None:
                    ElementTree.SubElement(
                        node,
                        "image",
                        id=str(image_id),
                        source=get_relative_path(context.document, source),
                    )
                else:
                    node.append(
                        self._embedded_image_to_element(
                            tileset.get_image_by_id(image_id), context, image_id, source
                        )
                    )

        if self._needs_tile_elements(tileset, strategy):
            for tile in tileset:
                node.append(self._tile_to_element(tile, tileset, context))
        return node

    @staticmethod
    def _needs_tile_elements(tileset: TileSet, strategy: ImageStrategy) -> bool:
        """Tile elements can be left out only when the image list implies them."""
        if not strategy.tileset_images:
            return True
        if any(tile.properties or tile.animation for tile in tileset):
            return True
        if not tileset.is_one_for_one():
            return True
        return any(tile.image_id != tile.id for tile in tileset)

    def _tile_to_element(
        self, tile: Tile, tileset: TileSet, context: _WriteContext
    ) -> ElementTree.Element:
        node = ElementTree.Element("tile", id=str(tile.id))
        self._append_properties(node, tile.properties)

        image = tile.image
        if image is not None:
            strategy = context.strategy
            source = tileset.get_image_source(tile.image_id)
            if strategy.embed and not strategy.tileset_images:
                node.append(self._embedded_image_to_element(image, context, None, source))
            elif strategy.embed:
                ElementTree.SubElement(node, "image", id=str(tile.image_id))
            else:
                if source is None:
                    source = self._spill_tile_image(tile, image, context)
                else:
                    source = get_relative_path(context.document, source)
                ElementTree.SubElement(node, "image", source=source)

        if tile.animation:
            node.append(self._animation_to_element(tile.animation, context))
        return node

    def _spill_tile_image(self, tile: Tile, image, context: _WriteContext) -> str:
        """Write an image without known source next to the document."""
        from .util_pygame import image_to_png

        filename = "{0}{1}.png".format(self.options.tile_image_prefix, tile.id)
        folder = self.options.map_location or os.path.dirname(context.document)
        path = os.path.join(folder, filename)
        with open(path, "wb") as fp:
            fp.write(image_to_png(image))
        logger.info("wrote tile image %s", path)
        return filename

    def _embedded_image_to_element(
        self,
        image,
        context: _WriteContext,
        image_id: Optional[int] = None,
        source: Optional[str] = None,
    ) -> ElementTree.Element:
        from . import util_pygame

        strategy = context.strategy
        node = ElementTree.Element("image")
        if image_id is not None:
            node.set("id", str(image_id))
        if source is not None:
            node.set("source", get_relative_path(context.document, source))
        node.set("format", strategy.image_format.value)

        if strategy.image_format is ImageFormat.RAW:
            width, height = util_pygame.image_size(image)
            node.set("pixelFormat", strategy.pixel_format.name)
            node.set("byteOrder", "bigEndian" if strategy.big_endian else "littleEndian")
            node.set("width", str(width))
            node.set("height", str(height))
            data = util_pygame.image_to_raw(image, strategy.pixel_format, strategy.big_endian)
        else:
            data = util_pygame.image_to_png(image)

        data_node = ElementTree.SubElement(node, "data", encoding="base64")
        data_node.text = b64encode(data).decode("ascii")
        return node

    def _animation_to_element(
        self, animation: Animation, context: _WriteContext
    ) -> ElementTree.Element:
        node = ElementTree.Element("animation")
        for keyframe in animation:
            keyframe_node = ElementTree.SubElement(node, "keyframe", name=keyframe.name)
            for frame in keyframe.frames:
                ElementTree.SubElement(
                    keyframe_node, "tile", gid=str(self._gid_of(frame, context))
                )
        return node

    def _layer_to_element(self, layer: MapLayer, context: _WriteContext) -> ElementTree.Element:
        """Write a layer.  The firstgids must have been assigned already."""
        node = ElementTree.Element(layer.layer_type.value)
        if layer.name is not None:
            node.set("name", layer.name)
        node.set("width", str(layer.width))
        node.set("height", str(layer.height))
        node.set("viewPlaneDistance", str(layer.view_plane_distance))
        node.set("viewPlaneInfinitelyFarAway", _bool_text(layer.view_plane_infinitely_far_away))
        if layer.x != 0:
            node.set("x", str(layer.x))
        if layer.y != 0:
            node.set("y", str(layer.y))
        if not layer.visible:
            node.set("visible", "0")
        if layer.opacity < 1.0:
            node.set("opacity", str(layer.opacity))
        if layer.locked:
            node.set("locked", "1")

        self._append_properties(node, layer.properties)
        self._layer_writers[layer.layer_type](layer, node, context)
        return node

    def _write_tile_layer(
        self, layer: TileLayer, node: ElementTree.Element, context: _WriteContext
    ) -> None:
        node.set("tileWidth", str(layer.tile_width))
        node.set("tileHeight", str(layer.tile_height))

        gids = [self._gid_of(tile, context) for x, y, tile in layer.iter_data()]
        data = ElementTree.SubElement(node, "data")
        if self.options.encode_layer_data:
            data.set("encoding", "base64")
            compression = "gzip" if self.options.layer_compression else None
            if compression:
                data.set("compression", compression)
            data.text = encode_gids(gids, compression)
        else:
            for gid in gids:
                ElementTree.SubElement(data, "tile", gid=str(gid))

        cells = list(layer.iter_tile_instance_properties())
        if cells:
            tile_properties = ElementTree.SubElement(node, "tileproperties")
            for x, y, properties in cells:
                cell = ElementTree.SubElement(
                    tile_properties, "tile", x=str(x - layer.x), y=str(y - layer.y)
                )
                self._append_properties(cell, properties)

    def _write_object_group(
        self, layer: ObjectGroup, node: ElementTree.Element, context: _WriteContext
    ) -> None:
        for obj in layer:
            node.append(self._object_to_element(obj, context))

    def _object_to_element(self, obj: MapObject, context: _WriteContext) -> ElementTree.Element:
        node = ElementTree.Element("object", name=obj.name or "")
        if obj.type:
            node.set("type", obj.type)
        node.set("x", str(obj.x))
        node.set("y", str(obj.y))
        if obj.width != 0:
            node.set("width", str(obj.width))
        if obj.height != 0:
            node.set("height", str(obj.height))
        self._append_properties(node, obj.properties)
        if obj.image_source:
            ElementTree.SubElement(
                node, "image", source=get_relative_path(context.document, obj.image_source)
            )
        return node


class TMXReader:
    """Reads maps and tilesets from TMX documents.

    File references are resolved to absolute paths.  Images referenced by
    path are handed to the image loader; embedded images are decoded
    with pygame.

    """

    def __init__(self, image_loader=default_image_loader, strict: bool = True) -> None:
        """
        Args:
            image_loader: Function that will load images (see default_image_loader).
            strict (bool): If False, unknown elements are logged and skipped
                instead of raising TMXFormatError.

        """
        self.image_loader = image_loader
        self.strict = strict
        self._layer_readers = {
            LayerType.TILE: self._read_tile_layer,
            LayerType.SELECTION: self._read_tile_layer,
            LayerType.OBJECTS: self._read_object_group,
        }

    accept = staticmethod(accept)

    def read_map(self, filename: str) -> Map:
        """Load a map from a .tmx or .tmx.gz file."""
        filename = os.path.abspath(filename)
        if filename.lower().endswith(".tmx.gz"):
            with gzip.open(filename, "rb") as stream:
                text = stream.read()
        else:
            with open(filename, "rb") as stream:
                text = stream.read()
        return self.read_map_from_string(text, filename)

    def read_map_from_string(self, text, filename: Optional[str] = None) -> Map:
        """Load a map from a document held in memory.

        Args:
            text (Union[str, bytes]): The document.
            filename (Optional[str]): Path used to resolve relative file
                references.

        """
        root = self._parse(text, filename)
        if root.tag != "map":
            raise TMXFormatError('expected <map>, found <{0}>'.format(root.tag), root, root.tag)
        return self._map_from_element(root, _ReadContext(filename, list()))

    def read_tileset(self, filename: str) -> TileSet:
        """Load a tileset from a .tsx file."""
        filename = os.path.abspath(filename)
        with open(filename, "rb") as stream:
            root = self._parse(stream.read(), filename)
        if root.tag != "tileset":
            raise TMXFormatError(
                'expected <tileset>, found <{0}>'.format(root.tag), root, root.tag
            )
        context = _ReadContext(filename, list())
        tileset = self._tileset_from_element(root, context, "tileset")
        self._resolve_animations(context.pending, GidTable([tileset]))
        tileset.source = filename
        return tileset

    @staticmethod
    def _parse(text, filename: Optional[str]) -> ElementTree.Element:
        try:
            return ElementTree.fromstring(text)
        except ElementTree.ParseError as e:
            raise TMXFormatError(
                "document is not well-formed: {0}".format(e), None, filename
            ) from e

    def _unknown_element(self, node: ElementTree.Element, location: str) -> None:
        msg = "unknown element <{0}>".format(node.tag)
        if self.strict:
            logger.error("%s at %s", msg, location)
            raise TMXFormatError(msg, node, location)
        logger.warning("skipping %s at %s", msg, location)

    @staticmethod
    def _attribute(node: ElementTree.Element, name: str, location: str, cast=str, default=None):
        """Return attribute cast to a type; without default it is required."""
        value = node.get(name)
        if value is None:
            if default is None:
                raise TMXFormatError(
                    'missing required attribute "{0}" on <{1}>'.format(name, node.tag),
                    node,
                    location,
                )
            return default
        try:
            return cast(value)
        except ValueError as e:
            raise TMXFormatError(
                'invalid value "{0}" for attribute "{1}"'.format(value, name), node, location
            ) from e

    @staticmethod
    def _resolve_gid(table: GidTable, gid: int, node, location: str) -> Optional[Tile]:
        try:
            return table.resolve(gid)
        except ValueError as e:
            raise TMXFormatError(str(e), node, location) from e

    def _map_from_element(self, node: ElementTree.Element, context: _ReadContext) -> Map:
        location = "map"
        attribute = self._attribute

        version = node.get("version")
        if version != TMX_VERSION:
            logger.warning("unexpected TMX version %s, reading as %s", version, TMX_VERSION)

        try:
            orientation = Orientation.from_token(attribute(node, "orientation", location))
        except ValueError as e:
            raise TMXFormatError(str(e), node, location) from e

        tiled_map = Map(
            attribute(node, "width", location, int),
            attribute(node, "height", location, int),
            attribute(node, "tilewidth", location, int),
            attribute(node, "tileheight", location, int),
            orientation,
        )
        tiled_map.filename = context.document
        tiled_map.eye_distance = attribute(node, "eyeDistance", location, float, 0.0)
        tiled_map.set_viewport(
            attribute(node, "viewportWidth", location, int, 0),
            attribute(node, "viewportHeight", location, int, 0),
        )

        # ***  layers are read once every tileset is known  *** #
        tileset_locations = list()
        layer_nodes = list()
        for child, child_location in _iter_children(node, location):
            if child.tag == "properties":
                tiled_map.properties.update(parse_properties(node))
            elif child.tag == "tileset":
                tileset = self._tileset_reference_from_element(child, context, child_location)
                self._check_gid_range(tileset_locations, tileset, child, child_location)
                tileset_locations.append((tileset, child_location))
                tiled_map.add_tileset(tileset)
            elif child.tag in ("layer", "objectgroup", "selection"):
                layer_nodes.append((child, child_location))
            else:
                self._unknown_element(child, child_location)

        table = GidTable(tiled_map.tilesets)
        for child, child_location in layer_nodes:
            tiled_map.add_layer(self._layer_from_element(child, child_location, tiled_map, table))

        self._resolve_animations(context.pending, table)
        return tiled_map

    @staticmethod
    def _check_gid_range(previous, tileset: TileSet, node, location: str) -> None:
        """Raise if the gids of tileset overlap a tileset read before it.

        Empty tilesets own no gids.

        """
        first = tileset.firstgid
        last = first + tileset.get_max_tile_id()
        if last < first:
            return
        for other, other_location in previous:
            other_last = other.firstgid + other.get_max_tile_id()
            if other.firstgid <= other_last and first <= other_last and other.firstgid <= last:
                raise TMXFormatError(
                    "gids {0}-{1} of tileset {2} overlap tileset {3} at {4}".format(
                        first, last, tileset.name, other.name, other_location
                    ),
                    node,
                    location,
                )

    def _tileset_reference_from_element(
        self, node: ElementTree.Element, context: _ReadContext, location: str
    ) -> TileSet:
        firstgid = self._attribute(node, "firstgid", location, int)
        source = node.get("source")
        if source is None:
            tileset = self._tileset_from_element(node, context, location)
            tileset.firstgid = firstgid
            return tileset

        path = resolve_path(context.document, source)
        if not os.path.exists(path):
            raise FileNotFoundError(
                errno.ENOENT,
                "Cannot find tileset file {0} from {1}".format(source, context.document),
                path,
            )
        tileset = self.read_tileset(path)
        tileset.firstgid = firstgid
        tileset.base_dir = node.get("basedir", tileset.base_dir)
        return tileset

    def _tileset_from_element(
        self, node: ElementTree.Element, context: _ReadContext, location: str
    ) -> TileSet:
        attribute = self._attribute
        tileset = TileSet(node.get("name"))
        tileset.firstgid = attribute(node, "firstgid", location, int, 1)
        tileset.base_dir = node.get("basedir")
        tileset.tile_width = attribute(node, "tilewidth", location, int, 0)
        tileset.tile_height = attribute(node, "tileheight", location, int, 0)
        tileset.spacing = attribute(node, "spacing", location, int, 0)
        tileset.margin = attribute(node, "margin", location, int, 0)

        # tile elements may refer to images listed after them
        tile_nodes = list()
        for child, child_location in _iter_children(node, location):
            if child.tag == "properties":
                tileset.properties.update(parse_properties(node))
            elif child.tag == "image":
                if child.get("id") is None:
                    self._read_tilebmp(tileset, child, context, child_location)
                else:
                    image_id = attribute(child, "id", child_location, int)
                    image, source = self._read_image(child, context, child_location)
                    tileset.set_image(image_id, image, source)
            elif child.tag == "tile":
                tile_nodes.append((child, child_location))
            else:
                self._unknown_element(child, child_location)

        for child, child_location in tile_nodes:
            self._tile_from_element(tileset, child, context, child_location)

        # a one image per tile list without tile elements implies the tiles
        if not tile_nodes and tileset.tilebmp_file is None:
            for image_id in tileset.image_ids():
                tile = Tile(id=image_id)
                tile.image_id = image_id
                tileset.add_tile(tile)

        return tileset

    def _read_tilebmp(
        self, tileset: TileSet, node: ElementTree.Element, context: _ReadContext, location: str
    ) -> None:
        path = resolve_path(context.document, self._attribute(node, "source", location))
        trans = node.get("trans")
        width = self._attribute(node, "width", location, int, 0)
        height = self._attribute(node, "height", location, int, 0)
        if not (width and height):
            image = self.image_loader(path, trans)()
            try:
                width, height = image.get_size()
            except AttributeError:
                msg = "size of tileset image {0} is unknown".format(path)
                logger.error(msg)
                raise TMXFormatError(msg, node, location) from None

        tileset.import_tile_bitmap(
            path,
            tileset.tile_width,
            tileset.tile_height,
            width,
            height,
            tileset.spacing,
            tileset.margin,
        )
        tileset.set_transparent_color(trans)

    def _read_image(
        self, node: ElementTree.Element, context: _ReadContext, location: str
    ) -> Tuple[Any, Optional[str]]:
        """Return image, absolute source path of an <image> element."""
        source = node.get("source")
        path = resolve_path(context.document, source) if source else None
        data = node.find("data")
        if data is not None:
            image = self._decode_image(node, data, location)
        elif path is not None:
            image = self.image_loader(path, node.get("trans"))()
        else:
            raise TMXFormatError("image has neither data nor source", node, location)
        return image, path

    def _decode_image(
        self, node: ElementTree.Element, data: ElementTree.Element, location: str
    ):
        from . import util_pygame

        encoding = data.get("encoding", "base64")
        if encoding != "base64":
            raise TMXFormatError(
                "image data encoding {0} is not supported".format(encoding), data, location
            )
        try:
            raw = b64decode((data.text or "").strip())
        except ValueError as e:
            raise TMXFormatError("cannot decode image data: {0}".format(e), data, location) from e

        image_format = ImageFormat.from_name(node.get("format", "png"))
        if image_format is ImageFormat.RAW:
            pixel_format = PixelFormat.from_name(node.get("pixelFormat", "A8R8G8B8"))
            big_endian = node.get("byteOrder", "bigEndian") != "littleEndian"
            width = self._attribute(node, "width", location, int)
            height = self._attribute(node, "height", location, int)
            try:
                return util_pygame.raw_to_image(raw, width, height, pixel_format, big_endian)
            except ValueError as e:
                raise TMXFormatError(str(e), node, location) from e
        return util_pygame.png_to_image(raw)

    def _tile_from_element(
        self, tileset: TileSet, node: ElementTree.Element, context: _ReadContext, location: str
    ) -> Tile:
        tile_id = self._attribute(node, "id", location, int)
        tile = tileset.get_tile(tile_id)
        if tile is None:
            tile = Tile(id=tile_id)
            tileset.add_tile(tile)

        for child, child_location in _iter_children(node, location):
            if child.tag == "properties":
                tile.properties.update(parse_properties(node))
            elif child.tag == "image":
                if child.get("source") is None and child.find("data") is None:
                    tile.image_id = self._attribute(child, "id", child_location, int)
                else:
                    image, source = self._read_image(child, context, child_location)
                    tile.image_id = next(
                        (i for i, s in tileset.image_sources.items() if source and s == source),
                        None,
                    )
                    if tile.image_id is None:
                        tile.set_image(image, source)
            elif child.tag == "animation":
                context.pending.append((tile, child, child_location))
            else:
                self._unknown_element(child, child_location)
        return tile

    def _resolve_animations(self, pending: List, table: GidTable) -> None:
        for tile, node, location in pending:
            animation = Animation()
            for keyframe, keyframe_location in _iter_children(node, location):
                if keyframe.tag != "keyframe":
                    self._unknown_element(keyframe, keyframe_location)
                    continue
                frames = [
                    self._resolve_gid(
                        table,
                        self._attribute(frame, "gid", keyframe_location, int),
                        frame,
                        keyframe_location,
                    )
                    for frame in keyframe.findall("tile")
                ]
                animation.add_keyframe(keyframe.get("name", ""), frames)
            tile.animation = animation
        del pending[:]

    def _layer_from_element(
        self, node: ElementTree.Element, location: str, tiled_map: Map, table: GidTable
    ) -> MapLayer:
        attribute = self._attribute
        layer_type = LayerType(node.tag)
        layer = _LAYER_CLASSES[layer_type](
            attribute(node, "width", location, int, tiled_map.width),
            attribute(node, "height", location, int, tiled_map.height),
            name=node.get("name"),
        )
        layer.set_offset(attribute(node, "x", location, int, 0), attribute(node, "y", location, int, 0))
        try:
            layer.visible = convert_to_bool(node.get("visible", "1"))
            layer.locked = convert_to_bool(node.get("locked", "0"))
            layer.opacity = attribute(node, "opacity", location, float, 1.0)
            layer.view_plane_distance = attribute(node, "viewPlaneDistance", location, float, 0.0)
            layer.view_plane_infinitely_far_away = convert_to_bool(
                node.get("viewPlaneInfinitelyFarAway", "false")
            )
        except ValueError as e:
            raise TMXFormatError(str(e), node, location) from e
        layer.properties.update(parse_properties(node))

        self._layer_readers[layer_type](layer, node, location, tiled_map, table)
        return layer

    def _read_tile_layer(
        self,
        layer: TileLayer,
        node: ElementTree.Element,
        location: str,
        tiled_map: Map,
        table: GidTable,
    ) -> None:
        tile_width = self._attribute(node, "tileWidth", location, int, tiled_map.tile_width)
        tile_height = self._attribute(node, "tileHeight", location, int, tiled_map.tile_height)
        if (tile_width, tile_height) != (tiled_map.tile_width, tiled_map.tile_height):
            layer.tile_width = tile_width
            layer.tile_height = tile_height

        data_read = False
        for child, child_location in _iter_children(node, location):
            if child.tag == "properties":
                continue
            elif child.tag == "data":
                self._read_layer_data(layer, child, child_location, table)
                data_read = True
            elif child.tag == "tileproperties":
                self._read_tile_instance_properties(layer, child, child_location)
            else:
                self._unknown_element(child, child_location)

        if not data_read:
            raise TMXFormatError("tile layer has no <data>", node, location)

        if layer.layer_type is LayerType.SELECTION:
            layer.highlight_tile = next((tile for x, y, tile in layer.tiles()), None)

    def _read_layer_data(
        self, layer: TileLayer, node: ElementTree.Element, location: str, table: GidTable
    ) -> None:
        encoding = node.get("encoding")
        if encoding is None:
            gids = [
                self._attribute(child, "gid", location, int)
                for child in node.findall("tile")
            ]
        else:
            try:
                gids = decode_gids(
                    (node.text or "").strip(), encoding, node.get("compression")
                )
            except (ValueError, OSError, EOFError, zlib.error) as e:
                msg = "cannot decode layer data: {0}".format(e)
                logger.error(msg)
                raise TMXFormatError(msg, node, location) from e

        expected = layer.width * layer.height
        if len(gids) != expected:
            raise TMXFormatError(
                "layer data has {0} cells, expected {1}".format(len(gids), expected),
                node,
                location,
            )
        if not expected:
            return

        for y, row in enumerate(reshape_data(gids, layer.width), layer.y):
            for x, gid in enumerate(row, layer.x):
                if gid:
                    layer.set_tile_at(x, y, self._resolve_gid(table, gid, node, location))

    def _read_tile_instance_properties(
        self, layer: TileLayer, node: ElementTree.Element, location: str
    ) -> None:
        for child, child_location in _iter_children(node, location):
            if child.tag != "tile":
                self._unknown_element(child, child_location)
                continue
            x = self._attribute(child, "x", child_location, int)
            y = self._attribute(child, "y", child_location, int)
            layer.set_tile_instance_properties(
                layer.x + x, layer.y + y, parse_properties(child)
            )

    def _read_object_group(
        self,
        layer: ObjectGroup,
        node: ElementTree.Element,
        location: str,
        tiled_map: Map,
        table: GidTable,
    ) -> None:
        for child, child_location in _iter_children(node, location):
            if child.tag == "properties":
                continue
            elif child.tag == "object":
                layer.add_object(self._object_from_element(child, child_location, tiled_map))
            else:
                self._unknown_element(child, child_location)

    def _object_from_element(
        self, node: ElementTree.Element, location: str, tiled_map: Map
    ) -> MapObject:
        attribute = self._attribute
        obj = MapObject(
            attribute(node, "x", location, _int_or_float, 0),
            attribute(node, "y", location, _int_or_float, 0),
            attribute(node, "width", location, _int_or_float, 0),
            attribute(node, "height", location, _int_or_float, 0),
            name=node.get("name", ""),
            type=node.get("type", ""),
        )
        obj.properties.update(parse_properties(node))
        image = node.find("image")
        if image is not None and image.get("source"):
            obj.image_source = resolve_path(tiled_map.filename, image.get("source"))
        for child, child_location in _iter_children(node, location):
            if child.tag not in ("properties", "image"):
                self._unknown_element(child, child_location)
        return obj


def load_tmx(filename: str, **kwargs) -> Map:
    """Load a TMX map.  Keyword arguments are passed to TMXReader."""
    return TMXReader(**kwargs).read_map(filename)


def save_tmx(tiled_map: Map, filename: str, **kwargs) -> None:
    """Save a TMX map.  Keyword arguments are WriterOptions fields."""
    TMXWriter(WriterOptions(**kwargs)).write_map(tiled_map, filename)
