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

import logging
import weakref
from collections import namedtuple
from copy import copy
from enum import Enum
from itertools import product
from operator import attrgetter
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

__all__ = (
    "Animation",
    "Bounds",
    "ChangeEvent",
    "ChangeType",
    "KeyFrame",
    "LayerType",
    "Map",
    "MapLayer",
    "MapObject",
    "ObjectGroup",
    "Observable",
    "Orientation",
    "Properties",
    "SelectionLayer",
    "Tile",
    "TileLayer",
    "TileSet",
    "iter_image_tiles",
)

logger = logging.getLogger(__name__)

Bounds = namedtuple("Bounds", ["x", "y", "width", "height"])
ChangeEvent = namedtuple("ChangeEvent", ["type", "source", "index", "detail"])
KeyFrame = namedtuple("KeyFrame", ["name", "frames"])
Listener = Callable[[ChangeEvent], None]

# parallax change details
PARALLAX_EYE_DISTANCE = "eye_distance"
PARALLAX_VIEWPORT = "viewport"
PARALLAX_LAYER_VIEW_PLANE = "layer_view_plane"


class Orientation(Enum):
    ORTHOGONAL = "orthogonal"
    ISOMETRIC = "isometric"
    HEXAGONAL = "hexagonal"
    SHIFTED = "shifted"

    @classmethod
    def from_token(cls, token: Union[str, Orientation]) -> Orientation:
        """Return the orientation named by a TMX token.

        Raises:
            ValueError: if the token is not one of the known orientations.

        """
        try:
            return cls(token)
        except ValueError:
            raise ValueError('unknown map orientation "{0}"'.format(token)) from None


class LayerType(Enum):
    """Layer variant tag; the values are the TMX element names."""

    TILE = "layer"
    OBJECTS = "objectgroup"
    SELECTION = "selection"


class ChangeType(Enum):
    MAP_CHANGED = "map_changed"
    LAYER_ADDED = "layer_added"
    LAYER_REMOVED = "layer_removed"
    LAYER_MOVED = "layer_moved"
    LAYER_RENAMED = "layer_renamed"
    TILESET_ADDED = "tileset_added"
    TILESET_REMOVED = "tileset_removed"
    TILESETS_SWAPPED = "tilesets_swapped"
    TILESET_CHANGED = "tileset_changed"
    PARALLAX_CHANGED = "parallax_changed"


def iter_image_tiles(
    width: int, height: int, tilewidth: int, tileheight: int, margin: int, spacing: int
) -> Iterator[Tuple[int, int, int, int]]:
    """Iterate the rects of the tiles in a tileset image, row by row"""
    if tilewidth <= 0 or tileheight <= 0:
        return
    for y, x in product(
        range(margin, height - margin - tileheight + 1, tileheight + spacing),
        range(margin, width - margin - tilewidth + 1, tilewidth + spacing),
    ):
        yield x, y, tilewidth, tileheight


class Properties(dict):
    """String to string metadata.

    Keys and values are always stored as str.  Serializers must use
    `sorted_items` so that output is deterministic.

    """

    def __init__(self, *args, **kwargs) -> None:
        dict.__init__(self)
        self.update(*args, **kwargs)

    def __setitem__(self, key, value) -> None:
        dict.__setitem__(self, str(key), str(value))

    def update(self, *args, **kwargs) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def setdefault(self, key, default="") -> str:
        if key not in self:
            self[key] = default
        return self[key]

    def copy(self) -> Properties:
        return Properties(self)

    def sorted_items(self) -> List[Tuple[str, str]]:
        """Return items sorted by key, in plain code point order.

        Upper case letters sort before lower case ones, so "Mu" comes
        before "alpha".

        """
        return sorted(self.items())


class Observable:
    """Synchronous listener list.

    Listeners are called in registration order, in the call stack of the
    mutation.  A listener must not add or remove listeners of the object
    that is notifying it; doing so raises RuntimeError.

    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = list()
        self._dispatch_depth = 0

    def add_listener(self, listener: Listener) -> None:
        self._check_not_dispatching()
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._check_not_dispatching()
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug("listener %s was not registered", listener)

    @property
    def listeners(self) -> Tuple[Listener, ...]:
        return tuple(self._listeners)

    def _check_not_dispatching(self) -> None:
        if self._dispatch_depth:
            raise RuntimeError(
                "listeners cannot be added or removed while an event is dispatched"
            )

    def _fire(self, change_type: ChangeType, index: int = None, detail=None) -> None:
        if not self._listeners:
            return
        event = ChangeEvent(change_type, self, index, detail)
        self._dispatch_depth += 1
        try:
            for listener in self._listeners:
                listener(event)
        finally:
            self._dispatch_depth -= 1


class Animation:
    """Sprite cycle of a tile: ordered, named keyframes of tiles."""

    def __init__(self) -> None:
        self.keyframes: List[KeyFrame] = list()

    def __iter__(self):
        return iter(self.keyframes)

    def __len__(self):
        return len(self.keyframes)

    def add_keyframe(self, name: str, frames: Iterable[Tile] = ()) -> KeyFrame:
        keyframe = KeyFrame(name, list(frames))
        self.keyframes.append(keyframe)
        return keyframe

    def get_keyframe(self, name: str) -> KeyFrame:
        for keyframe in self.keyframes:
            if keyframe.name == name:
                return keyframe
        raise ValueError('Keyframe "{0}" not found'.format(name))


class Tile:
    """A tile of a tileset.

    The gid is not stored; it is computed from the owning tileset's
    firstgid and the local id.

    """

    def __init__(self, tileset: TileSet = None, id: int = -1) -> None:
        self.tileset = tileset
        self.id = id
        self.image_id: Optional[int] = None
        self.rect: Optional[Tuple[int, int, int, int]] = None
        self.animation: Optional[Animation] = None
        self.properties = Properties()

    def __repr__(self):
        return "<{0}[{1}]>".format(self.__class__.__name__, self.id)

    @property
    def gid(self) -> int:
        if self.tileset is None:
            return self.id
        return self.tileset.firstgid + self.id

    @property
    def image(self):
        """Image of the tile, if it owns one.

        Returns:
            ???: the image object type will depend on the loader (ie. pygame.Surface).

        """
        if self.tileset is None or self.image_id is None:
            return None
        return self.tileset.get_image_by_id(self.image_id)

    def set_image(self, image, source: Optional[str] = None) -> int:
        """Give this tile its own image.

        The image is stored in the tileset; identical image objects are
        shared between tiles.

        Raises:
            ValueError: if the tile is not part of a tileset.

        """
        if self.tileset is None:
            raise ValueError("tile must be added to a tileset before it has an image")
        self.image_id = self.tileset.add_image(image, source)
        return self.image_id


class TileSet(Observable):
    """Ordered collection of tiles.

    A tileset either slices one shared image (tilebmp) into a regular
    grid, or keeps an independent image for each tile.  Tilesets with a
    `source` are references to an external file.

    """

    def __init__(self, name: Optional[str] = None) -> None:
        Observable.__init__(self)
        self._name = name
        self.source: Optional[str] = None
        self.base_dir: Optional[str] = None

        # assigned when the map is saved or loaded
        self.firstgid = 1

        self.tile_width = 0
        self.tile_height = 0
        self.spacing = 0
        self.margin = 0

        # shared image
        self.tilebmp_file: Optional[str] = None
        self.image_width = 0
        self.image_height = 0
        self.transparent_color: Optional[str] = None

        self.tiles: List[Optional[Tile]] = list()
        self.images: Dict[int, object] = dict()
        self.image_sources: Dict[int, str] = dict()
        self.properties = Properties()

    def __repr__(self):
        return '<{0}: "{1}">'.format(self.__class__.__name__, self.name)

    def __iter__(self) -> Iterator[Tile]:
        return (tile for tile in self.tiles if tile is not None)

    def __len__(self):
        return self.size()

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        if value != self._name:
            self._name = value
            self._fire(ChangeType.TILESET_CHANGED)

    def size(self) -> int:
        """Return the number of tiles present in the tileset."""
        return sum(1 for tile in self.tiles if tile is not None)

    def get_max_tile_id(self) -> int:
        """Return the highest local id in use, -1 for an empty tileset."""
        return len(self.tiles) - 1

    def _insert_tile(self, tile: Tile) -> int:
        if tile.id is None or tile.id < 0:
            tile.id = len(self.tiles)
        elif tile.id < len(self.tiles) and self.tiles[tile.id] is not None:
            raise ValueError(
                "Tile id {0} already used in tileset {1}".format(tile.id, self.name)
            )
        while len(self.tiles) <= tile.id:
            self.tiles.append(None)
        self.tiles[tile.id] = tile
        tile.tileset = self
        return tile.id

    def add_tile(self, tile: Tile) -> int:
        """Add a tile, assigning the next free id if the tile has none.

        Args:
            tile (Tile): Tile to add.  A negative id means "next id".

        Returns:
            int: The local id of the tile.

        Raises:
            ValueError: if the id is already used.

        """
        tile_id = self._insert_tile(tile)
        self._fire(ChangeType.TILESET_CHANGED)
        return tile_id

    def add_new_tile(self) -> Tile:
        tile = Tile()
        self.add_tile(tile)
        return tile

    def remove_tile(self, tile_id: int) -> None:
        tile = self.get_tile(tile_id)
        if tile is None:
            return
        self.tiles[tile_id] = None
        tile.tileset = None
        while self.tiles and self.tiles[-1] is None:
            self.tiles.pop()
        self._fire(ChangeType.TILESET_CHANGED)

    def get_tile(self, tile_id: int) -> Optional[Tile]:
        if 0 <= tile_id < len(self.tiles):
            return self.tiles[tile_id]
        return None

    def import_tile_bitmap(
        self,
        filename: str,
        tile_width: int,
        tile_height: int,
        image_width: int,
        image_height: int,
        spacing: int = 0,
        margin: int = 0,
    ) -> None:
        """Slice a shared tileset image into tiles.

        One tile is created for each grid cell of the image, row by row.
        Each tile remembers its source rect.  Existing tiles are replaced.

        Args:
            filename (str): Path of the shared image.
            tile_width (int): Width of one tile in pixels.
            tile_height (int): Height of one tile in pixels.
            image_width (int): Width of the image in pixels.
            image_height (int): Height of the image in pixels.
            spacing (int): Pixels between tiles.
            margin (int): Pixels around the tile grid.

        """
        self.tilebmp_file = filename
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.image_width = image_width
        self.image_height = image_height
        self.spacing = spacing
        self.margin = margin

        for tile in self:
            tile.tileset = None
        self.tiles = list()
        for rect in iter_image_tiles(
            image_width, image_height, tile_width, tile_height, margin, spacing
        ):
            tile = Tile()
            tile.rect = rect
            self._insert_tile(tile)

        logger.debug("sliced %s into %d tiles", filename, len(self.tiles))
        self._fire(ChangeType.TILESET_CHANGED)

    def set_transparent_color(self, color: Optional[Union[str, Tuple[int, int, int]]]) -> None:
        """Set the colorkey of the shared image, as hex string or rgb tuple."""
        if color is None:
            self.transparent_color = None
        elif isinstance(color, str):
            self.transparent_color = color.lstrip("#").lower()
        else:
            self.transparent_color = "{0:02x}{1:02x}{2:02x}".format(*color[:3])

    def add_image(self, image, source: Optional[str] = None) -> int:
        """Store an image, returning its id.

        Adding the same image object twice returns the existing id.

        """
        for image_id, existing in self.images.items():
            if existing is image:
                if source and image_id not in self.image_sources:
                    self.image_sources[image_id] = source
                return image_id
        image_id = max(self.images, default=-1) + 1
        self.images[image_id] = image
        if source:
            self.image_sources[image_id] = source
        return image_id

    def set_image(self, image_id: int, image, source: Optional[str] = None) -> None:
        """Store an image under a known id, replacing any previous one."""
        self.images[image_id] = image
        if source:
            self.image_sources[image_id] = source
        else:
            self.image_sources.pop(image_id, None)

    def get_image_by_id(self, image_id: int):
        return self.images.get(image_id)

    def get_image_source(self, image_id: Optional[int]) -> Optional[str]:
        if image_id is None:
            return None
        return self.image_sources.get(image_id)

    def image_ids(self) -> List[int]:
        return sorted(self.images)

    def is_one_for_one(self) -> bool:
        """Return True if every tile has its own image and every image one tile."""
        used = set()
        for tile in self:
            if tile.image_id is None or tile.image_id in used:
                return False
            used.add(tile.image_id)
        return used == set(self.images)


class MapLayer(Observable):
    """Base class of all layers.

    Bounds are in tiles.  The layer holds a weak reference to the map it
    is part of, so it never keeps the map alive.

    """

    layer_type: LayerType = None

    def __init__(
        self, width: int = 0, height: int = 0, map: Map = None, name: str = None
    ) -> None:
        Observable.__init__(self)
        self._name = name
        self._visible = True
        self._opacity = 1.0
        self._view_plane_distance = 0.0
        self._view_plane_infinitely_far_away = False
        self._map_ref = None
        self._bounds = Bounds(0, 0, 0, 0)
        self.locked = False
        self.properties = Properties()

        self._set_bounds(Bounds(0, 0, width, height))
        self.map = map

    def __repr__(self):
        return '<{0}: "{1}">'.format(self.__class__.__name__, self.name)

    @property
    def map(self) -> Optional[Map]:
        if self._map_ref is None:
            return None
        return self._map_ref()

    @map.setter
    def map(self, value: Optional[Map]) -> None:
        self._map_ref = None if value is None else weakref.ref(value)

    def _fire_map_changed(self) -> None:
        tiled_map = self.map
        if tiled_map is not None:
            tiled_map.fire_map_changed()

    def _fire_parallax_changed(self) -> None:
        tiled_map = self.map
        if tiled_map is not None:
            tiled_map._fire(
                ChangeType.PARALLAX_CHANGED,
                tiled_map.index_of_layer(self),
                PARALLAX_LAYER_VIEW_PLANE,
            )

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        old = self._name
        self._name = value
        self._fire(ChangeType.LAYER_RENAMED, detail=(old, value))

    @property
    def visible(self) -> bool:
        return self._visible

    @visible.setter
    def visible(self, value: bool) -> None:
        value = bool(value)
        if value != self._visible:
            self._visible = value
            self._fire_map_changed()

    @property
    def opacity(self) -> float:
        return self._opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValueError("Layer opacity must be within 0.0 and 1.0, got {0}".format(value))
        if value != self._opacity:
            self._opacity = value
            if self._visible:
                self._fire_map_changed()

    @property
    def view_plane_distance(self) -> float:
        return self._view_plane_distance

    @view_plane_distance.setter
    def view_plane_distance(self, value: float) -> None:
        value = float(value)
        if value != self._view_plane_distance:
            self._view_plane_distance = value
            self._fire_parallax_changed()

    @property
    def view_plane_infinitely_far_away(self) -> bool:
        return self._view_plane_infinitely_far_away

    @view_plane_infinitely_far_away.setter
    def view_plane_infinitely_far_away(self, value: bool) -> None:
        value = bool(value)
        if value != self._view_plane_infinitely_far_away:
            self._view_plane_infinitely_far_away = value
            self._fire_parallax_changed()

    @property
    def bounds(self) -> Bounds:
        return self._bounds

    @property
    def x(self) -> int:
        return self._bounds.x

    @property
    def y(self) -> int:
        return self._bounds.y

    @property
    def width(self) -> int:
        return self._bounds.width

    @property
    def height(self) -> int:
        return self._bounds.height

    def _set_bounds(self, bounds: Bounds) -> None:
        bounds = Bounds(*(int(i) for i in bounds))
        if bounds.width < 0 or bounds.height < 0:
            raise ValueError(
                "Layer size cannot be negative, was {0}x{1}".format(
                    bounds.width, bounds.height
                )
            )
        self._bounds = bounds

    def translate(self, dx: int, dy: int) -> None:
        """Shift the layer by (dx, dy) tiles."""
        self._bounds = self._bounds._replace(x=self.x + dx, y=self.y + dy)
        self._fire_map_changed()

    def set_offset(self, x: int, y: int) -> None:
        self._bounds = self._bounds._replace(x=x, y=y)
        self._fire_map_changed()

    def contains(self, x: int, y: int) -> bool:
        """Return True if the tile coordinate is within the layer bounds."""
        bx, by, width, height = self._bounds
        return bx <= x < bx + width and by <= y < by + height

    def can_edit(self) -> bool:
        """Advisory check for editors: visible and not locked."""
        return self._visible and not self.locked

    @property
    def tile_width(self) -> int:
        tiled_map = self.map
        return tiled_map.tile_width if tiled_map is not None else 0

    @property
    def tile_height(self) -> int:
        tiled_map = self.map
        return tiled_map.tile_height if tiled_map is not None else 0

    def copy_to(self, other: MapLayer) -> None:
        """Copy the shared layer attributes onto another layer."""
        other.name = self._name
        other.visible = self._visible
        other.locked = self.locked
        other.view_plane_distance = self._view_plane_distance
        other.view_plane_infinitely_far_away = self._view_plane_infinitely_far_away
        other._map_ref = self._map_ref
        other.opacity = self._opacity
        other._bounds = self._bounds
        if other.properties is not self.properties:
            other.properties.clear()
            other.properties.update(self.properties)

    def clone(self) -> MapLayer:
        """Return a copy of this layer without its listeners."""
        clone = copy(self)
        Observable.__init__(clone)
        clone.properties = self.properties.copy()
        return clone

    def is_empty(self) -> bool:
        raise NotImplementedError

    def resize(self, width: int, height: int, dx: int, dy: int) -> None:
        raise NotImplementedError


class TileLayer(MapLayer):
    """Grid of tile references.

    Coordinates passed to the cell accessors are map coordinates; the
    grid itself covers only the layer bounds.

    """

    layer_type = LayerType.TILE

    def __init__(
        self, width: int = 0, height: int = 0, map: Map = None, name: str = None
    ) -> None:
        self._tiles: List[List[Optional[Tile]]] = list()
        self._instance_properties: Dict[Tuple[int, int], Properties] = dict()
        self._tile_width: Optional[int] = None
        self._tile_height: Optional[int] = None
        MapLayer.__init__(self, width, height, map, name)

    def __iter__(self):
        return self.iter_data()

    def _set_bounds(self, bounds: Bounds) -> None:
        MapLayer._set_bounds(self, bounds)
        self._tiles = [[None] * self.width for _ in range(self.height)]

    @property
    def tile_width(self) -> int:
        if self._tile_width is not None:
            return self._tile_width
        return MapLayer.tile_width.fget(self)

    @tile_width.setter
    def tile_width(self, value: Optional[int]) -> None:
        self._tile_width = value

    @property
    def tile_height(self) -> int:
        if self._tile_height is not None:
            return self._tile_height
        return MapLayer.tile_height.fget(self)

    @tile_height.setter
    def tile_height(self, value: Optional[int]) -> None:
        self._tile_height = value

    def has_tile_size_override(self) -> bool:
        return self._tile_width is not None or self._tile_height is not None

    def get_tile_at(self, x: int, y: int) -> Optional[Tile]:
        """Return the tile at a map coordinate, None when empty or outside."""
        if not self.contains(x, y):
            return None
        return self._tiles[y - self.y][x - self.x]

    def set_tile_at(self, x: int, y: int, tile: Optional[Tile]) -> None:
        """Place a tile at a map coordinate.  Outside the bounds this does nothing."""
        if not self.contains(x, y):
            return
        row = self._tiles[y - self.y]
        if row[x - self.x] is not tile:
            row[x - self.x] = tile
            if self.visible:
                self._fire_map_changed()

    def iter_data(self) -> Iterator[Tuple[int, int, Optional[Tile]]]:
        """Yields X, Y, Tile tuples for each cell, row by row, in map coordinates."""
        for y, row in enumerate(self._tiles, self.y):
            for x, tile in enumerate(row, self.x):
                yield x, y, tile

    def tiles(self) -> Iterator[Tuple[int, int, Tile]]:
        """Yields X, Y, Tile tuples for each non-empty cell."""
        return ((x, y, tile) for x, y, tile in self.iter_data() if tile is not None)

    def remove_tile(self, tile: Tile) -> None:
        self.replace_tile(tile, None)

    def replace_tile(self, find: Tile, replace: Optional[Tile]) -> None:
        changed = False
        for row in self._tiles:
            for i, tile in enumerate(row):
                if tile is find:
                    row[i] = replace
                    changed = True
        if changed and self.visible:
            self._fire_map_changed()

    def remove_tiles_from(self, tileset: TileSet) -> None:
        """Clear every cell that references a tile of the tileset."""
        for row in self._tiles:
            for i, tile in enumerate(row):
                if tile is not None and tile.tileset is tileset:
                    row[i] = None

    def is_used(self, tile: Tile) -> bool:
        return any(cell is tile for row in self._tiles for cell in row)

    def is_empty(self) -> bool:
        return all(cell is None for row in self._tiles for cell in row)

    def get_tile_instance_properties(self, x: int, y: int) -> Optional[Properties]:
        """Return the properties of one cell, or None if it has none."""
        return self._instance_properties.get((x, y))

    def set_tile_instance_properties(
        self, x: int, y: int, properties: Optional[Dict[str, str]]
    ) -> None:
        if properties:
            self._instance_properties[(x, y)] = Properties(properties)
        else:
            self._instance_properties.pop((x, y), None)

    def iter_tile_instance_properties(self) -> Iterator[Tuple[int, int, Properties]]:
        """Yields X, Y, Properties for cells of the layer with properties, row by row."""
        for (x, y), properties in sorted(
            self._instance_properties.items(), key=lambda i: (i[0][1], i[0][0])
        ):
            if properties and self.contains(x, y):
                yield x, y, properties

    def resize(self, width: int, height: int, dx: int, dy: int) -> None:
        """Resize the layer, moving the old content by (dx, dy) tiles."""
        old = self._tiles
        old_width, old_height = self.width, self.height
        self._set_bounds(self.bounds._replace(width=width, height=height))
        for y in range(max(0, dy), min(height, old_height + dy)):
            for x in range(max(0, dx), min(width, old_width + dx)):
                self._tiles[y][x] = old[y - dy][x - dx]

        moved = dict()
        for (x, y), properties in self._instance_properties.items():
            if self.contains(x + dx, y + dy):
                moved[(x + dx, y + dy)] = properties
        self._instance_properties = moved

    def clone(self) -> TileLayer:
        clone = MapLayer.clone(self)
        clone._tiles = [list(row) for row in self._tiles]
        clone._instance_properties = {
            k: v.copy() for k, v in self._instance_properties.items()
        }
        return clone


class SelectionLayer(TileLayer):
    """Editing overlay; a cell is selected when it holds the highlight tile."""

    layer_type = LayerType.SELECTION

    def __init__(
        self,
        width: int = 0,
        height: int = 0,
        map: Map = None,
        name: str = "Selection",
        highlight_tile: Tile = None,
    ) -> None:
        TileLayer.__init__(self, width, height, map, name)
        self.highlight_tile = highlight_tile

    def select(self, x: int, y: int) -> None:
        if self.highlight_tile is None:
            raise ValueError("selection layer has no highlight tile")
        self.set_tile_at(x, y, self.highlight_tile)

    def select_region(self, x: int, y: int, width: int, height: int) -> None:
        for ty, tx in product(range(y, y + height), range(x, x + width)):
            self.select(tx, ty)

    def deselect(self, x: int, y: int) -> None:
        self.set_tile_at(x, y, None)

    def clear_selection(self) -> None:
        self._set_bounds(self.bounds)
        self._fire_map_changed()

    def is_selected(self, x: int, y: int) -> bool:
        return self.get_tile_at(x, y) is not None

    def selected_cells(self) -> List[Tuple[int, int]]:
        return [(x, y) for x, y, tile in self.tiles()]


class MapObject:
    """Free positioned object of an object group.

    Position and size are in pixels; a width or height of 0 means unset.

    """

    def __init__(
        self,
        x: float = 0,
        y: float = 0,
        width: float = 0,
        height: float = 0,
        name: str = "",
        type: str = "",
    ) -> None:
        self.name = name
        self.type = type
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        self.image_source = ""
        self.properties = Properties()

    def __repr__(self):
        return '<{0}: "{1}">'.format(self.__class__.__name__, self.name)

    @property
    def bounds(self) -> Bounds:
        return Bounds(self.x, self.y, self.width, self.height)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height

    def translate(self, dx: float, dy: float) -> None:
        self.x += dx
        self.y += dy

    def clone(self) -> MapObject:
        clone = copy(self)
        clone.properties = self.properties.copy()
        return clone


class ObjectGroup(MapLayer):
    """Layer holding an ordered list of MapObjects."""

    layer_type = LayerType.OBJECTS

    def __init__(
        self, width: int = 0, height: int = 0, map: Map = None, name: str = None
    ) -> None:
        MapLayer.__init__(self, width, height, map, name)
        self.objects: List[MapObject] = list()

    def __iter__(self) -> Iterator[MapObject]:
        return iter(self.objects)

    def object_count(self) -> int:
        return len(self.objects)

    def add_object(self, obj: MapObject) -> MapObject:
        self.objects.append(obj)
        if self.visible:
            self._fire_map_changed()
        return obj

    def remove_object(self, obj: MapObject) -> None:
        self.objects.remove(obj)
        if self.visible:
            self._fire_map_changed()

    def get_object_at(self, x: float, y: float) -> Optional[MapObject]:
        """Return the topmost object containing the pixel coordinate."""
        for obj in reversed(self.objects):
            if obj.contains(x, y):
                return obj
        return None

    def is_empty(self) -> bool:
        return not self.objects

    def resize(self, width: int, height: int, dx: int, dy: int) -> None:
        self._set_bounds(self.bounds._replace(width=width, height=height))
        for obj in self.objects:
            obj.translate(dx * self.tile_width, dy * self.tile_height)

    def clone(self) -> ObjectGroup:
        clone = MapLayer.clone(self)
        clone.objects = [obj.clone() for obj in self.objects]
        return clone


class Map(Observable):
    """Aggregate root of a tile map document.

    Holds tilesets in gid allocation order and layers in z order (the
    first layer is drawn at the bottom).

    """

    def __init__(
        self,
        width: int = 0,
        height: int = 0,
        tile_width: int = 0,
        tile_height: int = 0,
        orientation: Union[str, Orientation] = Orientation.ORTHOGONAL,
    ) -> None:
        Observable.__init__(self)
        self.filename: Optional[str] = None
        self.layers: List[MapLayer] = list()
        self.tilesets: List[TileSet] = list()
        self.properties = Properties()

        self._orientation = Orientation.from_token(orientation)
        self._width = width
        self._height = height
        self._tile_width = tile_width
        self._tile_height = tile_height

        # parallax projection
        self._eye_distance = 0.0
        self._viewport_width = 0
        self._viewport_height = 0

    def __repr__(self):
        return '<{0}: "{1}">'.format(self.__class__.__name__, self.filename)

    def __iter__(self) -> Iterator[MapLayer]:
        return iter(self.layers)

    @property
    def orientation(self) -> Orientation:
        return self._orientation

    @orientation.setter
    def orientation(self, value: Union[str, Orientation]) -> None:
        value = Orientation.from_token(value)
        if value != self._orientation:
            self._orientation = value
            self.fire_map_changed()

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def tile_width(self) -> int:
        return self._tile_width

    @property
    def tile_height(self) -> int:
        return self._tile_height

    def set_tile_size(self, tile_width: int, tile_height: int) -> None:
        self._tile_width = tile_width
        self._tile_height = tile_height
        self.fire_map_changed()

    @property
    def eye_distance(self) -> float:
        return self._eye_distance

    @eye_distance.setter
    def eye_distance(self, value: float) -> None:
        value = float(value)
        if value != self._eye_distance:
            self._eye_distance = value
            self._fire(ChangeType.PARALLAX_CHANGED, detail=PARALLAX_EYE_DISTANCE)

    @property
    def viewport_width(self) -> int:
        return self._viewport_width

    @property
    def viewport_height(self) -> int:
        return self._viewport_height

    def set_viewport(self, width: int, height: int) -> None:
        if (width, height) != (self._viewport_width, self._viewport_height):
            self._viewport_width = width
            self._viewport_height = height
            self._fire(ChangeType.PARALLAX_CHANGED, detail=PARALLAX_VIEWPORT)

    def fire_map_changed(self) -> None:
        self._fire(ChangeType.MAP_CHANGED)

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self._width and 0 <= y < self._height

    def resize(self, width: int, height: int, dx: int = 0, dy: int = 0) -> None:
        """Resize the map and every layer, moving content by (dx, dy) tiles."""
        for layer in self.layers:
            layer.resize(width, height, dx, dy)
        self._width = width
        self._height = height
        self.fire_map_changed()

    # layers

    def layer_count(self) -> int:
        return len(self.layers)

    def index_of_layer(self, layer: MapLayer) -> int:
        """Return the index of the layer, by identity, or -1."""
        for i, item in enumerate(self.layers):
            if item is layer:
                return i
        return -1

    def add_layer(self, layer: MapLayer) -> MapLayer:
        """Add a layer on top of all others."""
        return self.insert_layer(len(self.layers), layer)

    def insert_layer(self, index: int, layer: MapLayer) -> MapLayer:
        assert isinstance(layer, MapLayer)
        if self.index_of_layer(layer) >= 0:
            raise ValueError("{0} is already part of the map".format(layer))
        layer.map = self
        self.layers.insert(index, layer)
        self._fire(ChangeType.LAYER_ADDED, self.index_of_layer(layer))
        return layer

    def add_tile_layer(self, name: str = None) -> TileLayer:
        """Create a tile layer covering the whole map and add it."""
        return self.add_layer(TileLayer(self._width, self._height, name=name))

    def add_object_group(self, name: str = None) -> ObjectGroup:
        return self.add_layer(ObjectGroup(self._width, self._height, name=name))

    def remove_layer(self, index: int) -> MapLayer:
        layer = self.layers.pop(index)
        layer.map = None
        self._fire(ChangeType.LAYER_REMOVED, index)
        return layer

    def remove_all_layers(self) -> None:
        while self.layers:
            self.remove_layer(len(self.layers) - 1)

    def swap_layers(self, index0: int, index1: int) -> None:
        layers = self.layers
        layers[index0], layers[index1] = layers[index1], layers[index0]
        self._fire(ChangeType.LAYER_MOVED, index0, index1)

    def move_layer_up(self, index: int) -> None:
        if not 0 <= index < len(self.layers) - 1:
            raise IndexError("Can't move layer {0} up".format(index))
        self.swap_layers(index, index + 1)

    def move_layer_down(self, index: int) -> None:
        if not 0 < index < len(self.layers):
            raise IndexError("Can't move layer {0} down".format(index))
        self.swap_layers(index, index - 1)

    def get_layer(self, index: int) -> MapLayer:
        return self.layers[index]

    def get_layer_by_name(self, name: str) -> MapLayer:
        """Return a layer by name.

        Args:
            name (str): The layer's name. Case-sensitive!

        Raises:
            ValueError: if layer by name does not exist

        """
        for layer in self.layers:
            if layer.name == name:
                return layer
        msg = 'Layer "{0}" not found.'
        logger.debug(msg.format(name))
        raise ValueError(msg.format(name))

    @property
    def tile_layers(self) -> Iterator[TileLayer]:
        """Returns iterator of tile layers, including selection layers."""
        return (
            layer
            for layer in self.layers
            if layer.layer_type in (LayerType.TILE, LayerType.SELECTION)
        )

    @property
    def objectgroups(self) -> Iterator[ObjectGroup]:
        return (layer for layer in self.layers if layer.layer_type is LayerType.OBJECTS)

    @property
    def visible_layers(self) -> Iterator[MapLayer]:
        return (layer for layer in self.layers if layer.visible)

    # tilesets

    def add_tileset(self, tileset: TileSet) -> None:
        """Add a tileset; adding a tileset already in the map does nothing."""
        assert isinstance(tileset, TileSet)
        if any(ts is tileset for ts in self.tilesets):
            logger.debug("%s is already part of the map", tileset)
            return
        self.tilesets.append(tileset)
        self._fire(ChangeType.TILESET_ADDED, len(self.tilesets) - 1)

    def remove_tileset(self, tileset: TileSet) -> None:
        """Remove a tileset and clear every cell using one of its tiles."""
        index = next(
            (i for i, ts in enumerate(self.tilesets) if ts is tileset), None
        )
        if index is None:
            raise ValueError("{0} is not part of the map".format(tileset))
        for layer in self.tile_layers:
            layer.remove_tiles_from(tileset)
        del self.tilesets[index]
        self._fire(ChangeType.TILESET_REMOVED, index)

    def swap_tilesets(self, index0: int, index1: int) -> None:
        tilesets = self.tilesets
        tilesets[index0], tilesets[index1] = tilesets[index1], tilesets[index0]
        self._fire(ChangeType.TILESETS_SWAPPED, index0, index1)

    def find_tile_by_gid(self, gid: int) -> Optional[Tile]:
        """Return the tile for a gid, using the current firstgids.

        Note: this is a slow operation; the serializers use a sorted
        table instead.

        """
        if gid <= 0:
            return None
        for tileset in sorted(self.tilesets, key=attrgetter("firstgid"), reverse=True):
            if gid >= tileset.firstgid:
                return tileset.get_tile(gid - tileset.firstgid)
        return None
