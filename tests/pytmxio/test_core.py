import gc
import unittest

from pytmxio.core import (
    ChangeType,
    LayerType,
    Map,
    MapObject,
    ObjectGroup,
    Orientation,
    Properties,
    SelectionLayer,
    Tile,
    TileLayer,
    TileSet,
    iter_image_tiles,
)


def make_tileset(name, count):
    tileset = TileSet(name)
    for i in range(count):
        tileset.add_new_tile()
    return tileset


class TestIterImageTiles(unittest.TestCase):
    def test_image_split_no_margin_no_spacing(self):
        result = list(iter_image_tiles(8, 16, 4, 8, 0, 0))
        expected = [(0, 0, 4, 8), (4, 0, 4, 8), (0, 8, 4, 8), (4, 8, 4, 8)]
        self.assertEqual(expected, result)

    def test_image_split_no_margin_with_spacing(self):
        result = list(iter_image_tiles(9, 17, 4, 8, 0, 1))
        expected = [(0, 0, 4, 8), (5, 0, 4, 8), (0, 9, 4, 8), (5, 9, 4, 8)]
        self.assertEqual(expected, result)

    def test_image_split_with_margin_no_spacing(self):
        result = list(iter_image_tiles(10, 18, 4, 8, 1, 0))
        expected = [(1, 1, 4, 8), (5, 1, 4, 8), (1, 9, 4, 8), (5, 9, 4, 8)]
        self.assertEqual(expected, result)

    def test_image_split_with_margin_with_spacing(self):
        result = list(iter_image_tiles(11, 19, 4, 8, 1, 1))
        expected = [(1, 1, 4, 8), (6, 1, 4, 8), (1, 10, 4, 8), (6, 10, 4, 8)]
        self.assertEqual(expected, result)

    def test_zero_tile_size_yields_nothing(self):
        self.assertEqual([], list(iter_image_tiles(8, 8, 0, 0, 0, 0)))


class TestProperties(unittest.TestCase):
    def test_values_are_strings(self):
        properties = Properties(speed=3)
        properties["solid"] = True
        self.assertEqual("3", properties["speed"])
        self.assertEqual("True", properties["solid"])

    def test_sorted_items_use_code_point_order(self):
        properties = Properties({"zeta": "1", "alpha": "2", "Mu": "3"})
        self.assertEqual(["Mu", "alpha", "zeta"], [k for k, v in properties.sorted_items()])

    def test_copy_is_independent(self):
        properties = Properties(a="1")
        other = properties.copy()
        other["a"] = "2"
        self.assertEqual("1", properties["a"])
        self.assertIsInstance(other, Properties)


class TestObservable(unittest.TestCase):
    def setUp(self):
        self.map = Map(4, 4, 32, 32)
        self.events = list()
        self.map.add_listener(self.events.append)

    def test_listeners_are_called_in_order(self):
        calls = list()
        self.map.add_listener(lambda event: calls.append("first"))
        self.map.add_listener(lambda event: calls.append("second"))
        self.map.fire_map_changed()
        self.assertEqual(["first", "second"], calls)

    def test_adding_listener_during_dispatch_raises_error(self):
        def listener(event):
            self.map.add_listener(print)

        self.map.add_listener(listener)
        with self.assertRaises(RuntimeError):
            self.map.fire_map_changed()

    def test_removing_listener_during_dispatch_raises_error(self):
        def listener(event):
            self.map.remove_listener(self.events.append)

        self.map.add_listener(listener)
        with self.assertRaises(RuntimeError):
            self.map.fire_map_changed()

    def test_listeners_can_change_after_dispatch(self):
        self.map.fire_map_changed()
        self.map.remove_listener(self.events.append)
        self.map.fire_map_changed()
        self.assertEqual(1, len(self.events))

    def test_event_carries_source(self):
        self.map.fire_map_changed()
        event = self.events[0]
        self.assertEqual(ChangeType.MAP_CHANGED, event.type)
        self.assertIs(self.map, event.source)


class TestMapLayers(unittest.TestCase):
    def setUp(self):
        self.map = Map(4, 4, 32, 32)
        self.events = list()
        self.map.add_listener(self.events.append)

    def test_add_layer_fires_layer_added(self):
        layer = self.map.add_tile_layer("ground")
        self.assertIs(self.map, layer.map)
        self.assertEqual(ChangeType.LAYER_ADDED, self.events[-1].type)
        self.assertEqual(0, self.events[-1].index)

    def test_add_same_layer_twice_raises_error(self):
        layer = self.map.add_tile_layer()
        with self.assertRaises(ValueError):
            self.map.add_layer(layer)

    def test_remove_layer(self):
        layer = self.map.add_tile_layer()
        self.assertIs(layer, self.map.remove_layer(0))
        self.assertIsNone(layer.map)
        self.assertEqual(ChangeType.LAYER_REMOVED, self.events[-1].type)
        self.assertEqual(0, self.map.layer_count())

    def test_move_layers(self):
        a = self.map.add_tile_layer("a")
        b = self.map.add_object_group("b")
        self.map.move_layer_up(0)
        self.assertEqual([b, a], self.map.layers)
        self.assertEqual(ChangeType.LAYER_MOVED, self.events[-1].type)
        self.map.move_layer_down(1)
        self.assertEqual([a, b], self.map.layers)

    def test_move_layer_out_of_range_raises_error(self):
        self.map.add_tile_layer("a")
        self.map.add_tile_layer("b")
        with self.assertRaises(IndexError):
            self.map.move_layer_up(1)
        with self.assertRaises(IndexError):
            self.map.move_layer_down(0)

    def test_get_layer_by_name(self):
        layer = self.map.add_object_group("things")
        self.assertIs(layer, self.map.get_layer_by_name("things"))
        with self.assertRaises(ValueError):
            self.map.get_layer_by_name("Things")

    def test_layer_iterators(self):
        ground = self.map.add_tile_layer("ground")
        things = self.map.add_object_group("things")
        selection = self.map.add_layer(SelectionLayer(4, 4))
        things.visible = False
        self.assertEqual([ground, selection], list(self.map.tile_layers))
        self.assertEqual([things], list(self.map.objectgroups))
        self.assertEqual([ground, selection], list(self.map.visible_layers))

    def test_layer_does_not_keep_map_alive(self):
        tiled_map = Map(2, 2, 8, 8)
        layer = tiled_map.add_tile_layer()
        del tiled_map
        gc.collect()
        self.assertIsNone(layer.map)

    def test_rename_layer_fires_layer_renamed(self):
        layer = self.map.add_tile_layer("old")
        events = list()
        layer.add_listener(events.append)
        layer.name = "new"
        self.assertEqual(ChangeType.LAYER_RENAMED, events[0].type)
        self.assertEqual(("old", "new"), events[0].detail)

    def test_view_plane_change_fires_parallax_changed(self):
        self.map.add_tile_layer("a")
        layer = self.map.add_tile_layer("b")
        layer.view_plane_distance = 10.0
        self.assertEqual(ChangeType.PARALLAX_CHANGED, self.events[-1].type)
        self.assertEqual(1, self.events[-1].index)

    def test_eye_distance_and_viewport(self):
        self.map.eye_distance = 5
        self.map.set_viewport(320, 240)
        self.assertEqual(5.0, self.map.eye_distance)
        self.assertEqual((320, 240), (self.map.viewport_width, self.map.viewport_height))
        kinds = [event.type for event in self.events]
        self.assertEqual([ChangeType.PARALLAX_CHANGED] * 2, kinds)

    def test_invalid_opacity_raises_error(self):
        layer = self.map.add_tile_layer()
        with self.assertRaises(ValueError):
            layer.opacity = 1.5
        self.assertEqual(1.0, layer.opacity)

    def test_orientation_from_token(self):
        self.map.orientation = "isometric"
        self.assertIs(Orientation.ISOMETRIC, self.map.orientation)
        with self.assertRaises(ValueError):
            self.map.orientation = "diagonal"


class TestMapTilesets(unittest.TestCase):
    def setUp(self):
        self.map = Map(2, 2, 32, 32)
        self.tileset = make_tileset("terrain", 2)
        self.map.add_tileset(self.tileset)

    def test_add_tileset_twice_is_ignored(self):
        self.map.add_tileset(self.tileset)
        self.assertEqual(1, len(self.map.tilesets))

    def test_remove_tileset_clears_cells(self):
        layer = self.map.add_tile_layer()
        layer.set_tile_at(1, 1, self.tileset.get_tile(1))
        self.map.remove_tileset(self.tileset)
        self.assertIsNone(layer.get_tile_at(1, 1))
        self.assertEqual([], self.map.tilesets)

    def test_remove_unknown_tileset_raises_error(self):
        with self.assertRaises(ValueError):
            self.map.remove_tileset(TileSet("other"))

    def test_swap_tilesets(self):
        other = make_tileset("other", 1)
        self.map.add_tileset(other)
        self.map.swap_tilesets(0, 1)
        self.assertEqual([other, self.tileset], self.map.tilesets)

    def test_find_tile_by_gid(self):
        other = make_tileset("other", 1)
        other.firstgid = 3
        self.map.add_tileset(other)
        self.assertIs(self.tileset.get_tile(1), self.map.find_tile_by_gid(2))
        self.assertIs(other.get_tile(0), self.map.find_tile_by_gid(3))
        self.assertIsNone(self.map.find_tile_by_gid(0))


class TestTileSet(unittest.TestCase):
    def test_add_tile_assigns_next_id(self):
        tileset = make_tileset("t", 2)
        tile = Tile()
        self.assertEqual(2, tileset.add_tile(tile))
        self.assertIs(tileset, tile.tileset)
        self.assertEqual(3, tileset.size())

    def test_add_tile_with_used_id_raises_error(self):
        tileset = make_tileset("t", 2)
        with self.assertRaises(ValueError):
            tileset.add_tile(Tile(id=1))

    def test_gaps_count_toward_max_tile_id(self):
        tileset = TileSet("t")
        tileset.add_tile(Tile(id=3))
        self.assertEqual(3, tileset.get_max_tile_id())
        self.assertEqual(1, tileset.size())
        self.assertIsNone(tileset.get_tile(0))

    def test_remove_tile_trims_trailing_gaps(self):
        tileset = make_tileset("t", 3)
        tileset.remove_tile(2)
        self.assertEqual(1, tileset.get_max_tile_id())

    def test_tile_gid(self):
        tileset = make_tileset("t", 3)
        tileset.firstgid = 10
        self.assertEqual(12, tileset.get_tile(2).gid)

    def test_import_tile_bitmap(self):
        tileset = TileSet("t")
        tileset.import_tile_bitmap("tiles.png", 32, 32, 64, 96)
        self.assertEqual(6, tileset.size())
        self.assertEqual((32, 64, 32, 32), tileset.get_tile(5).rect)
        self.assertEqual("tiles.png", tileset.tilebmp_file)

    def test_transparent_color(self):
        tileset = TileSet("t")
        tileset.set_transparent_color((255, 0, 255))
        self.assertEqual("ff00ff", tileset.transparent_color)
        tileset.set_transparent_color("#00FF00")
        self.assertEqual("00ff00", tileset.transparent_color)

    def test_images_are_shared_by_identity(self):
        tileset = make_tileset("t", 2)
        image = object()
        a = tileset.get_tile(0).set_image(image, "/a.png")
        b = tileset.get_tile(1).set_image(image)
        self.assertEqual(a, b)
        self.assertEqual("/a.png", tileset.get_image_source(a))
        self.assertFalse(tileset.is_one_for_one())

    def test_one_for_one(self):
        tileset = make_tileset("t", 2)
        for tile in tileset:
            tile.set_image(object())
        self.assertTrue(tileset.is_one_for_one())

    def test_tile_without_tileset_cannot_have_image(self):
        with self.assertRaises(ValueError):
            Tile().set_image(object())

    def test_rename_fires_tileset_changed(self):
        tileset = TileSet("t")
        events = list()
        tileset.add_listener(events.append)
        tileset.name = "u"
        self.assertEqual(ChangeType.TILESET_CHANGED, events[0].type)


class TestTileLayer(unittest.TestCase):
    def setUp(self):
        self.map = Map(4, 4, 32, 32)
        self.tileset = make_tileset("t", 2)
        self.map.add_tileset(self.tileset)
        self.tile = self.tileset.get_tile(0)
        self.layer = self.map.add_tile_layer("ground")

    def test_set_and_get(self):
        events = list()
        self.map.add_listener(events.append)
        self.layer.set_tile_at(2, 3, self.tile)
        self.assertIs(self.tile, self.layer.get_tile_at(2, 3))
        self.assertEqual(ChangeType.MAP_CHANGED, events[0].type)

    def test_outside_bounds_is_ignored(self):
        self.layer.set_tile_at(4, 0, self.tile)
        self.assertIsNone(self.layer.get_tile_at(4, 0))
        self.assertIsNone(self.layer.get_tile_at(-1, 0))

    def test_offset_layer_uses_map_coordinates(self):
        layer = TileLayer(2, 2)
        layer.set_offset(2, 1)
        layer.set_tile_at(3, 2, self.tile)
        self.assertEqual([(3, 2, self.tile)], list(layer.tiles()))
        self.assertFalse(layer.contains(0, 0))

    def test_iter_data_is_row_major(self):
        layer = TileLayer(2, 2)
        cells = [(x, y) for x, y, tile in layer.iter_data()]
        self.assertEqual([(0, 0), (1, 0), (0, 1), (1, 1)], cells)

    def test_replace_tile(self):
        other = self.tileset.get_tile(1)
        self.layer.set_tile_at(0, 0, self.tile)
        self.layer.replace_tile(self.tile, other)
        self.assertIs(other, self.layer.get_tile_at(0, 0))
        self.assertTrue(self.layer.is_used(other))
        self.assertFalse(self.layer.is_used(self.tile))

    def test_is_empty(self):
        self.assertTrue(self.layer.is_empty())
        self.layer.set_tile_at(0, 0, self.tile)
        self.assertFalse(self.layer.is_empty())

    def test_tile_size_follows_map_unless_overridden(self):
        self.assertEqual(32, self.layer.tile_width)
        self.layer.tile_width = 16
        self.assertEqual(16, self.layer.tile_width)
        self.assertTrue(self.layer.has_tile_size_override())

    def test_resize_moves_content(self):
        self.layer.set_tile_at(0, 0, self.tile)
        self.layer.set_tile_instance_properties(0, 0, {"door": "1"})
        self.map.resize(6, 6, 1, 2)
        self.assertEqual((6, 6), (self.layer.width, self.layer.height))
        self.assertIs(self.tile, self.layer.get_tile_at(1, 2))
        self.assertIsNone(self.layer.get_tile_at(0, 0))
        self.assertEqual({"door": "1"}, self.layer.get_tile_instance_properties(1, 2))

    def test_resize_drops_content_outside(self):
        self.layer.set_tile_at(3, 3, self.tile)
        self.layer.resize(2, 2, 0, 0)
        self.assertTrue(self.layer.is_empty())

    def test_tile_instance_properties_order(self):
        self.layer.set_tile_instance_properties(1, 1, {"b": "2"})
        self.layer.set_tile_instance_properties(3, 0, {"a": "1"})
        self.layer.set_tile_instance_properties(0, 2, {})
        cells = [(x, y) for x, y, p in self.layer.iter_tile_instance_properties()]
        self.assertEqual([(3, 0), (1, 1)], cells)

    def test_clone_is_independent(self):
        self.layer.set_tile_at(0, 0, self.tile)
        self.layer.add_listener(print)
        clone = self.layer.clone()
        clone.set_tile_at(0, 0, None)
        self.assertIs(self.tile, self.layer.get_tile_at(0, 0))
        self.assertEqual((), clone.listeners)
        self.assertEqual("ground", clone.name)

    def test_negative_size_raises_error(self):
        with self.assertRaises(ValueError):
            TileLayer(-1, 2)


class TestSelectionLayer(unittest.TestCase):
    def test_select_region(self):
        highlight = make_tileset("t", 1).get_tile(0)
        layer = SelectionLayer(4, 4, highlight_tile=highlight)
        self.assertIs(LayerType.SELECTION, layer.layer_type)
        layer.select_region(1, 1, 2, 1)
        self.assertEqual([(1, 1), (2, 1)], layer.selected_cells())
        layer.deselect(1, 1)
        self.assertFalse(layer.is_selected(1, 1))
        layer.clear_selection()
        self.assertEqual([], layer.selected_cells())

    def test_select_without_highlight_raises_error(self):
        with self.assertRaises(ValueError):
            SelectionLayer(4, 4).select(0, 0)


class TestObjectGroup(unittest.TestCase):
    def setUp(self):
        self.map = Map(4, 4, 32, 32)
        self.group = self.map.add_object_group("things")

    def test_get_object_at_returns_topmost(self):
        lower = self.group.add_object(MapObject(0, 0, 64, 64, name="lower"))
        upper = self.group.add_object(MapObject(16, 16, 16, 16, name="upper"))
        self.assertIs(upper, self.group.get_object_at(20, 20))
        self.assertIs(lower, self.group.get_object_at(40, 40))
        self.assertIsNone(self.group.get_object_at(100, 100))

    def test_remove_object(self):
        obj = self.group.add_object(MapObject(name="a"))
        self.assertFalse(self.group.is_empty())
        self.group.remove_object(obj)
        self.assertTrue(self.group.is_empty())

    def test_resize_moves_objects_by_tiles(self):
        obj = self.group.add_object(MapObject(10, 10))
        self.map.resize(5, 5, 1, 2)
        self.assertEqual((42, 74), (obj.x, obj.y))
        self.assertEqual(5, self.group.width)

    def test_clone_copies_objects(self):
        obj = self.group.add_object(MapObject(name="a"))
        obj.properties["k"] = "v"
        clone = self.group.clone()
        self.assertIsInstance(clone, ObjectGroup)
        clone.objects[0].properties["k"] = "w"
        self.assertEqual("v", obj.properties["k"])
