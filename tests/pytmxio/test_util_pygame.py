import os
import tempfile
import unittest
from xml.etree import ElementTree

from pytmxio import Map, PixelFormat, TileSet, TMXReader, TMXWriter

try:
    import pygame
except ImportError:
    pygame = None


def make_surface(color, size=(2, 2)):
    surface = pygame.Surface(size, pygame.SRCALPHA)
    surface.fill(color)
    return surface


@unittest.skipIf(pygame is None, "pygame is not installed")
class TestRawPixels(unittest.TestCase):
    def setUp(self):
        from pytmxio import util_pygame

        self.util = util_pygame
        self.image = make_surface((10, 20, 30, 40), (1, 1))

    def test_argb_big_endian(self):
        data = self.util.image_to_raw(self.image, PixelFormat.A8R8G8B8, True)
        self.assertEqual(bytes([40, 10, 20, 30]), data)

    def test_argb_little_endian(self):
        data = self.util.image_to_raw(self.image, PixelFormat.A8R8G8B8, False)
        self.assertEqual(bytes([30, 20, 10, 40]), data)

    def test_rgba_big_endian(self):
        data = self.util.image_to_raw(self.image, PixelFormat.R8G8B8A8, True)
        self.assertEqual(bytes([10, 20, 30, 40]), data)

    def test_rgb_little_endian(self):
        data = self.util.image_to_raw(self.image, PixelFormat.R8G8B8, False)
        self.assertEqual(bytes([30, 20, 10]), data)

    def test_raw_to_image(self):
        image = self.util.raw_to_image(bytes([30, 20, 10, 40]), 1, 1, PixelFormat.A8R8G8B8, False)
        self.assertEqual((1, 1), image.get_size())
        self.assertEqual(pygame.Color(10, 20, 30, 40), image.get_at((0, 0)))

    def test_raw_to_image_wrong_size_raises_error(self):
        with self.assertRaises(ValueError):
            self.util.raw_to_image(bytes(3), 1, 1, PixelFormat.A8R8G8B8)


@unittest.skipIf(pygame is None, "pygame is not installed")
class TestPng(unittest.TestCase):
    def test_png(self):
        from pytmxio import util_pygame

        data = util_pygame.image_to_png(make_surface((255, 0, 0, 255), (3, 2)))
        self.assertTrue(data.startswith(b"\x89PNG"))
        image = util_pygame.png_to_image(data)
        self.assertEqual((3, 2), image.get_size())
        self.assertEqual(pygame.Color(255, 0, 0, 255), image.get_at((2, 1)))


@unittest.skipIf(pygame is None, "pygame is not installed")
class TestEmbeddedImages(unittest.TestCase):
    def setUp(self):
        self.map = Map(1, 1, 2, 2)
        self.tileset = TileSet("sprites")
        self.map.add_tileset(self.tileset)
        for color in ((255, 0, 0, 255), (0, 0, 255, 128)):
            self.tileset.add_new_tile().set_image(make_surface(color))
        self.map.add_tile_layer().set_tile_at(0, 0, self.tileset.get_tile(1))

    def read_back(self, **kwargs):
        data = TMXWriter(**kwargs).dump_map(self.map)
        return ElementTree.fromstring(data), TMXReader().read_map_from_string(data)

    def assert_images_equal(self, result):
        tileset = result.tilesets[0]
        self.assertEqual(2, tileset.size())
        for tile in tileset:
            original = self.tileset.get_tile(tile.id).image
            self.assertEqual(original.get_size(), tile.image.get_size())
            self.assertEqual(original.get_at((0, 0)), tile.image.get_at((0, 0)))
        self.assertIs(tileset.get_tile(1), result.get_layer(0).get_tile_at(0, 0))

    def test_png_per_tile(self):
        root, result = self.read_back()
        images = root.findall("tileset/tile/image")
        self.assertEqual(["png", "png"], [image.get("format") for image in images])
        self.assertEqual("base64", images[0].find("data").get("encoding"))
        self.assertIsNone(images[0].get("id"))
        self.assert_images_equal(result)

    def test_raw_little_endian(self):
        root, result = self.read_back(image_format="RAW", image_is_big_endian=False)
        image = root.find("tileset/tile/image")
        self.assertEqual("raw", image.get("format"))
        self.assertEqual("A8R8G8B8", image.get("pixelFormat"))
        self.assertEqual("littleEndian", image.get("byteOrder"))
        self.assertEqual(("2", "2"), (image.get("width"), image.get("height")))
        self.assert_images_equal(result)

    def test_tileset_images_imply_tiles(self):
        root, result = self.read_back(tileset_images=True)
        node = root.find("tileset")
        self.assertEqual(["0", "1"], [image.get("id") for image in node.findall("image")])
        self.assertEqual([], node.findall("tile"))
        self.assert_images_equal(result)

    def test_tileset_images_with_tile_properties(self):
        self.tileset.get_tile(0).properties["solid"] = "1"
        root, result = self.read_back(tileset_images=True)
        tiles = root.findall("tileset/tile")
        self.assertEqual(["0", "1"], [tile.find("image").get("id") for tile in tiles])
        self.assertEqual({"solid": "1"}, result.tilesets[0].get_tile(0).properties)
        self.assert_images_equal(result)

    def test_images_without_source_are_written_to_files(self):
        with tempfile.TemporaryDirectory() as folder:
            filename = os.path.join(folder, "level.tmx")
            TMXWriter(embed_images=False, tile_image_prefix="sprite").write_map(self.map, filename)
            self.assertTrue(os.path.exists(os.path.join(folder, "sprite0.png")))
            self.assertTrue(os.path.exists(os.path.join(folder, "sprite1.png")))
            with open(filename, "rb") as fp:
                root = ElementTree.fromstring(fp.read())
            sources = [image.get("source") for image in root.findall("tileset/tile/image")]
            self.assertEqual(["sprite0.png", "sprite1.png"], sources)

            from pytmxio.util_pygame import load_pygame

            result = load_pygame(filename)
            self.assert_images_equal(result)
