from __future__ import annotations

import json
import unittest

from PIL import Image

from core.drawables import ImageDrawable, PathDrawable, RectDrawable, TextDrawable
from core.scene import OBJECT_ADDED, OBJECT_MODIFIED, OBJECT_REMOVED, Scene, fit_image_to_canvas
from core.snapshot import Snapshot, SnapshotError, decode_snapshot


class FitImageTests(unittest.TestCase):
    def test_same_ratio_uses_height_branch(self) -> None:
        img = ImageDrawable(source=Image.new("RGBA", (400, 300)))
        scale = fit_image_to_canvas(img, 800, 600, 0.95)
        self.assertAlmostEqual(scale, 1.9)
        self.assertAlmostEqual(img.scale_x, 1.9)
        self.assertAlmostEqual(img.scale_y, 1.9)
        self.assertEqual((img.left, img.top), (400, 300))

    def test_wide_image_fits_width(self) -> None:
        img = ImageDrawable(source=Image.new("RGBA", (1600, 200)))
        scale = fit_image_to_canvas(img, 800, 600, 0.95)
        self.assertAlmostEqual(scale, 0.475)

    def test_tall_image_fits_height(self) -> None:
        img = ImageDrawable(source=Image.new("RGBA", (100, 1200)))
        scale = fit_image_to_canvas(img, 800, 600, 0.95)
        self.assertAlmostEqual(scale, 0.475)
        self.assertAlmostEqual(img.scaled_height, 570.0)


class SceneEventTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scene = Scene(100, 80)
        self.events = []
        for event in (OBJECT_ADDED, OBJECT_MODIFIED, OBJECT_REMOVED):
            self.scene.on(event, lambda e, obj: self.events.append(e))

    def test_add_and_remove_emit_events(self) -> None:
        text = TextDrawable(text="a")
        self.scene.add(text)
        self.scene.remove(text)
        self.assertEqual(self.events, [OBJECT_ADDED, OBJECT_REMOVED])

    def test_batch_coalesces_into_one_modified(self) -> None:
        with self.scene.batch():
            self.scene.add(TextDrawable(text="a"))
            self.scene.add(TextDrawable(text="b"))
            with self.scene.batch():
                self.scene.remove(self.scene.get_objects()[0])
        self.assertEqual(self.events, [OBJECT_MODIFIED])

    def test_empty_batch_emits_nothing(self) -> None:
        with self.scene.batch():
            pass
        self.assertEqual(self.events, [])

    def test_overlays_emit_nothing(self) -> None:
        self.scene.add_overlay(RectDrawable(width=5, height=5))
        self.assertEqual(self.events, [])

    def test_selecting_missing_object_raises(self) -> None:
        with self.assertRaises(ValueError):
            self.scene.set_active_object(TextDrawable(text="ghost"))

    def test_off_unsubscribes(self) -> None:
        scene = Scene(10, 10)
        seen = []

        def listener(e, obj):
            seen.append(e)

        scene.on(OBJECT_ADDED, listener)
        scene.off(OBJECT_ADDED, listener)
        scene.add(TextDrawable(text="x"))
        self.assertEqual(seen, [])


class HitTestTests(unittest.TestCase):
    def test_path_uses_precise_hit(self) -> None:
        scene = Scene(200, 200)
        path = PathDrawable.from_points([(0, 0), (100, 100)], stroke="#fff", stroke_width=4)
        scene.add(path)
        self.assertEqual(scene.objects_at(50, 51), [path])
        self.assertEqual(scene.objects_at(90, 10), [])

    def test_text_uses_bounding_box(self) -> None:
        scene = Scene(200, 200)
        text = TextDrawable(text="hello", left=100, top=100)
        scene.add(text)
        self.assertEqual(scene.objects_at(100, 100), [text])

    def test_objects_at_is_top_first(self) -> None:
        scene = Scene(200, 200)
        bottom = TextDrawable(text="bottom", left=100, top=100)
        top = TextDrawable(text="top", left=100, top=100)
        scene.add(bottom)
        scene.add(top)
        self.assertEqual(scene.objects_at(100, 100), [top, bottom])


class SnapshotTests(unittest.TestCase):
    def _populated_scene(self):
        scene = Scene(120, 90, "#112233")
        img = ImageDrawable(source=Image.new("RGBA", (12, 9), (255, 0, 0, 255)), left=60, top=45, filters=["sepia"])
        text = TextDrawable(text="caption", left=30, top=20, fill="#00ff00", font_size=20)
        path = PathDrawable.from_points([(5, 5), (40, 20)], stroke="rgba(0,0,255,0.4)", stroke_width=8)
        for obj in (img, text, path):
            scene.add(obj)
        return scene, img, text, path

    def test_round_trip_preserves_objects(self) -> None:
        scene, img, text, path = self._populated_scene()
        snap = scene.serialize(primary=img)
        self.assertEqual(snap.primary_uid, img.uid)

        other = Scene(10, 10)
        restored = []
        other.restore(snap, on_complete=restored.append)

        self.assertEqual((other.width, other.height, other.background), (120, 90, "#112233"))
        objs = other.get_objects()
        self.assertEqual([type(o) for o in objs], [ImageDrawable, TextDrawable, PathDrawable])
        self.assertEqual(objs[0].uid, img.uid)
        self.assertEqual(objs[0].filters, ["sepia"])
        self.assertEqual(objs[0].source.size, (12, 9))
        self.assertEqual(objs[1].text, "caption")
        self.assertEqual(objs[1].fill, "#00ff00")
        self.assertEqual(objs[2].points, path.points)
        self.assertEqual(objs[2].stroke, "rgba(0,0,255,0.4)")
        self.assertIs(restored[0], objs[0])

    def test_overlays_are_not_serialized(self) -> None:
        scene = Scene(50, 50)
        scene.add_overlay(RectDrawable(left=1, top=1, width=10, height=10))
        payload = json.loads(scene.serialize().payload)
        self.assertEqual(payload["objects"], [])

    def test_bad_payload_leaves_scene_intact(self) -> None:
        scene, img, _text, _path = self._populated_scene()
        with self.assertRaises(SnapshotError):
            scene.restore(Snapshot(payload="{not json"))
        self.assertEqual(len(scene.get_objects()), 3)

    def test_unknown_object_type(self) -> None:
        bad = Snapshot(payload=json.dumps({"canvas": {"width": 5, "height": 5}, "objects": [{"type": "circle"}]}))
        with self.assertRaises(SnapshotError):
            decode_snapshot(bad)

    def test_find_unknown_uid(self) -> None:
        scene, img, _text, _path = self._populated_scene()
        self.assertIs(scene.find(img.uid), img)
        self.assertIsNone(Scene(5, 5).find(img.uid))
        self.assertIsNone(scene.find(None))


class RasterizeTests(unittest.TestCase):
    def test_background_fills_canvas(self) -> None:
        scene = Scene(4, 4, "#0b0c1a")
        px = scene.rasterize().getpixel((2, 2))
        self.assertEqual(px, (11, 12, 26, 255))

    def test_overlays_only_in_render(self) -> None:
        scene = Scene(20, 20, "#000000")
        scene.add_overlay(RectDrawable(left=0, top=0, width=19, height=19, fill="#ffffff", stroke="#ffffff"))
        self.assertEqual(scene.rasterize().getpixel((10, 10)), (0, 0, 0, 255))
        self.assertEqual(scene.render().getpixel((10, 10)), (255, 255, 255, 255))

    def test_clear_resets_background_and_overlays(self) -> None:
        scene = Scene(10, 10, "#000000")
        scene.background = "#ffffff"
        scene.add(TextDrawable(text="x"))
        scene.add_overlay(RectDrawable(width=2, height=2))
        scene.clear()
        self.assertEqual(scene.get_objects(), [])
        self.assertEqual(scene.overlays, [])
        self.assertEqual(scene.background, "#000000")

    def test_data_url_is_png(self) -> None:
        scene = Scene(3, 3)
        self.assertTrue(scene.to_data_url().startswith("data:image/png;base64,"))


if __name__ == "__main__":
    unittest.main()
