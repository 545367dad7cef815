from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest
from unittest import mock

import requests
from PIL import Image

from core.drawables import CAPABILITIES, Kind
from core.editor import (
    AI_COLORIZE,
    AI_REMOVE_BG,
    MSG_AI_BUSY,
    MSG_COLORIZE_ERROR,
    MSG_COLORIZE_FAILED,
    MSG_NO_IMAGE,
    MSG_REMOVE_BG_ERROR,
    MSG_REMOVE_BG_FAILED,
    Editor,
)
from core.io import encode_png_base64, encode_png_data_url
from core.relay_client import RelayClient, RelayError
from core.state import EditorConfig, InteractionMode


class EditorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.relay = mock.Mock(spec=RelayClient)
        self.editor = Editor(relay=self.relay)
        self.notices = []
        self.busy = []
        self.editor.on_notice(self.notices.append)
        self.editor.on_busy(self.busy.append)

    def load(self, size=(400, 300), color=(200, 50, 50, 255)):
        return self.editor.load_image(Image.new("RGBA", size, color))

    @property
    def history_len(self) -> int:
        return len(self.editor.session.history)


class UploadTests(EditorTestCase):
    def test_starts_with_baseline_entry(self) -> None:
        self.assertEqual(self.history_len, 1)
        self.assertIsNone(self.editor.current_image)

    def test_load_fits_selects_and_records_once(self) -> None:
        img = self.load()
        self.assertIs(self.editor.current_image, img)
        self.assertIs(self.editor.scene.active_object(), img)
        self.assertAlmostEqual(img.scale_x, 1.9)
        self.assertEqual(self.history_len, 2)

    def test_new_upload_replaces_previous_image(self) -> None:
        first = self.load()
        self.editor.add_text("keep me")
        second = self.load(size=(10, 10))
        objects = self.editor.scene.get_objects()
        self.assertNotIn(first, objects)
        self.assertIn(second, objects)
        self.assertEqual(len(objects), 2)

    def test_open_image_from_disk(self) -> None:
        with TemporaryDirectory() as td:
            path = Path(td) / "in.png"
            Image.new("RGB", (8, 6), (1, 2, 3)).save(path)
            img = self.editor.open_image(str(path))
        self.assertIsNotNone(img)
        self.assertEqual(img.source.mode, "RGBA")

    def test_open_unreadable_file_notifies(self) -> None:
        with TemporaryDirectory() as td:
            path = Path(td) / "broken.png"
            path.write_bytes(b"not an image")
            self.assertIsNone(self.editor.open_image(str(path)))
        self.assertEqual(len(self.notices), 1)
        self.assertEqual(self.history_len, 1)

    def test_fit_image_recenters(self) -> None:
        img = self.load()
        img.translate(50, 50)
        self.assertTrue(self.editor.fit_image())
        self.assertEqual((img.left, img.top), (400, 300))


class ImageRequiredTests(EditorTestCase):
    def test_operations_without_image_notify(self) -> None:
        for op in (
            lambda: self.editor.apply_filter("grayscale"),
            self.editor.reset_filters,
            lambda: self.editor.set_rotation(45),
            self.editor.rotate_left,
            lambda: self.editor.set_scale(50),
            lambda: self.editor.resize(10, 10),
            self.editor.fit_image,
            self.editor.remove_background,
            self.editor.colorize,
        ):
            self.assertFalse(op())
        self.assertEqual(set(self.notices), {MSG_NO_IMAGE})
        self.assertEqual(self.history_len, 1)
        self.relay.remove_background.assert_not_called()
        self.relay.colorize.assert_not_called()


class FilterTransformTests(EditorTestCase):
    def test_apply_filter_replaces_filter_list(self) -> None:
        img = self.load()
        self.editor.apply_filter("sepia")
        self.editor.apply_filter("Invert")
        self.assertEqual(img.filters, ["invert"])

    def test_unknown_filter_is_ignored(self) -> None:
        img = self.load()
        self.assertFalse(self.editor.apply_filter("emboss"))
        self.assertEqual(img.filters, [])
        self.assertEqual(self.history_len, 2)

    def test_reset_filters_is_idempotent(self) -> None:
        img = self.load()
        self.editor.apply_filter("grayscale")
        before = self.history_len
        self.assertTrue(self.editor.reset_filters())
        once = self.editor.scene.rasterize().tobytes()
        self.assertFalse(self.editor.reset_filters())
        self.assertEqual(self.editor.scene.rasterize().tobytes(), once)
        self.assertEqual(img.filters, [])
        self.assertEqual(self.history_len, before + 1)

    def test_rotation(self) -> None:
        img = self.load()
        self.editor.set_rotation(45)
        self.assertEqual(img.angle, 45)
        self.editor.set_rotation(0)
        self.editor.rotate_left()
        self.assertEqual(img.angle, 270)
        self.editor.rotate_right()
        self.assertEqual(img.angle, 0)

    def test_scale_percent(self) -> None:
        img = self.load()
        self.editor.set_scale(50)
        self.assertEqual((img.scale_x, img.scale_y), (0.5, 0.5))

    def test_resize_to_exact_pixels(self) -> None:
        img = self.load()
        self.assertTrue(self.editor.resize(200, 100))
        self.assertAlmostEqual(img.scaled_width, 200)
        self.assertAlmostEqual(img.scaled_height, 100)
        self.assertFalse(self.editor.resize(0, 100))

    def test_each_transform_records_one_entry(self) -> None:
        self.load()
        before = self.history_len
        self.editor.set_rotation(10)
        self.editor.set_scale(120)
        self.assertEqual(self.history_len, before + 2)

    def test_filters_need_the_filter_capability(self) -> None:
        img = self.load()
        self.editor.apply_filter("sepia")
        with mock.patch.dict(CAPABILITIES, {Kind.IMAGE: frozenset()}):
            self.assertFalse(self.editor.apply_filter("invert"))
            self.assertFalse(self.editor.reset_filters())
        self.assertEqual(img.filters, ["sepia"])


class TextTests(EditorTestCase):
    def test_blank_text_is_ignored(self) -> None:
        self.assertIsNone(self.editor.add_text("   "))
        self.assertEqual(self.editor.scene.get_objects(), [])

    def test_add_text_uses_current_style(self) -> None:
        self.editor.update_text_style(font_size=48, color="#ff00ff")
        text = self.editor.add_text("Hello")
        self.assertEqual(text.font_size, 48)
        self.assertEqual(text.fill, "#ff00ff")
        self.assertEqual((text.left, text.top), (400, 300))
        self.assertIs(self.editor.selected_text(), text)

    def test_style_change_applies_to_selected_text(self) -> None:
        text = self.editor.add_text("Hello")
        width = text.width
        before = self.history_len
        self.assertTrue(self.editor.update_text_style(font_size=64))
        self.assertEqual(text.font_size, 64)
        self.assertGreater(text.width, width)
        self.assertEqual(self.history_len, before + 1)
        self.assertEqual(self.editor.selected_text_style().font_size, 64)

    def test_style_change_without_text_selection(self) -> None:
        self.load()
        self.assertFalse(self.editor.update_text_style(color="#000000"))
        self.assertIsNone(self.editor.selected_text_style())

    def test_edit_text(self) -> None:
        text = self.editor.add_text("old")
        self.assertTrue(self.editor.edit_text("new"))
        self.assertEqual(text.text, "new")
        self.assertFalse(self.editor.edit_text("new"))


class ExportClearTests(EditorTestCase):
    def test_export_png_writes_canvas(self) -> None:
        self.load()
        with TemporaryDirectory() as td:
            out = self.editor.export_png(str(Path(td) / "out.png"))
            with Image.open(out) as img:
                self.assertEqual(img.size, (800, 600))
                self.assertEqual(img.format, "PNG")

    def test_default_download_name(self) -> None:
        self.assertEqual(self.editor.config.download_filename, "photonx-edit.png")

    def test_data_url_export(self) -> None:
        self.assertTrue(self.editor.export_png_data_url().startswith("data:image/png;base64,"))

    def test_clear_resets_everything(self) -> None:
        self.load()
        self.editor.add_text("x")
        self.editor.set_mode(InteractionMode.CROP)

        self.editor.clear()

        self.assertEqual(self.editor.scene.get_objects(), [])
        self.assertIsNone(self.editor.current_image)
        self.assertEqual(self.history_len, 1)
        self.assertEqual(self.editor.mode, InteractionMode.MOVE)
        self.assertEqual(self.editor.scene.background, "#0b0c1a")


class AiRelayTests(EditorTestCase):
    def _result_b64(self) -> str:
        return encode_png_base64(Image.new("RGBA", (20, 10), (0, 255, 0, 128)))

    def test_remove_background_replaces_scene(self) -> None:
        self.load()
        self.editor.add_text("gone after relay")
        self.relay.remove_background.return_value = self._result_b64()
        before = self.history_len

        self.assertTrue(self.editor.remove_background())

        objects = self.editor.scene.get_objects()
        self.assertEqual(objects, [self.editor.current_image])
        self.assertEqual(self.editor.current_image.source.size, (20, 10))
        self.assertEqual(self.history_len, before + 1)
        self.assertEqual(self.busy, [True, False])
        sent = self.relay.remove_background.call_args[0][0]
        self.assertFalse(sent.startswith("data:"))

    def test_colorize_accepts_data_url(self) -> None:
        self.load()
        self.relay.colorize.return_value = encode_png_data_url(Image.new("RGBA", (4, 4)))
        self.assertTrue(self.editor.colorize())
        self.assertEqual(self.editor.current_image.source.size, (4, 4))

    def test_relay_refusal_keeps_scene(self) -> None:
        img = self.load()
        self.relay.remove_background.side_effect = RelayError("No image provided")
        before = self.history_len

        self.assertFalse(self.editor.remove_background())

        self.assertEqual(self.notices, [MSG_REMOVE_BG_FAILED])
        self.assertIs(self.editor.current_image, img)
        self.assertEqual(self.history_len, before)
        self.assertEqual(self.busy, [True, False])

    def test_transport_error(self) -> None:
        self.load()
        self.relay.remove_background.side_effect = requests.ConnectionError("down")
        self.assertFalse(self.editor.remove_background())
        self.assertEqual(self.notices, [MSG_REMOVE_BG_ERROR])
        self.assertFalse(self.editor.session.busy)

    def test_colorize_messages(self) -> None:
        self.load()
        self.relay.colorize.side_effect = RelayError("nope")
        self.editor.colorize()
        self.relay.colorize.side_effect = requests.Timeout("slow")
        self.editor.colorize()
        self.assertEqual(self.notices, [MSG_COLORIZE_FAILED, MSG_COLORIZE_ERROR])

    def test_unreadable_result(self) -> None:
        img = self.load()
        self.relay.colorize.return_value = "@@not-base64@@"
        self.assertFalse(self.editor.colorize())
        self.assertEqual(self.notices, [MSG_COLORIZE_FAILED])
        self.assertIs(self.editor.current_image, img)

    def test_concurrent_call_is_rejected(self) -> None:
        self.load()
        nested = []

        def reenter(_payload):
            nested.append(self.editor.remove_background())
            return self._result_b64()

        self.relay.colorize.side_effect = reenter
        self.assertTrue(self.editor.colorize())
        self.assertEqual(nested, [False])
        self.assertIn(MSG_AI_BUSY, self.notices)

    def test_relay_stays_claimed_until_finished(self) -> None:
        self.load()
        payload = self.editor.begin_ai(AI_COLORIZE)
        self.assertTrue(payload)
        self.assertEqual(self.busy, [True])

        self.assertIsNone(self.editor.begin_ai(AI_REMOVE_BG))
        self.assertEqual(self.notices, [MSG_AI_BUSY])

        self.assertTrue(self.editor.finish_ai(AI_COLORIZE, self._result_b64()))
        self.assertEqual(self.busy, [True, False])
        self.assertEqual(self.editor.current_image.source.size, (20, 10))
        self.assertIsNotNone(self.editor.begin_ai(AI_REMOVE_BG))
        self.relay.remove_background.assert_not_called()
        self.relay.colorize.assert_not_called()

    def test_finish_with_error_from_worker(self) -> None:
        img = self.load()
        self.editor.begin_ai(AI_REMOVE_BG)
        self.assertFalse(self.editor.finish_ai(AI_REMOVE_BG, error=requests.ConnectionError("down")))
        self.assertEqual(self.notices, [MSG_REMOVE_BG_ERROR])
        self.assertIs(self.editor.current_image, img)
        self.assertFalse(self.editor.session.busy)

    def test_relay_call_per_job(self) -> None:
        self.assertEqual(self.editor.relay_call(AI_REMOVE_BG), self.relay.remove_background)
        self.assertEqual(self.editor.relay_call(AI_COLORIZE), self.relay.colorize)
        with self.assertRaises(ValueError):
            self.editor.relay_call("sharpen")


class ConfigTests(unittest.TestCase):
    def test_from_env(self) -> None:
        cfg = EditorConfig.from_env({"PHOTONX_RELAY_URL": "http://relay:9000/", "PHOTONX_RELAY_TIMEOUT": "5"})
        self.assertEqual(cfg.relay_url, "http://relay:9000")
        self.assertEqual(cfg.relay_timeout, 5.0)

    def test_from_env_defaults(self) -> None:
        cfg = EditorConfig.from_env({"PHOTONX_RELAY_TIMEOUT": "soon"})
        self.assertEqual(cfg.relay_url, "http://localhost:3000")
        self.assertEqual(cfg.relay_timeout, 60.0)
        self.assertEqual(cfg.history_limit, 40)


if __name__ == "__main__":
    unittest.main()
