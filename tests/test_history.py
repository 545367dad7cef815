from __future__ import annotations

import unittest
from unittest import mock

from PIL import Image

from core.editor import Editor
from core.relay_client import RelayClient
from core.session import EditorSession
from core.snapshot import SnapshotError
from core.state import EditorConfig


def _editor() -> Editor:
    return Editor(relay=mock.Mock(spec=RelayClient))


class HistoryBufferTests(unittest.TestCase):
    def test_buffer_never_exceeds_limit(self) -> None:
        session = EditorSession()
        for _ in range(50):
            session.history.save_state()
        self.assertEqual(len(session.history), 40)

    def test_custom_limit_from_config(self) -> None:
        session = EditorSession(EditorConfig(history_limit=3))
        for _ in range(5):
            session.history.save_state()
        self.assertEqual(len(session.history), 3)

    def test_oldest_entry_is_evicted_first(self) -> None:
        session = EditorSession(EditorConfig(history_limit=2))
        session.history.save_state()
        first = session.history.entries[0]
        session.history.save_state()
        session.history.save_state()
        self.assertFalse(any(entry is first for entry in session.history.entries))

    def test_save_is_suppressed_while_restoring(self) -> None:
        session = EditorSession()
        session.history.is_restoring = True
        self.assertFalse(session.history.save_state())
        self.assertEqual(len(session.history), 0)


class UndoTests(unittest.TestCase):
    def test_undo_on_empty_buffer_is_a_noop(self) -> None:
        session = EditorSession()
        self.assertFalse(session.history.undo())
        self.assertFalse(session.history.is_restoring)

    def test_undo_steps_back_one_entry(self) -> None:
        editor = _editor()
        editor.add_text("first")
        editor.add_text("second")
        self.assertEqual(len(editor.session.history), 3)

        self.assertTrue(editor.undo())

        self.assertEqual(len(editor.session.history), 2)
        texts = [obj.text for obj in editor.scene.get_objects()]
        self.assertEqual(texts, ["first"])
        self.assertFalse(editor.session.history.is_restoring)

    def test_undo_with_single_entry_reapplies_it(self) -> None:
        editor = _editor()
        self.assertEqual(len(editor.session.history), 1)

        self.assertTrue(editor.undo())

        self.assertEqual(len(editor.session.history), 0)
        self.assertEqual(editor.scene.get_objects(), [])

    def test_restore_does_not_record_new_entries(self) -> None:
        editor = _editor()
        editor.add_text("a")
        editor.add_text("b")
        editor.add_text("c")
        editor.undo()
        editor.undo()
        self.assertEqual(len(editor.session.history), 2)

    def test_undo_relinks_current_image(self) -> None:
        editor = _editor()
        editor.load_image(Image.new("RGBA", (40, 30), (255, 0, 0, 255)))
        editor.apply_filter("grayscale")

        editor.undo()

        img = editor.current_image
        self.assertIsNotNone(img)
        self.assertIn(img, editor.scene.get_objects())
        self.assertEqual(img.filters, [])
        # Filter actions keep working on the restored object
        self.assertTrue(editor.apply_filter("invert"))
        self.assertEqual(editor.current_image.filters, ["invert"])

    def test_undo_past_upload_clears_current_image(self) -> None:
        editor = _editor()
        editor.load_image(Image.new("RGBA", (40, 30), (255, 0, 0, 255)))
        editor.undo()
        self.assertIsNone(editor.current_image)

    def test_failed_restore_keeps_entry_and_clears_flag(self) -> None:
        editor = _editor()
        editor.add_text("keep")
        before = len(editor.session.history)

        with mock.patch.object(editor.scene, "restore", side_effect=SnapshotError("boom")):
            self.assertFalse(editor.undo())

        self.assertEqual(len(editor.session.history), before)
        self.assertFalse(editor.session.history.is_restoring)
        self.assertEqual(len(editor.scene.get_objects()), 1)

    def test_edit_after_draining_buffer_can_be_undone(self) -> None:
        editor = _editor()
        editor.load_image(Image.new("RGBA", (40, 30), (255, 0, 0, 255)))
        editor.undo()
        editor.undo()
        self.assertEqual(len(editor.session.history), 0)

        editor.add_text("hello")
        self.assertEqual(len(editor.session.history), 2)

        self.assertTrue(editor.undo())
        self.assertEqual(len(editor.session.history), 1)
        self.assertEqual(editor.scene.get_objects(), [])

    def test_reset_forgets_drained_entry(self) -> None:
        editor = _editor()
        editor.add_text("old")
        editor.undo()
        editor.undo()
        editor.clear()
        self.assertEqual(len(editor.session.history), 1)
        editor.add_text("new")
        self.assertEqual(len(editor.session.history), 2)

    def test_reset_empties_buffer(self) -> None:
        editor = _editor()
        editor.add_text("x")
        editor.session.history.reset()
        self.assertFalse(editor.session.history.can_undo())


if __name__ == "__main__":
    unittest.main()
