from __future__ import annotations

import unittest
from unittest import mock

import requests
from PySide6.QtCore import QCoreApplication

from core.editor import AI_COLORIZE
from ui.relay_worker import RelayWorker


class RelayWorkerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls._app = QCoreApplication.instance() or QCoreApplication([])

    def _run(self, call):
        worker = RelayWorker(AI_COLORIZE, call, "eHl6")
        finished, failed = [], []
        worker.finished.connect(lambda job, reply: finished.append((job, reply)))
        worker.failed.connect(lambda job, error: failed.append((job, error)))
        worker.run()
        return finished, failed

    def test_reply_is_emitted_with_job(self) -> None:
        call = mock.Mock(return_value="QUJD")
        finished, failed = self._run(call)
        call.assert_called_once_with("eHl6")
        self.assertEqual(finished, [(AI_COLORIZE, "QUJD")])
        self.assertEqual(failed, [])

    def test_errors_are_handed_back(self) -> None:
        error = requests.ConnectionError("refused")
        finished, failed = self._run(mock.Mock(side_effect=error))
        self.assertEqual(finished, [])
        self.assertEqual(failed, [(AI_COLORIZE, error)])


if __name__ == "__main__":
    unittest.main()
