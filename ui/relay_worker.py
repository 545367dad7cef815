from __future__ import annotations
from typing import Callable

from PySide6.QtCore import QObject, Signal, Slot


class RelayWorker(QObject):
    """
    Runs one blocking relay call off the GUI thread.

    Move it to a QThread and connect `thread.started` to `run`. Exactly one
    of `finished` / `failed` is emitted, carrying the job name; receivers
    living on the GUI thread get them through queued connections.
    """
    finished = Signal(str, object)
    failed = Signal(str, object)

    def __init__(self, job: str, call: Callable[[str], str], payload: str):
        super().__init__()
        self._job = job
        self._call = call
        self._payload = payload

    @Slot()
    def run(self) -> None:
        try:
            reply = self._call(self._payload)
        except Exception as e:  # handed back to the editor on the GUI thread
            self.failed.emit(self._job, e)
            return
        self.finished.emit(self._job, reply)
