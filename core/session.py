from __future__ import annotations

import logging
from typing import Callable, List, Optional

from core.crop import CropSession
from core.drawables import ImageDrawable
from core.history import HistoryManager
from core.modes import ModeController
from core.scene import Scene
from core.state import BrushSettings, EditorConfig, TextStyle

logger = logging.getLogger(__name__)

NoticeListener = Callable[[str], None]
BusyListener = Callable[[bool], None]


class EditorSession:
    """
    Shared editing context handed to every mode handler and editor operation.

    Holds the scene, the history, the crop session, the mode controller,
    the tool settings and the Active Drawable Reference (`current_image`).
    User-visible notices and the busy indicator are delivered to listeners
    so nothing here depends on a widget toolkit.
    """
    def __init__(self, config: Optional[EditorConfig] = None, scene: Optional[Scene] = None):
        self.config = config or EditorConfig()
        self.scene = scene or Scene(self.config.canvas_w, self.config.canvas_h, self.config.background)
        self.brush = BrushSettings()
        self.text_style = TextStyle()
        self._current_image: Optional[ImageDrawable] = None
        self._notice_listeners: List[NoticeListener] = []
        self._busy_listeners: List[BusyListener] = []
        self.busy = False

        self.history = HistoryManager(self, limit=self.config.history_limit)
        self.history.attach(self.scene)
        self.crop = CropSession(self)
        self.modes = ModeController(self)

    @property
    def current_image(self) -> Optional[ImageDrawable]:
        return self._current_image

    @current_image.setter
    def current_image(self, image: Optional[ImageDrawable]) -> None:
        if image is not None and not isinstance(image, ImageDrawable):
            raise TypeError("current_image must be an ImageDrawable or None")
        self._current_image = image

    def on_notice(self, listener: NoticeListener) -> None:
        self._notice_listeners.append(listener)

    def on_busy(self, listener: BusyListener) -> None:
        self._busy_listeners.append(listener)

    def notify(self, message: str) -> None:
        logger.info("notice: %s", message)
        for listener in list(self._notice_listeners):
            listener(message)

    def set_busy(self, busy: bool) -> None:
        self.busy = bool(busy)
        for listener in list(self._busy_listeners):
            listener(self.busy)
