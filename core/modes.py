from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from core.drawables import Drawable, PathDrawable
from core.state import BrushConfig, InteractionMode, derive_brush_config

if TYPE_CHECKING:
    from core.session import EditorSession

logger = logging.getLogger(__name__)


class ModeHandler:
    """Pointer handling for one interaction mode. Only the active handler gets events."""
    mode: InteractionMode

    def enter(self, session: "EditorSession") -> None:
        pass

    def exit(self, session: "EditorSession") -> None:
        pass

    def pointer_down(self, session: "EditorSession", x: float, y: float) -> None:
        pass

    def pointer_move(self, session: "EditorSession", x: float, y: float) -> None:
        pass

    def pointer_up(self, session: "EditorSession", x: float, y: float) -> None:
        pass


class MoveMode(ModeHandler):
    mode = InteractionMode.MOVE

    def __init__(self) -> None:
        self._dragging: Optional[Drawable] = None
        self._last: Tuple[float, float] = (0.0, 0.0)
        self._moved = False

    def enter(self, session: "EditorSession") -> None:
        session.scene.selection_enabled = True

    def exit(self, session: "EditorSession") -> None:
        self._finish_drag(session)

    def pointer_down(self, session: "EditorSession", x: float, y: float) -> None:
        scene = session.scene
        if not scene.selection_enabled:
            return
        target = next((obj for obj in scene.objects_at(x, y) if obj.selectable), None)
        scene.set_active_object(target)
        self._dragging = target
        self._last = (x, y)
        self._moved = False
        scene.render()

    def pointer_move(self, session: "EditorSession", x: float, y: float) -> None:
        if self._dragging is None:
            return
        dx = x - self._last[0]
        dy = y - self._last[1]
        self._last = (x, y)
        if dx == 0 and dy == 0:
            return
        self._dragging.translate(dx, dy)
        self._moved = True
        session.scene.render(high_quality=False)

    def pointer_up(self, session: "EditorSession", x: float, y: float) -> None:
        if self._finish_drag(session):
            session.scene.render()

    def _finish_drag(self, session: "EditorSession") -> bool:
        obj = self._dragging
        moved = self._moved
        self._dragging = None
        self._moved = False
        if obj is not None and moved:
            session.scene.modified(obj)
            return True
        return False


class BrushMode(ModeHandler):
    mode = InteractionMode.BRUSH

    def __init__(self) -> None:
        self.config: Optional[BrushConfig] = None
        self._points: List[Tuple[float, float]] = []
        self._preview: Optional[PathDrawable] = None

    def enter(self, session: "EditorSession") -> None:
        session.scene.selection_enabled = False
        session.scene.discard_active_object()
        self.refresh_config(session)

    def exit(self, session: "EditorSession") -> None:
        self._drop_preview(session)

    def refresh_config(self, session: "EditorSession") -> BrushConfig:
        self.config = derive_brush_config(session.brush)
        return self.config

    def pointer_down(self, session: "EditorSession", x: float, y: float) -> None:
        if self.config is None:
            self.refresh_config(session)
        self._drop_preview(session)
        self._points = [(x, y)]
        self._update_preview(session)

    def pointer_move(self, session: "EditorSession", x: float, y: float) -> None:
        if not self._points:
            return
        if self._points[-1] == (x, y):
            return
        self._points.append((x, y))
        self._update_preview(session)

    def pointer_up(self, session: "EditorSession", x: float, y: float) -> None:
        if not self._points:
            return
        points = list(self._points)
        self._drop_preview(session)
        config = self.config or self.refresh_config(session)
        path = PathDrawable.from_points(points, stroke=config.color, stroke_width=config.width)
        session.scene.add(path)
        session.scene.render()

    def _update_preview(self, session: "EditorSession") -> None:
        config = self.config or self.refresh_config(session)
        session.scene.remove_overlay(self._preview)
        self._preview = PathDrawable.from_points(self._points, stroke=config.color, stroke_width=config.width)
        session.scene.add_overlay(self._preview)
        session.scene.render(high_quality=False)

    def _drop_preview(self, session: "EditorSession") -> None:
        had_preview = self._preview is not None
        session.scene.remove_overlay(self._preview)
        self._preview = None
        self._points = []
        if had_preview:
            session.scene.render()


class EraserMode(ModeHandler):
    mode = InteractionMode.ERASER

    def enter(self, session: "EditorSession") -> None:
        session.scene.selection_enabled = False
        session.scene.discard_active_object()

    def pointer_down(self, session: "EditorSession", x: float, y: float) -> None:
        erase_at(session, x, y)


class CropMode(ModeHandler):
    mode = InteractionMode.CROP

    def enter(self, session: "EditorSession") -> None:
        session.scene.selection_enabled = False
        session.crop.start()

    def exit(self, session: "EditorSession") -> None:
        session.crop.cancel()

    def pointer_down(self, session: "EditorSession", x: float, y: float) -> None:
        session.crop.pointer_down(x, y)

    def pointer_move(self, session: "EditorSession", x: float, y: float) -> None:
        session.crop.pointer_move(x, y)

    def pointer_up(self, session: "EditorSession", x: float, y: float) -> None:
        session.crop.pointer_up(x, y)


def erase_at(session: "EditorSession", x: float, y: float) -> int:
    """Remove every object under the point except the primary image. Returns the count."""
    scene = session.scene
    primary = session.current_image
    hits = [obj for obj in scene.objects_at(x, y) if obj is not primary]
    if not hits:
        return 0
    with scene.batch():
        for obj in hits:
            scene.remove(obj)
    scene.render()
    return len(hits)


class ModeController:
    """
    Exactly one interaction mode is active. Pointer events go to the active
    mode's handler only; switching modes runs the old handler's `exit`
    before the new one's `enter`.
    """
    def __init__(self, session: "EditorSession"):
        self._session = session
        self._handlers: Dict[InteractionMode, ModeHandler] = {
            InteractionMode.MOVE: MoveMode(),
            InteractionMode.BRUSH: BrushMode(),
            InteractionMode.ERASER: EraserMode(),
            InteractionMode.CROP: CropMode(),
        }
        self._mode = InteractionMode.MOVE
        self._handlers[self._mode].enter(session)

    @property
    def mode(self) -> InteractionMode:
        return self._mode

    @property
    def handler(self) -> ModeHandler:
        return self._handlers[self._mode]

    def handler_for(self, mode: InteractionMode) -> ModeHandler:
        return self._handlers[InteractionMode(mode)]

    def set_mode(self, mode: InteractionMode) -> InteractionMode:
        new_mode = InteractionMode(mode)
        self._handlers[self._mode].exit(self._session)
        self._mode = new_mode
        self._handlers[new_mode].enter(self._session)
        logger.debug("interaction mode -> %s", new_mode.value)
        return new_mode

    def brush_settings_changed(self) -> None:
        if self._mode == InteractionMode.BRUSH:
            handler = self._handlers[InteractionMode.BRUSH]
            if isinstance(handler, BrushMode):
                handler.refresh_config(self._session)

    def pointer_down(self, x: float, y: float) -> None:
        self.handler.pointer_down(self._session, float(x), float(y))

    def pointer_move(self, x: float, y: float) -> None:
        self.handler.pointer_move(self._session, float(x), float(y))

    def pointer_up(self, x: float, y: float) -> None:
        self.handler.pointer_up(self._session, float(x), float(y))
