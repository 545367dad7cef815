from __future__ import annotations
from typing import Optional, Callable, Tuple

from PySide6.QtCore import Qt, QPoint, QPointF, QRectF, QTimer
from PySide6.QtGui import (
    QPainter, QImage, QPixmap, QColor, QPen, QPolygonF
)
from PySide6.QtWidgets import QWidget

from core.state import InteractionMode

MODE_HELP = {
    InteractionMode.MOVE: "Move: click to select, drag to move",
    InteractionMode.BRUSH: "Brush: drag to draw",
    InteractionMode.ERASER: "Eraser: click a stroke or text to remove it",
    InteractionMode.CROP: "Crop: drag a rectangle, then Apply Crop",
}


class CanvasWidget(QWidget):
    """
    Shows the rendered scene (QImage) with view zoom/pan.
    Supports:
      - left button: pointer down/move/up in canvas px, routed to the active mode
      - wheel: view zoom
      - middle-drag: pan view
      - drop: open an image file via on_drop_file(path)
    """
    def __init__(
        self,
        on_pointer_down: Callable[[float, float], None],
        on_pointer_move: Callable[[float, float], None],
        on_pointer_up: Callable[[float, float], None],
        on_drop_file: Optional[Callable[[str], None]] = None,
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)

        self._preview: Optional[QImage] = None
        self._out_size: Tuple[int, int] = (800, 600)

        # View transform
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0

        # Interaction
        self._dragging_left = False
        self._dragging_mid = False
        self._last_pos = QPoint()

        self.mode = InteractionMode.MOVE
        self._selection_outline: list[Tuple[float, float]] = []

        self._on_pointer_down = on_pointer_down
        self._on_pointer_move = on_pointer_move
        self._on_pointer_up = on_pointer_up
        self._on_drop_file = on_drop_file

        self._ants_phase = 0.0
        self._ants_timer = QTimer(self)
        self._ants_timer.setInterval(120)
        self._ants_timer.timeout.connect(self._advance_ants)

        self.setAcceptDrops(True)

    def set_preview(self, qimg: Optional[QImage], out_size: Tuple[int, int]) -> None:
        self._preview = qimg
        self._out_size = out_size
        self.update()

    def set_mode(self, mode: InteractionMode) -> None:
        self.mode = InteractionMode(mode)
        self.setCursor(Qt.ArrowCursor if self.mode == InteractionMode.MOVE else Qt.CrossCursor)
        self.update()

    def set_selection_outline(self, corners_canvas: Optional[list[Tuple[float, float]]]) -> None:
        self._selection_outline = list(corners_canvas or [])
        if self._selection_outline:
            if not self._ants_timer.isActive():
                self._ants_timer.start()
        elif self._ants_timer.isActive():
            self._ants_timer.stop()
        self.update()

    def reset_view(self) -> None:
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0
        self.update()

    def _canvas_rect(self) -> QRectF:
        out_w, out_h = self._out_size
        cx = self.width() * 0.5 + self._view_pan_x
        cy = self.height() * 0.5 + self._view_pan_y
        draw_w = out_w * self._view_zoom
        draw_h = out_h * self._view_zoom
        return QRectF(cx - draw_w * 0.5, cy - draw_h * 0.5, draw_w, draw_h)

    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)

        # Background
        p.fillRect(self.rect(), QColor(30, 30, 30))

        if self._preview is None:
            p.setPen(QPen(QColor(220, 220, 220)))
            p.drawText(self.rect(), Qt.AlignCenter, "Drop an image or File → Open…")
            return

        r = self._canvas_rect()

        # Checkerboard underlay (to visualize transparency)
        self._draw_checkerboard(p, r, int(16 * self._view_zoom))

        pm = QPixmap.fromImage(self._preview)
        p.drawPixmap(int(r.left()), int(r.top()), int(r.width()), int(r.height()), pm)

        # Canvas border
        p.setPen(QPen(QColor(240, 240, 240), 1))
        p.drawRect(r)

        if self._selection_outline:
            self._draw_selection_outline(p, r)

        # Help overlay
        p.setPen(QPen(QColor(220, 220, 220)))
        msg = MODE_HELP.get(self.mode, "") + " | Wheel: view zoom | Middle-drag: pan view"
        p.drawText(10, self.height() - 10, msg)

    def _draw_checkerboard(self, p: QPainter, r: QRectF, cell: int) -> None:
        if cell < 4:
            cell = 4
        c1 = QColor(60, 60, 60)
        c2 = QColor(90, 90, 90)

        x0 = int(r.left())
        y0 = int(r.top())
        x1 = int(r.right())
        y1 = int(r.bottom())

        for y in range(y0, y1, cell):
            for x in range(x0, x1, cell):
                use_c1 = ((x // cell) + (y // cell)) % 2 == 0
                p.fillRect(x, y, cell, cell, c1 if use_c1 else c2)

    def _draw_selection_outline(self, p: QPainter, r: QRectF) -> None:
        out_w, out_h = self._out_size
        if out_w <= 0 or out_h <= 0:
            return
        poly = QPolygonF([
            QPointF(r.left() + (x / float(out_w)) * r.width(), r.top() + (y / float(out_h)) * r.height())
            for x, y in self._selection_outline
        ])

        outer = QPen(QColor(255, 255, 255), 1)
        outer.setDashPattern([4, 4])
        outer.setDashOffset(self._ants_phase)
        p.setPen(outer)
        p.drawPolygon(poly)

        inner = QPen(QColor(0, 0, 0), 1)
        inner.setDashPattern([4, 4])
        inner.setDashOffset(self._ants_phase + 4.0)
        p.setPen(inner)
        p.drawPolygon(poly)

    def _widget_to_canvas_xy(self, pos: QPointF) -> Tuple[float, float]:
        """
        Convert widget coords to canvas coords. Points outside the canvas are
        not clamped so strokes and crop rectangles can run past the edge.
        """
        out_w, out_h = self._out_size
        r = self._canvas_rect()
        if r.width() <= 0 or r.height() <= 0:
            return (0.0, 0.0)
        u = (pos.x() - r.left()) / r.width()
        v = (pos.y() - r.top()) / r.height()
        return (u * out_w, v * out_h)

    def wheelEvent(self, e) -> None:
        delta = e.angleDelta().y()
        if delta == 0:
            return

        factor = 1.1 if delta > 0 else (1.0 / 1.1)
        self._view_zoom = max(0.05, min(20.0, self._view_zoom * factor))
        self.update()
        e.accept()

    def mousePressEvent(self, e) -> None:
        self._last_pos = e.position().toPoint()

        if e.button() == Qt.LeftButton:
            if self._preview is None:
                return
            self._dragging_left = True
            x, y = self._widget_to_canvas_xy(e.position())
            self._on_pointer_down(x, y)
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = True

    def mouseMoveEvent(self, e) -> None:
        pos = e.position().toPoint()
        dx = pos.x() - self._last_pos.x()
        dy = pos.y() - self._last_pos.y()
        self._last_pos = pos

        if self._dragging_left:
            x, y = self._widget_to_canvas_xy(e.position())
            self._on_pointer_move(x, y)
        elif self._dragging_mid:
            self._view_pan_x += dx
            self._view_pan_y += dy
            self.update()

    def mouseReleaseEvent(self, e) -> None:
        if e.button() == Qt.LeftButton:
            if self._dragging_left:
                self._dragging_left = False
                x, y = self._widget_to_canvas_xy(e.position())
                self._on_pointer_up(x, y)
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = False

    # ---------------------------
    # Drag & drop support
    # ---------------------------
    def dragEnterEvent(self, e) -> None:
        if e.mimeData().hasUrls():
            e.acceptProposedAction()

    def dropEvent(self, e) -> None:
        urls = e.mimeData().urls()
        if not urls or self._on_drop_file is None:
            return
        path = urls[0].toLocalFile()
        if path:
            self._on_drop_file(path)

    def _advance_ants(self) -> None:
        self._ants_phase = (self._ants_phase + 1.0) % 8.0
        self.update()
