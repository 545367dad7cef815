from __future__ import annotations
from pathlib import Path
from typing import Callable, Optional
from PIL import Image

from PySide6.QtCore import Qt, QThread, Slot
from PySide6.QtGui import QAction, QColor, QImage, QKeySequence, QIcon, QPixmap
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QFileDialog, QVBoxLayout, QHBoxLayout, QLabel,
    QSpinBox, QSlider, QPushButton, QMessageBox, QDockWidget, QComboBox, QLineEdit,
    QColorDialog, QButtonGroup, QGroupBox, QScrollArea
)

from core.editor import AI_COLORIZE, AI_REMOVE_BG, Editor
from core.filters import FILTER_NAMES
from core.scene import SELECTION_CHANGED
from core.state import BrushType, InteractionMode
from ui.canvas_widget import CanvasWidget
from ui.relay_worker import RelayWorker

FONT_FAMILIES = ("Poppins", "Arial", "Helvetica", "Times New Roman", "Courier New", "Georgia", "Verdana")


def pil_rgba_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class MainWindow(QMainWindow):
    def __init__(self, editor: Editor, logo_path: Optional[Path] = None):
        super().__init__()
        self.editor = editor
        self._logo_path = logo_path or Path(__file__).resolve().parent.parent / "assets" / "Logo.png"
        if self._logo_path.exists():
            self.setWindowIcon(QIcon(str(self._logo_path)))
        self.setWindowTitle("PhotonX Editor")

        self._act_undo: Optional[QAction] = None
        self._syncing = False
        self._ai_thread: Optional[QThread] = None
        self._ai_worker: Optional[RelayWorker] = None

        # Central
        self.canvas = CanvasWidget(
            on_pointer_down=self.editor.pointer_down,
            on_pointer_move=self.editor.pointer_move,
            on_pointer_up=self.editor.pointer_up,
            on_drop_file=self._load_path,
        )

        central = QWidget()
        lay = QVBoxLayout()
        lay.addWidget(self.canvas)
        central.setLayout(lay)
        self.setCentralWidget(central)

        # Menu
        self._build_menu()

        # Right-side controls dock
        self._build_controls_dock()

        self.editor.on_render(self._on_render)
        self.editor.on_notice(self._show_notice)
        self.editor.on_busy(self._on_busy)
        self.editor.scene.on(SELECTION_CHANGED, self._on_selection_changed)

        self.resize(1200, 800)
        self.editor.scene.render()

    # ---------------------------
    # Menu / Actions
    # ---------------------------
    def _build_menu(self) -> None:
        open_act = QAction("Open…", self)
        open_act.setShortcut(QKeySequence.StandardKey.Open)
        open_act.triggered.connect(self.open_file)

        download_act = QAction("Download PNG…", self)
        download_act.setShortcut(QKeySequence.StandardKey.Save)
        download_act.triggered.connect(self.download)

        clear_act = QAction("Clear Canvas", self)
        clear_act.triggered.connect(self.clear_canvas)

        reset_view = QAction("Reset View", self)
        reset_view.triggered.connect(self.canvas.reset_view)

        self._act_undo = QAction("Undo", self)
        self._act_undo.setShortcut(QKeySequence.StandardKey.Undo)
        self._act_undo.triggered.connect(self._undo)

        fit_act = QAction("Fit Image to Canvas", self)
        fit_act.setShortcut("F")
        fit_act.triggered.connect(self.editor.fit_image)

        quit_act = QAction("Quit", self)
        quit_act.setShortcut(QKeySequence.StandardKey.Quit)
        quit_act.triggered.connect(self.close)

        mfile = self.menuBar().addMenu("File")
        mfile.addAction(open_act)
        mfile.addAction(download_act)
        mfile.addAction(clear_act)
        mfile.addSeparator()
        mfile.addAction(quit_act)

        medit = self.menuBar().addMenu("Edit")
        medit.addAction(self._act_undo)

        mview = self.menuBar().addMenu("View")
        mview.addAction(reset_view)
        mview.addAction(fit_act)

    def keyPressEvent(self, e) -> None:
        if self.editor.mode == InteractionMode.CROP:
            if e.key() in (Qt.Key_Return, Qt.Key_Enter):
                self._apply_crop()
                e.accept()
                return
            if e.key() == Qt.Key_Escape:
                self._cancel_crop()
                e.accept()
                return
        super().keyPressEvent(e)

    # ---------------------------
    # Controls dock
    # ---------------------------
    def _build_controls_dock(self) -> None:
        dock = QDockWidget("Controls", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)

        root = QWidget()
        root_lay = QVBoxLayout(root)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        panel = QWidget()
        v = QVBoxLayout(panel)

        if self._logo_path.exists():
            logo_label = QLabel()
            logo_label.setAlignment(Qt.AlignCenter)
            logo_pm = QPixmap(str(self._logo_path))
            if not logo_pm.isNull():
                logo_label.setPixmap(logo_pm.scaled(180, 64, Qt.KeepAspectRatio, Qt.SmoothTransformation))
                v.addWidget(logo_label)

        g_tools, gl_tools = self._make_group("Tools")
        tools_row = QHBoxLayout()
        self.mode_group = QButtonGroup(self)
        self.mode_group.setExclusive(True)
        self._mode_buttons: dict[InteractionMode, QPushButton] = {}
        for mode, label in (
            (InteractionMode.MOVE, "Move"),
            (InteractionMode.BRUSH, "Brush"),
            (InteractionMode.ERASER, "Eraser"),
            (InteractionMode.CROP, "Crop"),
        ):
            btn = QPushButton(label)
            btn.setCheckable(True)
            btn.clicked.connect(lambda _=False, m=mode: self._set_mode(m))
            self.mode_group.addButton(btn)
            self._mode_buttons[mode] = btn
            tools_row.addWidget(btn)
        self._mode_buttons[InteractionMode.MOVE].setChecked(True)
        gl_tools.addLayout(tools_row)
        v.addWidget(g_tools)

        g_brush, gl_brush = self._make_group("Brush")
        self.brush_type_combo = QComboBox()
        for brush_type in BrushType:
            self.brush_type_combo.addItem(brush_type.value.capitalize(), userData=brush_type.value)
        self.brush_type_combo.currentIndexChanged.connect(self._on_brush_changed)
        self._add_labeled_row(gl_brush, "Type", self.brush_type_combo)
        self.brush_size_spin = QSpinBox()
        self.brush_size_spin.setRange(1, 200)
        self.brush_size_spin.setValue(int(self.editor.session.brush.size))
        self.brush_size_spin.valueChanged.connect(self._on_brush_changed)
        self._add_labeled_row(gl_brush, "Size", self.brush_size_spin)
        self.brush_color_btn = self._make_color_button(self.editor.session.brush.color, self._pick_brush_color)
        self._add_labeled_row(gl_brush, "Color", self.brush_color_btn)
        v.addWidget(g_brush)

        g_text, gl_text = self._make_group("Text")
        self.text_edit = QLineEdit()
        self.text_edit.setPlaceholderText("Type text…")
        self.text_edit.returnPressed.connect(self._add_text)
        gl_text.addWidget(self.text_edit)
        text_btn_row = QHBoxLayout()
        self.add_text_btn = QPushButton("Add Text")
        self.add_text_btn.clicked.connect(self._add_text)
        text_btn_row.addWidget(self.add_text_btn)
        self.update_text_btn = QPushButton("Update Selected")
        self.update_text_btn.clicked.connect(self._edit_selected_text)
        text_btn_row.addWidget(self.update_text_btn)
        gl_text.addLayout(text_btn_row)
        self.font_size_spin = QSpinBox()
        self.font_size_spin.setRange(6, 400)
        self.font_size_spin.setValue(int(self.editor.session.text_style.font_size))
        self.font_size_spin.valueChanged.connect(self._on_font_size_changed)
        self._add_labeled_row(gl_text, "Size", self.font_size_spin)
        self.font_family_combo = QComboBox()
        self.font_family_combo.addItems(list(FONT_FAMILIES))
        self.font_family_combo.currentTextChanged.connect(self._on_font_family_changed)
        self._add_labeled_row(gl_text, "Font", self.font_family_combo)
        self.text_color_btn = self._make_color_button(self.editor.session.text_style.color, self._pick_text_color)
        self._add_labeled_row(gl_text, "Color", self.text_color_btn)
        v.addWidget(g_text)

        g_filters, gl_filters = self._make_group("Filters")
        filter_row = QHBoxLayout()
        for name in FILTER_NAMES:
            btn = QPushButton(name.capitalize())
            btn.clicked.connect(lambda _=False, n=name: self.editor.apply_filter(n))
            filter_row.addWidget(btn)
        gl_filters.addLayout(filter_row)
        self.reset_filters_btn = QPushButton("Reset Filters")
        self.reset_filters_btn.clicked.connect(self.editor.reset_filters)
        gl_filters.addWidget(self.reset_filters_btn)
        v.addWidget(g_filters)

        g_tx, gl_tx = self._make_group("Transform")
        # Sliders only report on release so a drag is one history entry
        self.rotation_slider = QSlider(Qt.Horizontal)
        self.rotation_slider.setRange(0, 360)
        self.rotation_slider.setTracking(False)
        self.rotation_slider.valueChanged.connect(self._on_rotation_changed)
        self._add_labeled_row(gl_tx, "Rotate", self.rotation_slider)
        self.scale_slider = QSlider(Qt.Horizontal)
        self.scale_slider.setRange(10, 300)
        self.scale_slider.setValue(100)
        self.scale_slider.setTracking(False)
        self.scale_slider.valueChanged.connect(self._on_scale_changed)
        self._add_labeled_row(gl_tx, "Scale", self.scale_slider)
        size_row = QHBoxLayout()
        size_row.addWidget(QLabel("W"))
        self.resize_w = QSpinBox()
        self.resize_w.setRange(1, 20000)
        size_row.addWidget(self.resize_w)
        size_row.addWidget(QLabel("H"))
        self.resize_h = QSpinBox()
        self.resize_h.setRange(1, 20000)
        size_row.addWidget(self.resize_h)
        self.resize_btn = QPushButton("Resize")
        self.resize_btn.clicked.connect(self._apply_resize)
        size_row.addWidget(self.resize_btn)
        gl_tx.addLayout(size_row)
        tx_btn_row = QHBoxLayout()
        self.rot_l_btn = QPushButton("Rotate -90")
        self.rot_l_btn.clicked.connect(self.editor.rotate_left)
        tx_btn_row.addWidget(self.rot_l_btn)
        self.rot_r_btn = QPushButton("Rotate +90")
        self.rot_r_btn.clicked.connect(self.editor.rotate_right)
        tx_btn_row.addWidget(self.rot_r_btn)
        self.fit_btn = QPushButton("Fit")
        self.fit_btn.clicked.connect(self.editor.fit_image)
        tx_btn_row.addWidget(self.fit_btn)
        gl_tx.addLayout(tx_btn_row)
        v.addWidget(g_tx)

        g_crop, gl_crop = self._make_group("Crop")
        crop_row = QHBoxLayout()
        self.crop_start_btn = QPushButton("Start Crop")
        self.crop_start_btn.clicked.connect(lambda: self._set_mode(InteractionMode.CROP))
        crop_row.addWidget(self.crop_start_btn)
        self.crop_apply_btn = QPushButton("Apply Crop")
        self.crop_apply_btn.clicked.connect(self._apply_crop)
        crop_row.addWidget(self.crop_apply_btn)
        self.crop_cancel_btn = QPushButton("Cancel")
        self.crop_cancel_btn.clicked.connect(self._cancel_crop)
        crop_row.addWidget(self.crop_cancel_btn)
        gl_crop.addLayout(crop_row)
        v.addWidget(g_crop)

        g_ai, gl_ai = self._make_group("AI")
        self.remove_bg_btn = QPushButton("Remove Background")
        self.remove_bg_btn.clicked.connect(lambda: self._start_ai(AI_REMOVE_BG))
        gl_ai.addWidget(self.remove_bg_btn)
        self.colorize_btn = QPushButton("Colorize")
        self.colorize_btn.clicked.connect(lambda: self._start_ai(AI_COLORIZE))
        gl_ai.addWidget(self.colorize_btn)
        v.addWidget(g_ai)

        v.addStretch(1)
        scroll.setWidget(panel)
        root_lay.addWidget(scroll)
        dock.setWidget(root)
        self.addDockWidget(Qt.RightDockWidgetArea, dock)

    # ---------------------------
    # File IO
    # ---------------------------
    def open_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Open Image", "", "Images (*.png *.jpg *.jpeg *.bmp *.webp *.tif *.tiff)"
        )
        if not path:
            return
        self._load_path(path)

    def _load_path(self, path: str) -> None:
        self.editor.open_image(path)

    def download(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self, "Download PNG", self.editor.config.download_filename, "PNG (*.png)"
        )
        if not path:
            return
        try:
            self.editor.export_png(path)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Download failed", str(e))

    def clear_canvas(self) -> None:
        answer = QMessageBox.question(self, "Clear Canvas", "Remove everything from the canvas?")
        if answer == QMessageBox.Yes:
            self.editor.clear()

    # ---------------------------
    # AI relay
    # ---------------------------
    def _start_ai(self, job: str) -> None:
        payload = self.editor.begin_ai(job)
        if payload is None:
            return

        self._ai_thread = QThread(self)
        self._ai_worker = RelayWorker(job, self.editor.relay_call(job), payload)
        self._ai_worker.moveToThread(self._ai_thread)

        self._ai_thread.started.connect(self._ai_worker.run)
        self._ai_worker.finished.connect(self._on_ai_finished)
        self._ai_worker.failed.connect(self._on_ai_failed)

        self._ai_worker.finished.connect(self._ai_thread.quit)
        self._ai_worker.failed.connect(self._ai_thread.quit)
        self._ai_thread.finished.connect(self._ai_worker.deleteLater)
        self._ai_thread.finished.connect(self._ai_thread.deleteLater)
        self._ai_thread.finished.connect(self._forget_ai_thread)

        self._ai_thread.start()

    @Slot(str, object)
    def _on_ai_finished(self, job: str, reply) -> None:
        self.editor.finish_ai(job, reply)

    @Slot(str, object)
    def _on_ai_failed(self, job: str, error) -> None:
        self.editor.finish_ai(job, error=error)

    @Slot()
    def _forget_ai_thread(self) -> None:
        self._ai_thread = None
        self._ai_worker = None

    def closeEvent(self, e) -> None:
        # The relay call cannot be interrupted; let it run out before Qt tears the thread down.
        if self._ai_thread is not None:
            self._ai_thread.quit()
            self._ai_thread.wait()
        super().closeEvent(e)

    # ---------------------------
    # Editor callbacks
    # ---------------------------
    def _on_render(self, img: Image.Image) -> None:
        self.canvas.set_preview(pil_rgba_to_qimage(img), img.size)
        self.canvas.set_selection_outline(self.editor.scene.selection_outline())
        self._sync_mode_buttons()
        self._sync_transform_controls()
        self._update_undo_action()
        self._update_status()

    def _show_notice(self, message: str) -> None:
        QMessageBox.information(self, "PhotonX", message)

    def _on_busy(self, busy: bool) -> None:
        self.remove_bg_btn.setEnabled(not busy)
        self.colorize_btn.setEnabled(not busy)
        if busy:
            QApplication.setOverrideCursor(Qt.BusyCursor)
            self.statusBar().showMessage("Processing…")
        else:
            QApplication.restoreOverrideCursor()
            self._update_status()

    def _on_selection_changed(self, _event: str, _obj) -> None:
        style = self.editor.selected_text_style()
        text = self.editor.selected_text()
        self.update_text_btn.setEnabled(text is not None)
        if style is None or text is None:
            return
        self._syncing = True
        try:
            self.text_edit.setText(text.text)
            self.font_size_spin.setValue(int(style.font_size))
            idx = self.font_family_combo.findText(style.font_family)
            if idx >= 0:
                self.font_family_combo.setCurrentIndex(idx)
            self._set_button_color(self.text_color_btn, style.color)
        finally:
            self._syncing = False

    # ---------------------------
    # Modes
    # ---------------------------
    def _set_mode(self, mode: InteractionMode) -> None:
        self.editor.set_mode(mode)
        self._sync_mode_buttons()

    def _sync_mode_buttons(self) -> None:
        mode = self.editor.mode
        btn = self._mode_buttons.get(mode)
        if btn is not None and not btn.isChecked():
            btn.setChecked(True)
        if self.canvas.mode != mode:
            self.canvas.set_mode(mode)

    def _apply_crop(self) -> None:
        self.editor.apply_crop()
        self._sync_mode_buttons()

    def _cancel_crop(self) -> None:
        self.editor.cancel_crop()
        self._sync_mode_buttons()

    def _undo(self) -> None:
        self.editor.undo()
        self._update_undo_action()

    def _update_undo_action(self) -> None:
        if self._act_undo is not None:
            self._act_undo.setEnabled(self.editor.session.history.can_undo())

    # ---------------------------
    # Brush / text
    # ---------------------------
    def _on_brush_changed(self, _=None) -> None:
        self.editor.set_brush(
            brush_type=self.brush_type_combo.currentData(),
            size=self.brush_size_spin.value(),
        )

    def _pick_brush_color(self) -> None:
        color = self._ask_color(self.editor.session.brush.color)
        if color is None:
            return
        self._set_button_color(self.brush_color_btn, color)
        self.editor.set_brush(color=color)

    def _add_text(self) -> None:
        self.editor.add_text(self.text_edit.text())

    def _edit_selected_text(self) -> None:
        self.editor.edit_text(self.text_edit.text())

    def _on_font_size_changed(self, v: int) -> None:
        if not self._syncing:
            self.editor.update_text_style(font_size=v)

    def _on_font_family_changed(self, family: str) -> None:
        if not self._syncing:
            self.editor.update_text_style(font_family=family)

    def _pick_text_color(self) -> None:
        color = self._ask_color(self.editor.session.text_style.color)
        if color is None:
            return
        self._set_button_color(self.text_color_btn, color)
        self.editor.update_text_style(color=color)

    # ---------------------------
    # Transform
    # ---------------------------
    def _on_rotation_changed(self, v: int) -> None:
        if not self._syncing:
            self.editor.set_rotation(v)

    def _on_scale_changed(self, v: int) -> None:
        if not self._syncing:
            self.editor.set_scale(v)

    def _apply_resize(self) -> None:
        self.editor.resize(self.resize_w.value(), self.resize_h.value())

    def _sync_transform_controls(self) -> None:
        img = self.editor.current_image
        if img is None:
            return
        self._syncing = True
        try:
            self.rotation_slider.setValue(int(round(img.angle)) % 360)
            self.scale_slider.setValue(int(round(abs(img.scale_x) * 100)))
            self.resize_w.setValue(max(1, int(round(img.scaled_width))))
            self.resize_h.setValue(max(1, int(round(img.scaled_height))))
        finally:
            self._syncing = False

    def _update_status(self) -> None:
        img = self.editor.current_image
        src_size = f"{img.width:.0f}x{img.height:.0f}" if img is not None else "none"
        scene = self.editor.scene
        msg = (
            f"Mode: {self.editor.mode.value} | Image: {src_size} | Canvas: {scene.width}x{scene.height} | "
            f"Objects: {len(scene.get_objects())} | History: {len(self.editor.session.history)}"
        )
        self.statusBar().showMessage(msg)

    # ---------------------------
    # Helpers
    # ---------------------------
    def _make_group(self, title: str) -> tuple[QGroupBox, QVBoxLayout]:
        g = QGroupBox(title)
        gl = QVBoxLayout()
        g.setLayout(gl)
        return g, gl

    def _add_labeled_row(self, layout: QVBoxLayout, label: str, widget: Optional[QWidget]) -> None:
        row = QHBoxLayout()
        row.addWidget(QLabel(label))
        if widget is not None:
            row.addWidget(widget, 1)
        layout.addLayout(row)

    def _make_color_button(self, color: str, on_click: Callable[[], None]) -> QPushButton:
        btn = QPushButton()
        btn.setFixedHeight(24)
        btn.clicked.connect(on_click)
        self._set_button_color(btn, color)
        return btn

    def _set_button_color(self, btn: QPushButton, color: str) -> None:
        btn.setText(color)
        btn.setStyleSheet(f"background-color: {color};")

    def _ask_color(self, current: str) -> Optional[str]:
        c = QColorDialog.getColor(QColor(current), self, "Pick Color")
        if not c.isValid():
            return None
        return c.name()
