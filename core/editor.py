from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import requests
from PIL import Image

from core.drawables import Capability, ImageDrawable, TextDrawable
from core.filters import is_known_filter
from core.io import decode_image_data, encode_png_base64, load_image_rgba, save_image
from core.relay_client import RelayClient, RelayError
from core.scene import Scene, fit_image_to_canvas
from core.session import BusyListener, EditorSession, NoticeListener
from core.state import (
    DEFAULT_FONT_SIZE,
    BrushConfig,
    EditorConfig,
    InteractionMode,
    TextStyle,
    derive_brush_config,
)

logger = logging.getLogger(__name__)

MSG_NO_IMAGE = "Please upload an image first."
MSG_AI_BUSY = "An AI request is already running. Please wait for it to finish."
MSG_REMOVE_BG_FAILED = "Remove background failed (backend returned error)."
MSG_REMOVE_BG_ERROR = "Error calling background removal API."
MSG_COLORIZE_FAILED = "Colorization failed (backend returned error)."
MSG_COLORIZE_ERROR = "Error calling colorization API."

AI_REMOVE_BG = "remove-bg"
AI_COLORIZE = "colorize"

_AI_MESSAGES = {
    AI_REMOVE_BG: (MSG_REMOVE_BG_FAILED, MSG_REMOVE_BG_ERROR),
    AI_COLORIZE: (MSG_COLORIZE_FAILED, MSG_COLORIZE_ERROR),
}


class Editor:
    """
    Every user-facing editing operation, on top of an EditorSession.

    The UI only talks to this class: it forwards pointer events, tool
    settings and button presses, and listens for renders, notices and the
    busy state.
    """
    def __init__(
        self,
        config: Optional[EditorConfig] = None,
        relay: Optional[RelayClient] = None,
        session: Optional[EditorSession] = None,
    ):
        self.session = session or EditorSession(config)
        self.config = self.session.config
        self.relay = relay or RelayClient(self.config.relay_url, timeout=self.config.relay_timeout)
        self._ai_in_flight = False
        # Baseline entry for the empty canvas
        self.session.history.save_state()

    # ---------------------------
    # Accessors
    # ---------------------------
    @property
    def scene(self) -> Scene:
        return self.session.scene

    @property
    def current_image(self) -> Optional[ImageDrawable]:
        return self.session.current_image

    @property
    def mode(self) -> InteractionMode:
        return self.session.modes.mode

    def on_notice(self, listener: NoticeListener) -> None:
        self.session.on_notice(listener)

    def on_busy(self, listener: BusyListener) -> None:
        self.session.on_busy(listener)

    def on_render(self, listener: Callable[[Image.Image], None]) -> None:
        self.scene.on_render(listener)

    def _require_image(self) -> Optional[ImageDrawable]:
        img = self.session.current_image
        if img is None:
            self.session.notify(MSG_NO_IMAGE)
        return img

    def _leave_crop(self) -> None:
        if self.session.crop.active:
            self.session.crop.cancel()
        if self.mode == InteractionMode.CROP:
            self.session.modes.set_mode(InteractionMode.MOVE)

    # ---------------------------
    # Upload / fit
    # ---------------------------
    def open_image(self, path: str) -> Optional[ImageDrawable]:
        try:
            img = load_image_rgba(path)
        except (OSError, ValueError) as exc:
            logger.warning("could not open %s: %s", path, exc)
            self.session.notify(f"Could not open image: {exc}")
            return None
        return self.load_image(img)

    def load_image(self, img: Image.Image) -> ImageDrawable:
        """Replace the primary image, fit it to the canvas and select it."""
        scene = self.scene
        drawable = ImageDrawable(source=img)
        fit_image_to_canvas(drawable, scene.width, scene.height, self.config.fit_scale)
        with scene.batch():
            if self.session.current_image is not None:
                scene.remove(self.session.current_image)
            self.session.current_image = drawable
            scene.add(drawable)
            scene.set_active_object(drawable)
        scene.render()
        return drawable

    def fit_image(self) -> bool:
        img = self._require_image()
        if img is None:
            return False
        fit_image_to_canvas(img, self.scene.width, self.scene.height, self.config.fit_scale)
        self.scene.modified(img)
        self.scene.render()
        return True

    # ---------------------------
    # Modes / pointer input
    # ---------------------------
    def set_mode(self, mode: InteractionMode) -> InteractionMode:
        return self.session.modes.set_mode(mode)

    def pointer_down(self, x: float, y: float) -> None:
        self.session.modes.pointer_down(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        self.session.modes.pointer_move(x, y)

    def pointer_up(self, x: float, y: float) -> None:
        self.session.modes.pointer_up(x, y)

    def set_brush(
        self,
        brush_type: Optional[str] = None,
        color: Optional[str] = None,
        size: Optional[int] = None,
    ) -> BrushConfig:
        brush = self.session.brush
        if brush_type is not None:
            brush.brush_type = str(brush_type)
        if color is not None:
            brush.color = str(color)
        if size is not None:
            brush.size = int(size)
        self.session.modes.brush_settings_changed()
        return derive_brush_config(brush)

    # ---------------------------
    # Text
    # ---------------------------
    def add_text(self, value: str, style: Optional[TextStyle] = None) -> Optional[TextDrawable]:
        value = (value or "").strip()
        if not value:
            return None
        style = style or self.session.text_style
        text = TextDrawable(
            left=self.scene.width / 2,
            top=self.scene.height / 2,
            text=value,
            font_size=int(style.font_size) or DEFAULT_FONT_SIZE,
            fill=style.color,
            font_family=style.font_family,
        )
        self.scene.add(text)
        self.scene.set_active_object(text)
        self.scene.render()
        return text

    def selected_text(self) -> Optional[TextDrawable]:
        obj = self.scene.active_object()
        if obj is not None and obj.supports(Capability.TEXT_EDIT) and isinstance(obj, TextDrawable):
            return obj
        return None

    def selected_text_style(self) -> Optional[TextStyle]:
        text = self.selected_text()
        if text is None:
            return None
        return TextStyle(font_size=int(text.font_size), color=text.fill, font_family=text.font_family)

    def update_text_style(
        self,
        font_size: Optional[int] = None,
        color: Optional[str] = None,
        font_family: Optional[str] = None,
    ) -> bool:
        style = self.session.text_style
        if font_size is not None:
            style.font_size = int(font_size) or DEFAULT_FONT_SIZE
        if color is not None:
            style.color = str(color)
        if font_family is not None:
            style.font_family = str(font_family)

        text = self.selected_text()
        if text is None:
            return False
        if font_size is not None:
            text.font_size = style.font_size
        if color is not None:
            text.fill = style.color
        if font_family is not None:
            text.font_family = style.font_family
        text.refresh_size()
        self.scene.modified(text)
        self.scene.render()
        return True

    def edit_text(self, value: str) -> bool:
        text = self.selected_text()
        value = (value or "").strip()
        if text is None or not value or value == text.text:
            return False
        text.text = value
        text.refresh_size()
        self.scene.modified(text)
        self.scene.render()
        return True

    # ---------------------------
    # Filters
    # ---------------------------
    def apply_filter(self, name: str) -> bool:
        img = self._require_image()
        if img is None:
            return False
        if not img.supports(Capability.FILTER):
            return False
        if not is_known_filter(name):
            logger.debug("ignoring unknown filter %r", name)
            return False
        img.filters = [str(name).strip().lower()]
        self.scene.modified(img)
        self.scene.render()
        return True

    def reset_filters(self) -> bool:
        img = self._require_image()
        if img is None or not img.filters or not img.supports(Capability.FILTER):
            return False
        img.filters = []
        self.scene.modified(img)
        self.scene.render()
        return True

    # ---------------------------
    # Transforms
    # ---------------------------
    def set_rotation(self, angle: float) -> bool:
        img = self._require_image()
        if img is None:
            return False
        img.angle = float(angle) % 360.0
        self.scene.modified(img)
        self.scene.render()
        return True

    def rotate_left(self) -> bool:
        img = self._require_image()
        return img is not None and self.set_rotation(float(img.angle) - 90.0)

    def rotate_right(self) -> bool:
        img = self._require_image()
        return img is not None and self.set_rotation(float(img.angle) + 90.0)

    def set_scale(self, percent: int) -> bool:
        img = self._require_image()
        if img is None:
            return False
        factor = (int(percent) or 100) / 100.0
        img.set_scale(factor)
        self.scene.modified(img)
        self.scene.render()
        return True

    def resize(self, width: int, height: int) -> bool:
        img = self._require_image()
        if img is None:
            return False
        if not width or not height or img.width <= 0 or img.height <= 0:
            return False
        img.scale_x = float(width) / float(img.width)
        img.scale_y = float(height) / float(img.height)
        self.scene.modified(img)
        self.scene.render()
        return True

    # ---------------------------
    # Crop
    # ---------------------------
    def start_crop(self) -> bool:
        self.set_mode(InteractionMode.CROP)
        return self.session.crop.active

    def apply_crop(self) -> bool:
        if not self.session.crop.apply():
            return False
        self.set_mode(InteractionMode.MOVE)
        return True

    def cancel_crop(self) -> None:
        self._leave_crop()

    # ---------------------------
    # History / export / clear
    # ---------------------------
    def undo(self) -> bool:
        return self.session.history.undo()

    def export_png_data_url(self) -> str:
        return self.scene.to_data_url()

    def export_png(self, path: Optional[str] = None) -> Path:
        out = Path(path or self.config.download_filename)
        save_image(str(out), self.scene.rasterize())
        logger.info("exported canvas to %s", out)
        return out

    def clear(self) -> None:
        self._leave_crop()
        self.scene.clear()
        self.session.current_image = None
        self.session.history.reset()
        self.session.history.save_state()
        self.scene.render()

    # ---------------------------
    # AI relay
    # ---------------------------
    def remove_background(self) -> bool:
        return self._run_ai(AI_REMOVE_BG)

    def colorize(self) -> bool:
        return self._run_ai(AI_COLORIZE)

    def relay_call(self, job: str) -> Callable[[str], str]:
        """The relay client method for an AI job. Safe to call off the GUI thread."""
        if job == AI_REMOVE_BG:
            return self.relay.remove_background
        if job == AI_COLORIZE:
            return self.relay.colorize
        raise ValueError(f"unknown AI job {job!r}")

    def begin_ai(self, job: str) -> Optional[str]:
        """
        Claim the relay for `job` and return the canvas payload to send.

        Returns None (after notifying) when there is no image or another
        job is still running. On success the editor stays busy until
        `finish_ai` is called.
        """
        failed_msg, _ = _AI_MESSAGES[job]
        if self._require_image() is None:
            return None
        if self._ai_in_flight:
            self.session.notify(MSG_AI_BUSY)
            return None
        try:
            payload = encode_png_base64(self.scene.rasterize())
        except (ValueError, OSError):
            logger.warning("could not encode the canvas for the relay", exc_info=True)
            self.session.notify(failed_msg)
            return None

        self._ai_in_flight = True
        self.session.set_busy(True)
        return payload

    def finish_ai(self, job: str, reply: Optional[str] = None, error: Optional[Exception] = None) -> bool:
        """Apply the relay's reply (or report its error) and release the relay."""
        failed_msg, error_msg = _AI_MESSAGES[job]
        try:
            if error is not None:
                raise error
            result = decode_image_data(reply or "")
        except RelayError as exc:
            logger.warning("relay refused the request: %s", exc)
            self.session.notify(failed_msg)
            return False
        except requests.RequestException:
            logger.error("relay request failed", exc_info=True)
            self.session.notify(error_msg)
            return False
        except (ValueError, OSError) as exc:
            logger.warning("relay returned an unreadable image: %s", exc)
            self.session.notify(failed_msg)
            return False
        finally:
            self._ai_in_flight = False
            self.session.set_busy(False)

        self._replace_scene_with(result)
        return True

    def _run_ai(self, job: str) -> bool:
        payload = self.begin_ai(job)
        if payload is None:
            return False
        try:
            reply = self.relay_call(job)(payload)
        except (RelayError, requests.RequestException) as exc:
            return self.finish_ai(job, error=exc)
        return self.finish_ai(job, reply)

    def _replace_scene_with(self, img: Image.Image) -> ImageDrawable:
        self._leave_crop()
        scene = self.scene
        drawable = ImageDrawable(source=img)
        fit_image_to_canvas(drawable, scene.width, scene.height, self.config.fit_scale)
        with scene.batch():
            scene.clear()
            self.session.current_image = drawable
            scene.add(drawable)
            scene.set_active_object(drawable)
        scene.render()
        return drawable
