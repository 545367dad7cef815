from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from PIL import Image

from core.drawables import ImageDrawable, RectDrawable
from core.scene import fit_image_to_canvas

if TYPE_CHECKING:
    from core.session import EditorSession

logger = logging.getLogger(__name__)

CROP_STROKE = "#ffffff"
CROP_FILL = "rgba(255,255,255,0.12)"

MSG_NO_IMAGE = "Please upload an image first."
MSG_NO_RECT = "Drag a crop rectangle on the image first."
MSG_DEGENERATE = "Crop rectangle is too small."
MSG_NO_PIXELS = "Crop not possible: internal image not accessible."


class CropState(str, Enum):
    INACTIVE = "inactive"
    ARMED = "armed"
    PENDING = "pending"
    SIZING = "sizing"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class SourceRegion:
    """Sub-region of the source image (source pixels) plus the output size (canvas units)."""
    sx: float
    sy: float
    s_width: float
    s_height: float
    out_width: int
    out_height: int

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return (self.sx, self.sy, self.sx + self.s_width, self.sy + self.s_height)


def compute_source_region(
    rect: Tuple[float, float, float, float],
    image: ImageDrawable,
) -> SourceRegion:
    """
    Map a canvas-space rectangle (left, top, width, height) into the image's
    own untransformed pixel space by undoing its translation and scale.
    Rotation is not taken into account.
    """
    rect_left, rect_top, rect_w, rect_h = rect
    sx_scale = abs(float(image.scale_x)) or 1.0
    sy_scale = abs(float(image.scale_y)) or 1.0
    return SourceRegion(
        sx=(rect_left - image.left_edge()) / sx_scale,
        sy=(rect_top - image.top_edge()) / sy_scale,
        s_width=rect_w / sx_scale,
        s_height=rect_h / sy_scale,
        out_width=int(round(rect_w)),
        out_height=int(round(rect_h)),
    )


def extract_region(source: Image.Image, region: SourceRegion) -> Image.Image:
    # Pixels outside the source come out fully transparent.
    return source.convert("RGBA").transform(
        (region.out_width, region.out_height),
        Image.Transform.EXTENT,
        region.box,
        resample=Image.Resampling.BILINEAR,
    )


class CropSession:
    """
    Rubber-band crop: start -> pointer down/move/up -> apply or cancel.
    """
    def __init__(self, session: "EditorSession"):
        self._session = session
        self.state = CropState.INACTIVE
        self.rect: Optional[RectDrawable] = None

    @property
    def active(self) -> bool:
        return self.state != CropState.INACTIVE

    def start(self) -> bool:
        session = self._session
        if session.current_image is None:
            session.notify(MSG_NO_IMAGE)
            return False
        self._discard_rect()
        session.scene.discard_active_object()
        self.state = CropState.ARMED
        session.scene.render()
        return True

    def pointer_down(self, x: float, y: float) -> None:
        if self.state != CropState.ARMED:
            return
        self.rect = RectDrawable(
            left=float(x),
            top=float(y),
            width=0.0,
            height=0.0,
            stroke=CROP_STROKE,
            stroke_width=1.0,
            fill=CROP_FILL,
            selectable=False,
        )
        self._session.scene.add_overlay(self.rect)
        self.state = CropState.PENDING
        self._session.scene.render()

    def pointer_move(self, x: float, y: float) -> None:
        if self.rect is None or self.state not in (CropState.PENDING, CropState.SIZING):
            return
        self.rect.width = max(1.0, float(x) - self.rect.left)
        self.rect.height = max(1.0, float(y) - self.rect.top)
        self.state = CropState.SIZING
        self._session.scene.render(high_quality=False)

    def pointer_up(self, _x: float, _y: float) -> None:
        if self.state in (CropState.PENDING, CropState.SIZING):
            self.state = CropState.RESOLVED
            self._session.scene.render()

    def apply(self) -> bool:
        session = self._session
        image = session.current_image
        if image is None:
            session.notify(MSG_NO_IMAGE)
            return False
        if self.rect is None:
            session.notify(MSG_NO_RECT)
            return False

        region = compute_source_region(self.rect.bounding_rect(), image)
        if region.out_width < 1 or region.out_height < 1:
            session.notify(MSG_DEGENERATE)
            return False
        if image.source is None:
            session.notify(MSG_NO_PIXELS)
            return False

        cropped = ImageDrawable(source=extract_region(image.source, region))
        scene = session.scene
        with scene.batch():
            scene.remove(image)
            self._discard_rect()
            fit_image_to_canvas(cropped, scene.width, scene.height, session.config.fit_scale)
            session.current_image = cropped
            scene.add(cropped)
            scene.set_active_object(cropped)
        self.state = CropState.INACTIVE
        logger.info(
            "cropped source region (%.1f, %.1f, %.1f, %.1f) -> %dx%d",
            region.sx, region.sy, region.s_width, region.s_height,
            region.out_width, region.out_height,
        )
        scene.render()
        return True

    def cancel(self) -> None:
        had_rect = self.rect is not None
        self._discard_rect()
        self.state = CropState.INACTIVE
        if had_rect:
            self._session.scene.render()

    def _discard_rect(self) -> None:
        if self.rect is not None:
            self._session.scene.remove_overlay(self.rect)
        self.rect = None
