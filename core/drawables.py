from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import ClassVar, Dict, FrozenSet, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont


class Kind(str, Enum):
    IMAGE = "image"
    TEXT = "textbox"
    PATH = "path"
    RECT = "rect"


class Capability(str, Enum):
    # Exact containment test; everything else falls back to the bounding box.
    PRECISE_HIT = "precise_hit"
    TEXT_EDIT = "text_edit"
    FILTER = "filter"


CAPABILITIES: Dict[Kind, FrozenSet[Capability]] = {
    Kind.IMAGE: frozenset({Capability.FILTER}),
    Kind.TEXT: frozenset({Capability.TEXT_EDIT}),
    Kind.PATH: frozenset({Capability.PRECISE_HIT}),
    Kind.RECT: frozenset({Capability.PRECISE_HIT}),
}

ORIGIN_CENTER = "center"
ORIGIN_LEFT_TOP = "left-top"

_MIN_SCALE = 1e-6


def _new_uid() -> str:
    return uuid.uuid4().hex


@lru_cache(maxsize=64)
def load_font(family: str, size: int) -> ImageFont.ImageFont:
    size = max(1, int(size))
    for candidate in (family, f"{family}.ttf", f"{family.replace(' ', '')}.ttf"):
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


_MEASURE = ImageDraw.Draw(Image.new("RGBA", (1, 1)))


def measure_text(text: str, family: str, size: int) -> Tuple[float, float]:
    font = load_font(family, size)
    _, _, right, bottom = _MEASURE.multiline_textbbox((0, 0), text or " ", font=font)
    return (max(1.0, float(right)), max(1.0, float(bottom)))


def _point_segment_distance(
    p: Tuple[float, float],
    a: Tuple[float, float],
    b: Tuple[float, float],
) -> float:
    ax, ay = a
    bx, by = b
    px, py = p
    dx = bx - ax
    dy = by - ay
    seg2 = dx * dx + dy * dy
    if seg2 <= 0.0:
        return math.hypot(px - ax, py - ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / seg2))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


@dataclass(eq=False)
class Drawable:
    """
    Base for everything placed on the canvas.

    `left`/`top` is the position of the origin point in canvas coordinates;
    `width`/`height` are the untransformed size. Rotation (`angle`, degrees,
    clockwise) happens around the origin point.
    """
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    angle: float = 0.0
    origin: str = ORIGIN_CENTER
    selectable: bool = True
    uid: str = field(default_factory=_new_uid)

    kind: ClassVar[Kind]

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return CAPABILITIES[self.kind]

    def supports(self, capability: Capability) -> bool:
        return capability in CAPABILITIES[self.kind]

    @property
    def scaled_width(self) -> float:
        return float(self.width) * abs(float(self.scale_x))

    @property
    def scaled_height(self) -> float:
        return float(self.height) * abs(float(self.scale_y))

    def _origin_offset(self) -> Tuple[float, float]:
        if self.origin == ORIGIN_CENTER:
            return (-float(self.width) * 0.5, -float(self.height) * 0.5)
        return (0.0, 0.0)

    def _scales(self) -> Tuple[float, float]:
        sx = float(self.scale_x)
        sy = float(self.scale_y)
        if abs(sx) < _MIN_SCALE:
            sx = _MIN_SCALE
        if abs(sy) < _MIN_SCALE:
            sy = _MIN_SCALE
        return sx, sy

    def to_canvas(self, lx: float, ly: float) -> Tuple[float, float]:
        """Local (untransformed, top-left based) coords -> canvas coords."""
        ox, oy = self._origin_offset()
        sx, sy = self._scales()
        dx = (lx + ox) * sx
        dy = (ly + oy) * sy
        rad = math.radians(float(self.angle))
        cos_a = math.cos(rad)
        sin_a = math.sin(rad)
        return (
            float(self.left) + dx * cos_a - dy * sin_a,
            float(self.top) + dx * sin_a + dy * cos_a,
        )

    def to_local(self, x: float, y: float) -> Tuple[float, float]:
        ox, oy = self._origin_offset()
        sx, sy = self._scales()
        dx = x - float(self.left)
        dy = y - float(self.top)
        rad = math.radians(float(self.angle))
        cos_a = math.cos(rad)
        sin_a = math.sin(rad)
        rx = dx * cos_a + dy * sin_a
        ry = -dx * sin_a + dy * cos_a
        return (rx / sx - ox, ry / sy - oy)

    def corners(self) -> List[Tuple[float, float]]:
        w = float(self.width)
        h = float(self.height)
        return [self.to_canvas(0.0, 0.0), self.to_canvas(w, 0.0), self.to_canvas(w, h), self.to_canvas(0.0, h)]

    def center(self) -> Tuple[float, float]:
        return self.to_canvas(float(self.width) * 0.5, float(self.height) * 0.5)

    def bounding_rect(self) -> Tuple[float, float, float, float]:
        pts = self.corners()
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return (min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def left_edge(self) -> float:
        """Rendered left edge of the unrotated object."""
        ox, _ = self._origin_offset()
        return float(self.left) + ox * abs(float(self.scale_x))

    def top_edge(self) -> float:
        _, oy = self._origin_offset()
        return float(self.top) + oy * abs(float(self.scale_y))

    def in_bounding_rect(self, x: float, y: float) -> bool:
        bl, bt, bw, bh = self.bounding_rect()
        return bl <= x <= bl + bw and bt <= y <= bt + bh

    def contains_point(self, x: float, y: float) -> bool:
        lx, ly = self.to_local(x, y)
        return 0.0 <= lx <= float(self.width) and 0.0 <= ly <= float(self.height)

    def translate(self, dx: float, dy: float) -> None:
        self.left = float(self.left) + dx
        self.top = float(self.top) + dy

    def set_scale(self, factor: float) -> None:
        self.scale_x = float(factor)
        self.scale_y = float(factor)


@dataclass(eq=False)
class ImageDrawable(Drawable):
    # Original pixel data; None when it could not be decoded.
    source: Optional[Image.Image] = None
    filters: List[str] = field(default_factory=list)

    kind: ClassVar[Kind] = Kind.IMAGE

    def __post_init__(self) -> None:
        if self.source is not None:
            if self.source.mode != "RGBA":
                self.source = self.source.convert("RGBA")
            if not self.width:
                self.width = float(self.source.width)
            if not self.height:
                self.height = float(self.source.height)


@dataclass(eq=False)
class TextDrawable(Drawable):
    text: str = ""
    font_size: int = 32
    fill: str = "#ffffff"
    font_family: str = "Poppins"

    kind: ClassVar[Kind] = Kind.TEXT

    def __post_init__(self) -> None:
        self.refresh_size()

    def refresh_size(self) -> None:
        self.width, self.height = measure_text(self.text, self.font_family, int(self.font_size))


@dataclass(eq=False)
class PathDrawable(Drawable):
    # Stroke points relative to (left, top)
    points: List[Tuple[float, float]] = field(default_factory=list)
    stroke: str = "#ffffff"
    stroke_width: float = 10.0
    origin: str = ORIGIN_LEFT_TOP

    kind: ClassVar[Kind] = Kind.PATH

    @classmethod
    def from_points(
        cls,
        points: List[Tuple[float, float]],
        stroke: str,
        stroke_width: float,
    ) -> "PathDrawable":
        if not points:
            raise ValueError("a path needs at least one point")
        xs = [float(p[0]) for p in points]
        ys = [float(p[1]) for p in points]
        x0 = min(xs)
        y0 = min(ys)
        return cls(
            left=x0,
            top=y0,
            width=max(xs) - x0,
            height=max(ys) - y0,
            points=[(x - x0, y - y0) for x, y in zip(xs, ys)],
            stroke=stroke,
            stroke_width=float(stroke_width),
        )

    def canvas_points(self) -> List[Tuple[float, float]]:
        return [self.to_canvas(px, py) for px, py in self.points]

    def contains_point(self, x: float, y: float) -> bool:
        pts = self.canvas_points()
        if not pts:
            return False
        tol = max(1.0, float(self.stroke_width) * 0.5)
        if len(pts) == 1:
            return math.hypot(x - pts[0][0], y - pts[0][1]) <= tol
        for a, b in zip(pts, pts[1:]):
            if _point_segment_distance((x, y), a, b) <= tol:
                return True
        return False


@dataclass(eq=False)
class RectDrawable(Drawable):
    stroke: str = "#ffffff"
    stroke_width: float = 1.0
    fill: str = "rgba(255,255,255,0.12)"
    origin: str = ORIGIN_LEFT_TOP

    kind: ClassVar[Kind] = Kind.RECT
