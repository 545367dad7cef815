from __future__ import annotations

import math
import re
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw

from core.drawables import Drawable, ImageDrawable, Kind, PathDrawable, RectDrawable, TextDrawable, load_font
from core.filters import apply_filters_rgba

Rgba = Tuple[int, int, int, int]

_CSS_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([0-9]*\.?[0-9]+)\s*)?\)$"
)


def pil_to_np_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("Expected RGBA image")
    return arr


def np_rgba_to_pil(arr: np.ndarray) -> Image.Image:
    return Image.fromarray(arr, mode="RGBA")


def parse_css_color(value: Optional[str], default: Rgba = (0, 0, 0, 0)) -> Rgba:
    """Accepts #rgb/#rrggbb, color names and rgb()/rgba() with a 0..1 alpha."""
    if not value:
        return default
    v = str(value).strip().lower()
    m = _CSS_RGB_RE.match(v)
    if m is not None:
        r, g, b = (max(0, min(255, int(m.group(i)))) for i in (1, 2, 3))
        a = 1.0 if m.group(4) is None else float(m.group(4))
        alpha = int(round(a * 255)) if a <= 1.0 else int(a)
        return (r, g, b, max(0, min(255, alpha)))
    try:
        return ImageColor.getcolor(v, "RGBA")
    except ValueError:
        return default


def _blend(base: np.ndarray, top: np.ndarray) -> np.ndarray:
    base_rgb = base[..., :3].astype(np.float32) / 255.0
    top_rgb = top[..., :3].astype(np.float32) / 255.0
    base_a = base[..., 3:4].astype(np.float32) / 255.0
    top_a = top[..., 3:4].astype(np.float32) / 255.0

    out_a = top_a + base_a * (1.0 - top_a)
    premul_top = top_rgb * top_a
    premul_base = base_rgb * base_a
    out_premul = premul_top + premul_base * (1.0 - top_a)
    out_rgb = np.where(out_a > 0, out_premul / np.maximum(out_a, 1e-6), 0.0)

    out = np.empty_like(base)
    out[..., :3] = np.clip(out_rgb * 255.0, 0, 255).astype(np.uint8)
    out[..., 3] = np.clip(out_a[..., 0] * 255.0, 0, 255).astype(np.uint8)
    return out



def _filtered(img: Image.Image, filters) -> Image.Image:
    if not filters:
        return img
    return np_rgba_to_pil(apply_filters_rgba(pil_to_np_rgba(img), filters))


def _text_pixels(obj: TextDrawable) -> Image.Image:
    w = max(1, int(math.ceil(obj.width)))
    h = max(1, int(math.ceil(obj.height)))
    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.multiline_text(
        (0, 0),
        obj.text,
        font=load_font(obj.font_family, int(obj.font_size)),
        fill=parse_css_color(obj.fill, (255, 255, 255, 255)),
    )
    return img


def _scaled(obj: Drawable, pixels: Image.Image, resample: Image.Resampling) -> Image.Image:
    new_w = max(1, int(round(obj.scaled_width)))
    new_h = max(1, int(round(obj.scaled_height)))
    out = pixels.resize((new_w, new_h), resample=resample)
    if obj.scale_x < 0:
        out = out.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if obj.scale_y < 0:
        out = out.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    return out


def _rotated(obj: Drawable, pixels: Image.Image) -> Image.Image:
    rot = float(obj.angle) % 360.0
    if rot == 0.0:
        return pixels
    return pixels.rotate(-rot, expand=True, resample=Image.Resampling.BICUBIC)


def _placed_pixels(obj: Drawable, resample: Image.Resampling) -> Optional[np.ndarray]:
    """Pixels of an image or text object at their on-canvas size and rotation."""
    if isinstance(obj, ImageDrawable):
        if obj.source is None:
            return None
        # Filters are per-pixel, so run them on the resized copy rather than the full source.
        pixels = _filtered(_scaled(obj, obj.source, resample), obj.filters)
    elif isinstance(obj, TextDrawable):
        pixels = _scaled(obj, _text_pixels(obj), resample)
    else:
        raise ValueError(f"cannot place drawable of kind {obj.kind!r}")
    return pil_to_np_rgba(_rotated(obj, pixels))


def _look_key(obj: Drawable, resample: Image.Resampling) -> tuple:
    geometry = (float(obj.width), float(obj.height), float(obj.scale_x), float(obj.scale_y), float(obj.angle))
    if isinstance(obj, ImageDrawable):
        return (id(obj.source), tuple(obj.filters), geometry, resample)
    if isinstance(obj, TextDrawable):
        return (obj.text, obj.font_family, int(obj.font_size), obj.fill, geometry, resample)
    raise ValueError(f"cannot cache drawable of kind {obj.kind!r}")


class RenderCache:
    """
    Placed pixels of image and text objects, keyed by object uid.

    An entry is reused while nothing that shapes the pixels (source,
    filters, size, scale, angle, resampling) has changed, so dragging an
    object or painting over it does not resize or re-filter it again.
    """
    def __init__(self):
        # uid -> (look key, source held so its id() stays unique, pixels)
        self._entries: Dict[str, Tuple[tuple, object, np.ndarray]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def placed(self, obj: Drawable, resample: Image.Resampling) -> Optional[np.ndarray]:
        key = _look_key(obj, resample)
        hit = self._entries.get(obj.uid)
        if hit is not None and hit[0] == key:
            return hit[2]

        arr = _placed_pixels(obj, resample)
        if arr is None:
            self._entries.pop(obj.uid, None)
            return None
        self._entries[obj.uid] = (key, getattr(obj, "source", None), arr)
        return arr

    def prune(self, live_uids: Iterable[str]) -> None:
        live = set(live_uids)
        for uid in [uid for uid in self._entries if uid not in live]:
            del self._entries[uid]

    def clear(self) -> None:
        self._entries.clear()


def _vector_pixels(obj: Drawable) -> Optional[Tuple[Image.Image, int, int]]:
    """Draws a path or rectangle into a layer just large enough to hold it."""
    if isinstance(obj, PathDrawable):
        pts = obj.canvas_points()
    elif isinstance(obj, RectDrawable):
        pts = obj.corners()
    else:
        raise ValueError(f"cannot draw drawable of kind {obj.kind!r}")
    if not pts:
        return None

    width = max(1, int(round(obj.stroke_width)))
    pad = width + 2
    x = int(math.floor(min(p[0] for p in pts))) - pad
    y = int(math.floor(min(p[1] for p in pts))) - pad
    w = int(math.ceil(max(p[0] for p in pts))) + pad - x
    h = int(math.ceil(max(p[1] for p in pts))) + pad - y
    layer = Image.new("RGBA", (max(1, w), max(1, h)), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    local = [(px - x, py - y) for px, py in pts]

    if isinstance(obj, PathDrawable):
        color = parse_css_color(obj.stroke, (255, 255, 255, 255))
        r = width * 0.5
        if len(local) > 1:
            draw.line(local, fill=color, width=width, joint="curve")
        # Round caps
        for px, py in (local[0], local[-1]):
            draw.ellipse((px - r, py - r, px + r, py + r), fill=color)
    else:
        draw.polygon(
            local,
            fill=parse_css_color(obj.fill),
            outline=parse_css_color(obj.stroke, (255, 255, 255, 255)),
            width=width,
        )
    return layer, x, y


def _blend_at(base: np.ndarray, arr: np.ndarray, x: int, y: int) -> None:
    """Blends `arr` over `base` in place with its top-left corner at (x, y)."""
    out_h, out_w = base.shape[0], base.shape[1]
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(out_w, x + arr.shape[1])
    y1 = min(out_h, y + arr.shape[0])
    if x1 <= x0 or y1 <= y0:
        return

    sx0 = x0 - x
    sy0 = y0 - y
    top = arr[sy0:sy0 + (y1 - y0), sx0:sx0 + (x1 - x0)]
    base[y0:y1, x0:x1] = _blend(base[y0:y1, x0:x1], top)


def composite_drawables(
    objects: Iterable[Drawable],
    out_size: Tuple[int, int],
    background: Optional[str] = None,
    high_quality: bool = True,
    cache: Optional[RenderCache] = None,
) -> Image.Image:
    resample = Image.Resampling.LANCZOS if high_quality else Image.Resampling.BILINEAR
    out_w, out_h = out_size
    base = np.zeros((out_h, out_w, 4), dtype=np.uint8)
    if background:
        base[...] = parse_css_color(background)

    for obj in objects:
        if obj.kind in (Kind.IMAGE, Kind.TEXT):
            arr = cache.placed(obj, resample) if cache is not None else _placed_pixels(obj, resample)
            if arr is None:
                continue
            cx, cy = obj.center()
            _blend_at(base, arr, int(round(cx - arr.shape[1] * 0.5)), int(round(cy - arr.shape[0] * 0.5)))
        elif obj.kind in (Kind.PATH, Kind.RECT):
            placed = _vector_pixels(obj)
            if placed is None:
                continue
            layer, x, y = placed
            _blend_at(base, pil_to_np_rgba(layer), x, y)
        else:
            raise ValueError(f"cannot render drawable of kind {obj.kind!r}")

    return np_rgba_to_pil(base)
