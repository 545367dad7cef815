from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from core.drawables import (
    Drawable,
    ImageDrawable,
    Kind,
    PathDrawable,
    RectDrawable,
    TextDrawable,
)
from core.io import decode_image_data, encode_png_data_url
from core.state import DEFAULT_BACKGROUND


SNAPSHOT_VERSION = 1


class SnapshotError(ValueError):
    """A snapshot could not be decoded back into drawables."""


@dataclass(frozen=True)
class Snapshot:
    """Serialized scene at one instant. `payload` is JSON text."""
    payload: str
    primary_uid: Optional[str] = None


@dataclass
class DecodedScene:
    width: int
    height: int
    background: str
    objects: List[Drawable] = field(default_factory=list)


def _base_to_raw(obj: Drawable) -> Dict[str, Any]:
    return {
        "type": obj.kind.value,
        "uid": obj.uid,
        "left": obj.left,
        "top": obj.top,
        "width": obj.width,
        "height": obj.height,
        "scale_x": obj.scale_x,
        "scale_y": obj.scale_y,
        "angle": obj.angle,
        "origin": obj.origin,
        "selectable": bool(obj.selectable),
    }


def _drawable_to_raw(obj: Drawable) -> Dict[str, Any]:
    raw = _base_to_raw(obj)
    if isinstance(obj, ImageDrawable):
        raw["src"] = None if obj.source is None else encode_png_data_url(obj.source)
        raw["filters"] = list(obj.filters)
    elif isinstance(obj, TextDrawable):
        raw["text"] = obj.text
        raw["font_size"] = int(obj.font_size)
        raw["fill"] = obj.fill
        raw["font_family"] = obj.font_family
    elif isinstance(obj, PathDrawable):
        raw["points"] = [[float(x), float(y)] for x, y in obj.points]
        raw["stroke"] = obj.stroke
        raw["stroke_width"] = float(obj.stroke_width)
    elif isinstance(obj, RectDrawable):
        raw["stroke"] = obj.stroke
        raw["stroke_width"] = float(obj.stroke_width)
        raw["fill"] = obj.fill
    else:
        raise SnapshotError(f"cannot serialize drawable of kind {obj.kind!r}")
    return raw


def _base_kwargs(raw: Dict[str, Any]) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "left": float(raw.get("left", 0.0)),
        "top": float(raw.get("top", 0.0)),
        "width": float(raw.get("width", 0.0)),
        "height": float(raw.get("height", 0.0)),
        "scale_x": float(raw.get("scale_x", 1.0)),
        "scale_y": float(raw.get("scale_y", 1.0)),
        "angle": float(raw.get("angle", 0.0)),
        "selectable": bool(raw.get("selectable", True)),
    }
    if raw.get("origin"):
        kwargs["origin"] = str(raw["origin"])
    if raw.get("uid"):
        kwargs["uid"] = str(raw["uid"])
    return kwargs


def _drawable_from_raw(raw: Dict[str, Any], idx: int) -> Drawable:
    if not isinstance(raw, dict):
        raise SnapshotError(f"object {idx}: expected a mapping")
    kind = raw.get("type")
    try:
        base = _base_kwargs(raw)
        if kind == Kind.IMAGE.value:
            src = raw.get("src")
            source = decode_image_data(src) if src else None
            return ImageDrawable(
                **base,
                source=source,
                filters=[str(f) for f in raw.get("filters", [])],
            )
        if kind == Kind.TEXT.value:
            return TextDrawable(
                **base,
                text=str(raw.get("text", "")),
                font_size=int(raw.get("font_size", 32)),
                fill=str(raw.get("fill", "#ffffff")),
                font_family=str(raw.get("font_family", "Poppins")),
            )
        if kind == Kind.PATH.value:
            return PathDrawable(
                **base,
                points=[(float(p[0]), float(p[1])) for p in raw.get("points", [])],
                stroke=str(raw.get("stroke", "#ffffff")),
                stroke_width=float(raw.get("stroke_width", 10.0)),
            )
        if kind == Kind.RECT.value:
            return RectDrawable(
                **base,
                stroke=str(raw.get("stroke", "#ffffff")),
                stroke_width=float(raw.get("stroke_width", 1.0)),
                fill=str(raw.get("fill", "")),
            )
    except SnapshotError:
        raise
    except (TypeError, ValueError, OSError, IndexError) as exc:
        raise SnapshotError(f"object {idx} ({kind}): {exc}") from exc
    raise SnapshotError(f"object {idx}: unknown type {kind!r}")


def encode_snapshot(
    width: int,
    height: int,
    background: str,
    objects: Iterable[Drawable],
    primary: Optional[Drawable] = None,
) -> Snapshot:
    payload = {
        "version": SNAPSHOT_VERSION,
        "canvas": {
            "width": int(width),
            "height": int(height),
            "background": background,
        },
        "objects": [_drawable_to_raw(obj) for obj in objects],
    }
    return Snapshot(
        payload=json.dumps(payload, separators=(",", ":")),
        primary_uid=None if primary is None else primary.uid,
    )


def decode_snapshot(snapshot: Snapshot) -> DecodedScene:
    try:
        raw = json.loads(snapshot.payload)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"snapshot is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise SnapshotError("snapshot root must be a mapping")

    canvas_raw = raw.get("canvas", {})
    objects_raw = raw.get("objects", [])
    if not isinstance(objects_raw, list):
        raise SnapshotError("snapshot objects must be a list")

    try:
        width = int(canvas_raw.get("width", 0))
        height = int(canvas_raw.get("height", 0))
    except (TypeError, ValueError, AttributeError) as exc:
        raise SnapshotError(f"bad canvas properties: {exc}") from exc

    return DecodedScene(
        width=width,
        height=height,
        background=str(canvas_raw.get("background") or DEFAULT_BACKGROUND),
        objects=[_drawable_from_raw(item, idx) for idx, item in enumerate(objects_raw)],
    )
