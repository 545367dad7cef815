from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from PIL import Image

from core.compositor import RenderCache, composite_drawables
from core.drawables import ORIGIN_CENTER, Capability, Drawable, ImageDrawable
from core.io import encode_png_data_url
from core.snapshot import Snapshot, decode_snapshot, encode_snapshot
from core.state import DEFAULT_BACKGROUND, DEFAULT_CANVAS_SIZE, FIT_SCALE

logger = logging.getLogger(__name__)

OBJECT_ADDED = "object:added"
OBJECT_MODIFIED = "object:modified"
OBJECT_REMOVED = "object:removed"
SELECTION_CHANGED = "selection:changed"
MUTATION_EVENTS = (OBJECT_ADDED, OBJECT_MODIFIED, OBJECT_REMOVED)

SceneListener = Callable[[str, Optional[Drawable]], None]
RenderListener = Callable[[Image.Image], None]
RestoreCallback = Callable[[Optional[Drawable]], None]


def fit_image_to_canvas(
    img: ImageDrawable,
    canvas_w: int,
    canvas_h: int,
    fit_scale: float = FIT_SCALE,
) -> float:
    """Scale the image to fit the viewport (keeping aspect) and center it. Returns the scale."""
    if img.width <= 0 or img.height <= 0 or canvas_w <= 0 or canvas_h <= 0:
        return float(img.scale_x)

    img_ratio = img.width / img.height
    canvas_ratio = canvas_w / canvas_h
    if img_ratio > canvas_ratio:
        scale = canvas_w / img.width
    else:
        scale = canvas_h / img.height

    scale *= fit_scale
    img.set_scale(scale)
    img.left = canvas_w / 2
    img.top = canvas_h / 2
    img.origin = ORIGIN_CENTER
    img.selectable = True
    return scale


class Scene:
    """
    Retained-mode scene graph the editor draws on.

    Owns the drawables (bottom-to-top order), the active selection, hit
    testing, snapshot serialization and rasterization. Overlays (crop
    rectangle, stroke preview) are drawn on top but never serialized and
    never emit mutation events.
    """
    def __init__(
        self,
        width: int = DEFAULT_CANVAS_SIZE[0],
        height: int = DEFAULT_CANVAS_SIZE[1],
        background: str = DEFAULT_BACKGROUND,
    ):
        self.width = int(width)
        self.height = int(height)
        self.background = background
        self.default_background = background
        self.selection_enabled = True
        self.overlays: List[Drawable] = []

        self._objects: List[Drawable] = []
        self._active: Optional[Drawable] = None
        self._listeners: Dict[str, List[SceneListener]] = {}
        self._render_listeners: List[RenderListener] = []
        self._batch_depth = 0
        self._batch_dirty = False
        self._render_cache = RenderCache()

    # ---------------------------
    # Events
    # ---------------------------
    def on(self, event: str, listener: SceneListener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: SceneListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def on_render(self, listener: RenderListener) -> None:
        self._render_listeners.append(listener)

    def _emit(self, event: str, obj: Optional[Drawable]) -> None:
        if event in MUTATION_EVENTS and self._batch_depth > 0:
            self._batch_dirty = True
            return
        for listener in list(self._listeners.get(event, [])):
            listener(event, obj)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Coalesce the mutation events of a compound edit into a single object:modified."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_dirty:
                self._batch_dirty = False
                self._emit(OBJECT_MODIFIED, None)

    # ---------------------------
    # Objects
    # ---------------------------
    def add(self, obj: Drawable) -> None:
        if obj in self._objects:
            return
        self._objects.append(obj)
        self._emit(OBJECT_ADDED, obj)

    def remove(self, obj: Drawable) -> bool:
        if obj not in self._objects:
            return False
        self._objects.remove(obj)
        if self._active is obj:
            self.discard_active_object()
        self._emit(OBJECT_REMOVED, obj)
        return True

    def modified(self, obj: Optional[Drawable]) -> None:
        self._emit(OBJECT_MODIFIED, obj)

    def get_objects(self) -> List[Drawable]:
        return list(self._objects)

    def find(self, uid: Optional[str]) -> Optional[Drawable]:
        if not uid:
            return None
        for obj in self._objects:
            if obj.uid == uid:
                return obj
        return None

    def clear(self) -> None:
        with self.batch():
            for obj in list(self._objects):
                self.remove(obj)
        self.overlays = []
        self.background = self.default_background

    # ---------------------------
    # Selection
    # ---------------------------
    def active_object(self) -> Optional[Drawable]:
        return self._active

    def set_active_object(self, obj: Optional[Drawable]) -> None:
        if obj is not None and obj not in self._objects:
            raise ValueError("cannot select an object that is not on the canvas")
        if obj is self._active:
            return
        self._active = obj
        self._emit(SELECTION_CHANGED, obj)

    def discard_active_object(self) -> None:
        self.set_active_object(None)

    # ---------------------------
    # Hit testing
    # ---------------------------
    def hit_test(self, obj: Drawable, x: float, y: float) -> bool:
        if obj.supports(Capability.PRECISE_HIT):
            return obj.contains_point(x, y)
        return obj.in_bounding_rect(x, y)

    def objects_at(self, x: float, y: float) -> List[Drawable]:
        """Objects under the point, top-most first."""
        return [obj for obj in reversed(self._objects) if self.hit_test(obj, x, y)]

    # ---------------------------
    # Overlays
    # ---------------------------
    def add_overlay(self, obj: Drawable) -> None:
        if obj not in self.overlays:
            self.overlays.append(obj)

    def remove_overlay(self, obj: Optional[Drawable]) -> None:
        if obj is not None and obj in self.overlays:
            self.overlays.remove(obj)

    # ---------------------------
    # Snapshots
    # ---------------------------
    def serialize(self, primary: Optional[Drawable] = None) -> Snapshot:
        return encode_snapshot(self.width, self.height, self.background, self._objects, primary=primary)

    def restore(self, snapshot: Snapshot, on_complete: Optional[RestoreCallback] = None) -> None:
        """
        Replace the scene content with a snapshot.

        Decoding happens before anything is touched, so a SnapshotError
        leaves the current scene intact. `on_complete` receives the object
        recorded as primary in the snapshot (or None).
        """
        decoded = decode_snapshot(snapshot)

        if decoded.width > 0 and decoded.height > 0:
            self.width = decoded.width
            self.height = decoded.height
        self.background = decoded.background
        self._objects = []
        self.discard_active_object()
        for obj in decoded.objects:
            self.add(obj)

        primary = self.find(snapshot.primary_uid)
        logger.debug("restored %d objects", len(decoded.objects))
        if on_complete is not None:
            on_complete(primary)

    # ---------------------------
    # Rendering
    # ---------------------------
    def rasterize(self, include_overlays: bool = False, high_quality: bool = True) -> Image.Image:
        objects = self.get_objects()
        if include_overlays:
            objects.extend(self.overlays)
        img = composite_drawables(
            objects,
            (self.width, self.height),
            background=self.background,
            high_quality=high_quality,
            cache=self._render_cache,
        )
        self._render_cache.prune(obj.uid for obj in objects)
        return img

    def render(self, high_quality: bool = True) -> Image.Image:
        """Composite the scene with overlays and hand it to the render listeners.

        Pass `high_quality=False` while a pointer drag is in progress.
        """
        img = self.rasterize(include_overlays=True, high_quality=high_quality)
        for listener in list(self._render_listeners):
            listener(img)
        return img

    def selection_outline(self) -> Optional[List[Tuple[float, float]]]:
        """Corners of the selected object, or None while selection is off."""
        if not self.selection_enabled or self._active is None:
            return None
        return self._active.corners()

    def to_data_url(self) -> str:
        return encode_png_data_url(self.rasterize())
