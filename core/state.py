from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional


DEFAULT_BACKGROUND = "#0b0c1a"
DEFAULT_CANVAS_SIZE = (800, 600)
HISTORY_LIMIT = 40
FIT_SCALE = 0.95
DOWNLOAD_FILENAME = "photonx-edit.png"
HIGHLIGHTER_ALPHA = 0.4
DEFAULT_BRUSH_SIZE = 10
DEFAULT_FONT_SIZE = 32


class InteractionMode(str, Enum):
    MOVE = "move"
    BRUSH = "brush"
    ERASER = "eraser"
    CROP = "crop"


class BrushType(str, Enum):
    PENCIL = "pencil"
    MARKER = "marker"
    HIGHLIGHTER = "highlighter"


@dataclass
class BrushSettings:
    brush_type: str = BrushType.PENCIL.value
    color: str = "#ffffff"
    size: int = DEFAULT_BRUSH_SIZE


@dataclass(frozen=True)
class BrushConfig:
    width: float
    # Highlighter alpha rides in the rgba() color string.
    color: str


@dataclass
class TextStyle:
    font_size: int = DEFAULT_FONT_SIZE
    color: str = "#ffffff"
    font_family: str = "Poppins"


@dataclass
class EditorConfig:
    canvas_w: int = DEFAULT_CANVAS_SIZE[0]
    canvas_h: int = DEFAULT_CANVAS_SIZE[1]
    background: str = DEFAULT_BACKGROUND
    fit_scale: float = FIT_SCALE
    history_limit: int = HISTORY_LIMIT

    # Relay server used for background removal / colorization
    relay_url: str = "http://localhost:3000"
    relay_timeout: float = 60.0

    download_filename: str = DOWNLOAD_FILENAME

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EditorConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        cfg.relay_url = str(env.get("PHOTONX_RELAY_URL", cfg.relay_url)).rstrip("/")
        try:
            cfg.relay_timeout = float(env.get("PHOTONX_RELAY_TIMEOUT", cfg.relay_timeout))
        except ValueError:
            pass
        return cfg


def hex_to_rgba(hex_color: str, alpha: float) -> str:
    c = hex_color.strip().lstrip("#")
    if len(c) == 3:
        c = "".join(ch * 2 for ch in c)
    r = int(c[0:2], 16)
    g = int(c[2:4], 16)
    b = int(c[4:6], 16)
    return f"rgba({r},{g},{b},{alpha})"


def derive_brush_config(settings: BrushSettings) -> BrushConfig:
    """Stroke parameters for the brush variant currently selected in the UI."""
    try:
        size = int(settings.size) or DEFAULT_BRUSH_SIZE
    except (TypeError, ValueError):
        size = DEFAULT_BRUSH_SIZE

    brush_type = str(settings.brush_type).lower()
    if brush_type in (BrushType.MARKER.value, BrushType.HIGHLIGHTER.value):
        size *= 2
    if brush_type == BrushType.HIGHLIGHTER.value:
        return BrushConfig(width=float(size), color=hex_to_rgba(settings.color, HIGHLIGHTER_ALPHA))
    return BrushConfig(width=float(size), color=settings.color)
