from __future__ import annotations

from typing import Iterable

import numpy as np


FILTER_GRAYSCALE = "grayscale"
FILTER_SEPIA = "sepia"
FILTER_INVERT = "invert"
FILTER_NAMES = (FILTER_GRAYSCALE, FILTER_SEPIA, FILTER_INVERT)

_SEPIA = np.array(
    [
        [0.393, 0.769, 0.189],
        [0.349, 0.686, 0.168],
        [0.272, 0.534, 0.131],
    ],
    dtype=np.float32,
)


def is_known_filter(name: str) -> bool:
    return str(name).strip().lower() in FILTER_NAMES


def apply_filters_rgba(rgba: np.ndarray, filters: Iterable[str]) -> np.ndarray:
    if rgba.dtype != np.uint8 or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError("rgba must be HxWx4 uint8")

    out = rgba.astype(np.float32).copy()
    rgb = out[..., :3]

    for name in filters:
        f = str(name).strip().lower()
        if f == FILTER_GRAYSCALE:
            # Average of the three channels
            avg = rgb.mean(axis=2, keepdims=True)
            rgb = np.repeat(avg, 3, axis=2)
        elif f == FILTER_SEPIA:
            rgb = rgb @ _SEPIA.T
        elif f == FILTER_INVERT:
            rgb = 255.0 - rgb
        else:
            raise ValueError(f"unknown filter: {name}")
        rgb = np.clip(rgb, 0.0, 255.0)

    out[..., :3] = rgb
    return out.astype(np.uint8)
