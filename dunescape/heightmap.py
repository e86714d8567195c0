"""Heightmap source: normalized layered noise on a square grid."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from dunescape.config import HeightmapConfig
from dunescape.noise import fbm_noise
from dunescape.rng import RngStream


@dataclass(frozen=True)
class HeightmapResult:
    """Normalized heights plus the raw range they were scaled from."""

    heights: np.ndarray
    raw_min: float
    raw_max: float


def generate_heightmap(
    size: int,
    rng: RngStream,
    *,
    config: HeightmapConfig | None = None,
) -> HeightmapResult:
    """Generate a deterministic ``(size, size)`` float32 heightmap in [0, 1]."""

    if size < 2:
        raise ValueError("size must be >= 2")

    cfg = config or HeightmapConfig()
    raw = fbm_noise(
        size,
        rng.stage("heightmap"),
        octaves=cfg.octaves,
        initial_scale=cfg.initial_scale,
        lacunarity=cfg.lacunarity,
        persistence=cfg.persistence,
    )

    lo = float(np.min(raw))
    hi = float(np.max(raw))
    heights = raw.astype(np.float32, copy=True)
    # A constant field is returned untouched.
    if hi != lo:
        heights = ((heights - np.float32(lo)) / np.float32(hi - lo)).astype(np.float32)

    return HeightmapResult(heights=np.ascontiguousarray(heights), raw_min=lo, raw_max=hi)
