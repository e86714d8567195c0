"""Raster products derived from a heightmap: shading, previews and color."""

from __future__ import annotations

from dataclasses import replace

import numpy as np
from matplotlib.colors import LinearSegmentedColormap

from dunescape.config import MeshConfig
from dunescape.mesh import build_mesh


_SAND_PALETTE = [
    (0.00, "#6b4a2b"),  # shaded hollows
    (0.35, "#b9824a"),
    (0.65, "#deb574"),
    (1.00, "#f6e3b4"),  # crests
]


def light_direction(azimuth_deg: float, altitude_deg: float) -> np.ndarray:
    """Unit vector toward the sun in mesh space (X east, Y up, Z south).

    Azimuth is measured clockwise from north, so 315 is a north-west light.
    """

    azimuth = np.deg2rad(azimuth_deg)
    altitude = np.deg2rad(altitude_deg)
    return np.array(
        [
            np.sin(azimuth) * np.cos(altitude),
            np.sin(altitude),
            -np.cos(azimuth) * np.cos(altitude),
        ],
        dtype=np.float64,
    )


def hillshade(
    heights: np.ndarray,
    *,
    mesh: MeshConfig | None = None,
    azimuth_deg: float = 315.0,
    altitude_deg: float = 45.0,
    vertical_exaggeration: float = 1.0,
) -> np.ndarray:
    """Lambert shading of the terrain mesh surface as 8-bit grayscale.

    Shading uses the same vertex normals that ``build_mesh`` exports, so the
    preview matches the lighting of the OBJ under a single directional sun.
    """

    if heights.ndim != 2:
        raise ValueError("heights must be a 2D array")
    if vertical_exaggeration <= 0:
        raise ValueError("vertical_exaggeration must be positive")

    cfg = mesh or MeshConfig()
    surface = build_mesh(
        heights,
        config=replace(cfg, elevation_scale=cfg.elevation_scale * float(vertical_exaggeration)),
    )
    lit = surface.normals.astype(np.float64) @ light_direction(azimuth_deg, altitude_deg)
    shaded = np.clip(lit, 0.0, 1.0).reshape(heights.shape)
    return np.round(shaded * 255.0).astype(np.uint8)


def _unit_range(values: np.ndarray, value_range: tuple[float, float] | None) -> np.ndarray:
    if value_range is None:
        lo, hi = float(np.min(values)), float(np.max(values))
    else:
        lo, hi = value_range
    span = max(hi - lo, 1e-6)
    return np.clip((values.astype(np.float64) - lo) / span, 0.0, 1.0)


def height_preview_u16(heights: np.ndarray, *, value_range: tuple[float, float] | None = None) -> np.ndarray:
    """16-bit grayscale of `heights`; the min/max of the array map to black/white unless `value_range` is given."""

    return np.round(_unit_range(heights, value_range) * 65535.0).astype(np.uint16)


def float_preview_u8(values: np.ndarray, *, value_range: tuple[float, float] | None = None) -> np.ndarray:
    return np.round(_unit_range(values, value_range) * 255.0).astype(np.uint8)


def signed_preview_u8(values: np.ndarray, *, clip: float = 1.0) -> np.ndarray:
    """Map signed float values in [-clip, clip] into 8-bit [0, 255]; 0 maps to mid-gray."""

    normalized = np.clip(values.astype(np.float32) / max(clip, 1e-6), -1.0, 1.0)
    encoded = (normalized * 0.5) + 0.5
    return np.round(encoded * 255.0).astype(np.uint8)


def sand_colormap_rgb(heights: np.ndarray, shade: np.ndarray | None = None) -> np.ndarray:
    """Color heights with a sand ramp, optionally modulated by a hillshade."""

    cmap = LinearSegmentedColormap.from_list("desert_sand", _SAND_PALETTE)
    rgb = cmap(_unit_range(heights, None))[..., :3]
    if shade is not None:
        light = 0.45 + 0.55 * (shade.astype(np.float32) / 255.0)
        rgb = rgb * light[..., None]
    return np.round(np.clip(rgb, 0.0, 1.0) * 255.0).astype(np.uint8)
