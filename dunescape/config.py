"""Configuration models for desert terrain generation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


DEFAULT_SIZE = 255
DEFAULT_ITERATIONS = 50000


@dataclass(frozen=True)
class HeightmapConfig:
    """Controls layered value-noise heightmap synthesis."""

    octaves: int = 7
    persistence: float = 0.5
    lacunarity: float = 2.0
    initial_scale: float = 2.0


@dataclass(frozen=True)
class ErosionConfig:
    """Controls the particle erosion engine."""

    seed: int = 0
    erosion_radius: int = 3
    # 0 turns straight downhill every step, 1 keeps the bias direction.
    inertia: float = 0.05
    sediment_capacity_factor: float = 4.0
    # Keeps carry capacity above zero on flat terrain.
    min_sediment_capacity: float = 0.01
    erode_speed: float = 0.3
    deposit_speed: float = 0.3
    evaporate_speed: float = 0.01
    gravity: float = 4.0
    max_lifetime: int = 30
    initial_volume: float = 1.0
    initial_speed: float = 1.0
    direction_bias: float = 0.5


@dataclass(frozen=True)
class MeshConfig:
    """World-space scaling for mesh export."""

    scale: float = 20.0
    elevation_scale: float = 10.0


@dataclass(frozen=True)
class RenderConfig:
    """Derived raster rendering configuration."""

    hillshade_azimuth_deg: float = 315.0
    hillshade_altitude_deg: float = 45.0
    hillshade_vertical_exaggeration: float = 1.0
    delta_preview_clip: float = 0.05


@dataclass(frozen=True)
class GeneratorConfig:
    """Primary generation configuration."""

    debug_tier: int = 0
    heightmap: HeightmapConfig = field(default_factory=HeightmapConfig)
    erosion: ErosionConfig = field(default_factory=ErosionConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
