"""Generate -> erode -> mesh composition."""

from __future__ import annotations

from dataclasses import dataclass, replace
import time
from typing import Callable

import numpy as np

from dunescape.config import GeneratorConfig
from dunescape.erosion import ErosionEngine, ErosionMetrics
from dunescape.heightmap import generate_heightmap
from dunescape.mesh import MeshData, build_mesh
from dunescape.metrics import HeightDeltaMetrics, height_delta_metrics
from dunescape.rng import RngStream


TickCallback = Callable[[int, np.ndarray], None]


@dataclass(frozen=True)
class TerrainResult:
    """Heightmaps before and after erosion plus the exported mesh."""

    seed: int
    size: int
    iterations: int
    ticks: int
    heights_pre: np.ndarray
    heights: np.ndarray
    mesh: MeshData
    erosion_metrics: ErosionMetrics
    delta_metrics: HeightDeltaMetrics
    erosion_seconds: float


def split_iterations(iterations: int, ticks: int) -> list[int]:
    """Spread `iterations` over `ticks` chunks, remainder going to the first chunks."""

    if ticks < 1:
        raise ValueError("ticks must be >= 1")
    if iterations < 0:
        raise ValueError("iterations must be >= 0")
    base, extra = divmod(iterations, ticks)
    return [base + (1 if tick < extra else 0) for tick in range(ticks)]


def generate_terrain(
    size: int,
    seed: int,
    iterations: int,
    *,
    config: GeneratorConfig | None = None,
    ticks: int = 1,
    on_tick: TickCallback | None = None,
) -> TerrainResult:
    """Generate a heightmap, erode it in `ticks` chunks and build its mesh.

    The erosion engine is reseeded once at the start; later chunks continue
    the same random stream, so the result does not depend on `ticks`.
    """

    cfg = config or GeneratorConfig()
    erosion_cfg = replace(cfg.erosion, seed=int(seed))
    chunks = split_iterations(iterations, ticks)

    source = generate_heightmap(size, RngStream(seed), config=cfg.heightmap)
    heights_pre = source.heights
    heights = heights_pre.copy()

    engine = ErosionEngine(erosion_cfg)
    engine.resize(size)

    t0 = time.perf_counter()
    steps = stalled = off_grid = expired = 0
    eroded = deposited = 0.0
    for tick, chunk in enumerate(chunks):
        engine.erode(heights, chunk, reseed=(tick == 0))
        m = engine.last_metrics
        steps += m.steps
        stalled += m.stalled
        off_grid += m.off_grid
        expired += m.expired
        eroded += m.eroded
        deposited += m.deposited
        if on_tick is not None:
            on_tick(tick, heights)
    erosion_seconds = time.perf_counter() - t0

    erosion_metrics = ErosionMetrics(
        particles=int(iterations),
        steps=steps,
        stalled=stalled,
        off_grid=off_grid,
        expired=expired,
        eroded=eroded,
        deposited=deposited,
    )

    return TerrainResult(
        seed=int(seed),
        size=int(size),
        iterations=int(iterations),
        ticks=len(chunks),
        heights_pre=heights_pre,
        heights=heights,
        mesh=build_mesh(heights, config=cfg.mesh),
        erosion_metrics=erosion_metrics,
        delta_metrics=height_delta_metrics(heights_pre, heights),
        erosion_seconds=erosion_seconds,
    )
