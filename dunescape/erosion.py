"""Particle-based hydraulic/aeolian erosion on a square float32 heightmap.

Each particle is dropped at a random lattice node, follows the local
downhill gradient (plus a constant directional bias) one cell-width per
step, and either picks up material through a precomputed circular brush or
drops excess sediment onto the four corners of the cell it just left.

All particle state and every height update is computed in float32 so that a
run is bit-reproducible for a fixed seed, grid and configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import math
from typing import Any, NamedTuple

import numpy as np

from dunescape.config import ErosionConfig
from dunescape.rng import RngStream


TERMINATION_STALLED = "stalled"
TERMINATION_OFF_GRID = "off_grid"
TERMINATION_EXPIRED = "expired"

_ZERO = np.float32(0.0)
_ONE = np.float32(1.0)
# A step climbing more than this always deposits, whatever the load.
_UPHILL_DEPOSIT_THRESHOLD = np.float32(2.0)

_UNIT_INTERVAL_FIELDS = (
    "inertia",
    "erode_speed",
    "deposit_speed",
    "evaporate_speed",
    "direction_bias",
)
_FINITE_FIELDS = (
    "sediment_capacity_factor",
    "min_sediment_capacity",
    "gravity",
    "initial_volume",
    "initial_speed",
)


class ErosionPreconditionError(ValueError):
    """Raised before any grid mutation when an erosion call is malformed."""


@dataclass(frozen=True)
class BrushStencil:
    """Per-cell erosion neighbors and weights stored as flat CSR arrays.

    Entries for cell ``i`` live in ``indices[starts[i]:starts[i + 1]]`` and
    the matching slice of ``weights``.
    """

    size: int
    radius: int
    starts: np.ndarray
    indices: np.ndarray
    weights: np.ndarray

    def cell(self, index: int) -> tuple[np.ndarray, np.ndarray]:
        lo = int(self.starts[index])
        hi = int(self.starts[index + 1])
        return self.indices[lo:hi], self.weights[lo:hi]

    def weight_sums(self) -> np.ndarray:
        counts = np.diff(self.starts)
        owners = np.repeat(np.arange(self.size * self.size), counts)
        sums = np.zeros(self.size * self.size, dtype=np.float64)
        np.add.at(sums, owners, self.weights.astype(np.float64))
        return sums


@dataclass(frozen=True)
class ErosionMetrics:
    """Summary of one `erode` call."""

    particles: int
    steps: int
    stalled: int
    off_grid: int
    expired: int
    eroded: float
    deposited: float


@dataclass(frozen=True)
class ParticleTrace:
    """Path and outcome of a single trajectory."""

    start: tuple[int, int]
    cells: tuple[tuple[int, int], ...]
    termination: str
    sediment: float
    eroded: float
    deposited: float

    @property
    def steps(self) -> int:
        return len(self.cells)


class _Params(NamedTuple):
    bias: np.float32
    capacity_factor: np.float32
    min_capacity: np.float32
    erode_speed: np.float32
    deposit_speed: np.float32
    retention: np.float32
    gravity: np.float32
    initial_volume: np.float32
    initial_speed: np.float32
    max_lifetime: int


class _Tally:
    __slots__ = ("steps", "stalled", "off_grid", "expired", "eroded", "deposited")

    def __init__(self) -> None:
        self.steps = 0
        self.stalled = 0
        self.off_grid = 0
        self.expired = 0
        self.eroded = 0.0
        self.deposited = 0.0

    def record(self, termination: str) -> None:
        if termination == TERMINATION_STALLED:
            self.stalled += 1
        elif termination == TERMINATION_OFF_GRID:
            self.off_grid += 1
        else:
            self.expired += 1


def build_brush(size: int, radius: int) -> BrushStencil:
    """Precompute the circular erosion brush for every cell of a ``size`` grid.

    Offsets with ``ox**2 + oy**2 < radius**2`` are kept, weighted
    ``1 - dist / radius``, clipped to the grid per cell and renormalized so
    each cell's weights sum to 1. Rows are processed one at a time to bound
    memory on large grids.
    """

    if size < 2:
        raise ErosionPreconditionError(f"grid size must be >= 2, got {size}")
    if radius < 1:
        raise ErosionPreconditionError(f"erosion radius must be >= 1, got {radius}")

    span = np.arange(-radius, radius + 1, dtype=np.int64)
    off_y, off_x = np.meshgrid(span, span, indexing="ij")
    sqr_dist = off_x * off_x + off_y * off_y
    inside = sqr_dist < radius * radius
    off_x = off_x[inside]
    off_y = off_y[inside]
    raw_weights = _ONE - np.sqrt(sqr_dist[inside].astype(np.float32)) / np.float32(radius)

    cols = np.arange(size, dtype=np.int64)
    counts = np.zeros(size * size, dtype=np.int64)
    index_rows: list[np.ndarray] = []
    weight_rows: list[np.ndarray] = []

    for centre_y in range(size):
        nx = cols[:, None] + off_x[None, :]
        ny = centre_y + off_y[None, :]
        valid = (nx >= 0) & (nx < size) & (ny >= 0) & (ny < size)

        w = np.where(valid, raw_weights[None, :], _ZERO)
        # Running float32 sum in offset order; skipped entries contribute an exact zero.
        sums = np.cumsum(w, axis=1, dtype=np.float32)[:, -1:]
        w = np.divide(w, sums, out=np.zeros_like(w), where=sums > _ZERO)

        counts[centre_y * size : (centre_y + 1) * size] = valid.sum(axis=1)
        index_rows.append((ny * size + nx)[valid])
        weight_rows.append(w[valid])

    starts = np.zeros(size * size + 1, dtype=np.int64)
    np.cumsum(counts, out=starts[1:])
    return BrushStencil(
        size=size,
        radius=radius,
        starts=starts,
        indices=np.concatenate(index_rows).astype(np.int64),
        weights=np.concatenate(weight_rows).astype(np.float32),
    )


def sample_height_and_gradient(
    flat: np.ndarray,
    size: int,
    pos_x: np.float32,
    pos_y: np.float32,
) -> tuple[np.float32, np.float32, np.float32]:
    """Bilinear height and gradient at a position inside ``[0, size-1)**2``."""

    coord_x = int(pos_x)
    coord_y = int(pos_y)
    x = pos_x - np.float32(coord_x)
    y = pos_y - np.float32(coord_y)

    nw = coord_y * size + coord_x
    height_nw = flat[nw]
    height_ne = flat[nw + 1]
    height_sw = flat[nw + size]
    height_se = flat[nw + size + 1]

    grad_x = (height_ne - height_nw) * (_ONE - y) + (height_se - height_sw) * y
    grad_y = (height_sw - height_nw) * (_ONE - x) + (height_se - height_ne) * x
    height = (
        height_nw * (_ONE - x) * (_ONE - y)
        + height_ne * x * (_ONE - y)
        + height_sw * (_ONE - x) * y
        + height_se * x * y
    )
    return height, grad_x, grad_y


def deposit_bilinear(
    flat: np.ndarray,
    size: int,
    index: int,
    offset_x: np.float32,
    offset_y: np.float32,
    amount: np.float32,
) -> None:
    """Spread `amount` over the four corners of the cell whose NW node is `index`."""

    inv_x = _ONE - offset_x
    inv_y = _ONE - offset_y
    flat[index] += amount * inv_x * inv_y
    flat[index + 1] += amount * offset_x * inv_y
    flat[index + size] += amount * inv_x * offset_y
    flat[index + size + 1] += amount * offset_x * offset_y


def erode_brush(
    flat: np.ndarray,
    indices: np.ndarray,
    weights: np.ndarray,
    amount: np.float32,
) -> np.float32:
    """Remove ``amount * weight`` from each brush node, capped at the node's height.

    Returns the total removed, which the particle adds to its sediment.
    """

    if indices.size == 0:
        return _ZERO
    weighted = weights * amount
    current = flat[indices]
    removed = np.minimum(current, weighted)
    flat[indices] = current - removed
    return removed.sum(dtype=np.float32)


class ErosionEngine:
    """Stateful particle erosion simulator.

    The engine owns a PRNG stream and a brush cache that persist across
    calls, so repeated small `step` calls continue the same random sequence
    as one large `erode` call. Grids are borrowed for a single call only.
    """

    def __init__(self, config: ErosionConfig | None = None) -> None:
        cfg = config or ErosionConfig()
        _validate_config(cfg)
        self._config = cfg
        self._params = _derive_params(cfg)
        self._rng: np.random.Generator | None = None
        self._brush: BrushStencil | None = None
        self._last_metrics: ErosionMetrics | None = None

    @property
    def config(self) -> ErosionConfig:
        return self._config

    @property
    def last_metrics(self) -> ErosionMetrics | None:
        return self._last_metrics

    @property
    def brush_size(self) -> int | None:
        return None if self._brush is None else self._brush.size

    def configure(self, **changes: Any) -> ErosionConfig:
        """Replace configuration fields, invalidating only the affected caches."""

        cfg = replace(self._config, **changes)
        _validate_config(cfg)
        if cfg.seed != self._config.seed:
            self._rng = None
        if cfg.erosion_radius != self._config.erosion_radius:
            self._brush = None
        self._config = cfg
        self._params = _derive_params(cfg)
        return cfg

    def reseed(self, seed: int | None = None) -> None:
        """Restart the random stream, optionally switching to a new seed."""

        if seed is not None and seed != self._config.seed:
            self._config = replace(self._config, seed=int(seed))
        self._rng = RngStream(self._config.seed).stage("erosion")

    def resize(self, size: int) -> None:
        """Rebuild the brush cache for a grid of ``size x size`` cells."""

        radius = self._config.erosion_radius
        if size < 2:
            raise ErosionPreconditionError(f"grid size must be >= 2, got {size}")
        if radius >= size:
            raise ErosionPreconditionError(
                f"erosion radius {radius} must be smaller than grid size {size}"
            )
        self._brush = build_brush(size, radius)

    def erode(self, grid: np.ndarray, iterations: int = 1, *, reseed: bool = False) -> None:
        """Run `iterations` particle trajectories, mutating `grid` in place."""

        size = _validate_grid(grid)
        iterations = _validate_iterations(iterations)
        self._prepare(size)
        if reseed or self._rng is None:
            self.reseed()

        flat = grid.reshape(-1)
        tally = _Tally()
        rng = self._rng
        for _ in range(iterations):
            start_x = int(rng.integers(0, size - 1))
            start_y = int(rng.integers(0, size - 1))
            termination, _ = self._run_particle(flat, size, start_x, start_y, tally)
            tally.record(termination)

        self._last_metrics = ErosionMetrics(
            particles=iterations,
            steps=tally.steps,
            stalled=tally.stalled,
            off_grid=tally.off_grid,
            expired=tally.expired,
            eroded=tally.eroded,
            deposited=tally.deposited,
        )

    def step(self, grid: np.ndarray, iterations: int = 1) -> None:
        """Continue erosion without reseeding, for incremental/animated runs."""

        self.erode(grid, iterations, reseed=False)

    def trace_particle(self, grid: np.ndarray, start_x: int, start_y: int) -> ParticleTrace:
        """Simulate one trajectory from a fixed lattice node, mutating `grid`.

        Does not consume the engine's random stream.
        """

        size = _validate_grid(grid)
        if not (0 <= start_x <= size - 2 and 0 <= start_y <= size - 2):
            raise ErosionPreconditionError(
                f"start node ({start_x}, {start_y}) must lie in [0, {size - 2}] on both axes"
            )
        self._prepare(size)

        tally = _Tally()
        cells: list[tuple[int, int]] = []
        termination, sediment = self._run_particle(
            grid.reshape(-1), size, start_x, start_y, tally, cells=cells
        )
        return ParticleTrace(
            start=(start_x, start_y),
            cells=tuple(cells),
            termination=termination,
            sediment=float(sediment),
            eroded=tally.eroded,
            deposited=tally.deposited,
        )

    def _prepare(self, size: int) -> None:
        if self._brush is None:
            self.resize(size)
        elif self._brush.size != size:
            raise ErosionPreconditionError(
                f"brush cached for size {self._brush.size}, grid has size {size}; call resize({size}) first"
            )

    def _run_particle(
        self,
        flat: np.ndarray,
        size: int,
        start_x: int,
        start_y: int,
        tally: _Tally,
        *,
        cells: list[tuple[int, int]] | None = None,
    ) -> tuple[str, np.float32]:
        p = self._params
        brush = self._brush
        limit = np.float32(size - 1)

        pos_x = np.float32(start_x)
        pos_y = np.float32(start_y)
        speed = p.initial_speed
        volume = p.initial_volume
        sediment = _ZERO
        termination = TERMINATION_EXPIRED

        for _ in range(p.max_lifetime):
            node_x = int(pos_x)
            node_y = int(pos_y)
            index = node_y * size + node_x
            offset_x = pos_x - np.float32(node_x)
            offset_y = pos_y - np.float32(node_y)

            height, grad_x, grad_y = sample_height_and_gradient(flat, size, pos_x, pos_y)

            # Previous direction is not carried over; only the bias is.
            dir_x = p.bias - grad_x
            dir_y = p.bias - grad_y
            length = np.sqrt(dir_x * dir_x + dir_y * dir_y)
            if length != _ZERO:
                dir_x = dir_x / length
                dir_y = dir_y / length
            pos_x = pos_x + dir_x
            pos_y = pos_y + dir_y

            if dir_x == _ZERO and dir_y == _ZERO:
                termination = TERMINATION_STALLED
                break
            if pos_x < _ZERO or pos_x >= limit or pos_y < _ZERO or pos_y >= limit:
                termination = TERMINATION_OFF_GRID
                break

            new_height = sample_height_and_gradient(flat, size, pos_x, pos_y)[0]
            delta_height = new_height - height

            capacity = max(-delta_height * speed * volume * p.capacity_factor, p.min_capacity)

            if sediment > capacity or delta_height > _UPHILL_DEPOSIT_THRESHOLD:
                if delta_height > _UPHILL_DEPOSIT_THRESHOLD:
                    amount = min(delta_height, sediment)
                else:
                    amount = (sediment - capacity) * p.deposit_speed
                sediment = sediment - amount
                deposit_bilinear(flat, size, index, offset_x, offset_y, amount)
                tally.deposited += float(amount)
            else:
                # Never take more than the drop just observed, or the particle digs pits behind itself.
                amount = min((capacity - sediment) * p.erode_speed, -delta_height)
                indices, weights = brush.cell(index)
                removed = erode_brush(flat, indices, weights, amount)
                sediment = sediment + removed
                tally.eroded += float(removed)

            radicand = speed * speed + delta_height * p.gravity
            speed = np.sqrt(max(_ZERO, radicand))
            volume = volume * p.retention

            tally.steps += 1
            if cells is not None:
                cells.append((node_x, node_y))

        return termination, sediment


def _derive_params(cfg: ErosionConfig) -> _Params:
    return _Params(
        bias=np.float32(cfg.direction_bias) * np.float32(cfg.inertia),
        capacity_factor=np.float32(cfg.sediment_capacity_factor),
        min_capacity=np.float32(cfg.min_sediment_capacity),
        erode_speed=np.float32(cfg.erode_speed),
        deposit_speed=np.float32(cfg.deposit_speed),
        retention=_ONE - np.float32(cfg.evaporate_speed),
        gravity=np.float32(cfg.gravity),
        initial_volume=np.float32(cfg.initial_volume),
        initial_speed=np.float32(cfg.initial_speed),
        max_lifetime=int(cfg.max_lifetime),
    )


def _validate_config(cfg: ErosionConfig) -> None:
    if isinstance(cfg.erosion_radius, bool) or not isinstance(cfg.erosion_radius, int):
        raise ErosionPreconditionError("erosion_radius must be an integer")
    if cfg.erosion_radius < 1:
        raise ErosionPreconditionError(f"erosion_radius must be >= 1, got {cfg.erosion_radius}")
    if isinstance(cfg.max_lifetime, bool) or not isinstance(cfg.max_lifetime, int):
        raise ErosionPreconditionError("max_lifetime must be an integer")
    if cfg.max_lifetime < 0:
        raise ErosionPreconditionError(f"max_lifetime must be >= 0, got {cfg.max_lifetime}")
    for name in _UNIT_INTERVAL_FIELDS:
        value = float(getattr(cfg, name))
        if not 0.0 <= value <= 1.0:
            raise ErosionPreconditionError(f"{name} must be within [0, 1], got {value}")
    for name in _FINITE_FIELDS:
        value = float(getattr(cfg, name))
        if not math.isfinite(value):
            raise ErosionPreconditionError(f"{name} must be finite, got {value}")


def _validate_grid(grid: np.ndarray) -> int:
    if not isinstance(grid, np.ndarray):
        raise ErosionPreconditionError("grid must be a numpy array")
    if grid.ndim != 2 or grid.shape[0] != grid.shape[1]:
        raise ErosionPreconditionError(f"grid must be square 2D, got shape {grid.shape}")
    if grid.dtype != np.float32:
        raise ErosionPreconditionError(f"grid must be float32, got {grid.dtype}")
    if not grid.flags.c_contiguous or not grid.flags.writeable:
        raise ErosionPreconditionError("grid must be a writeable C-contiguous array")
    size = int(grid.shape[0])
    if size < 2:
        raise ErosionPreconditionError(f"grid size must be >= 2, got {size}")
    if not np.isfinite(grid).all():
        raise ErosionPreconditionError("grid contains NaN or infinite heights")
    return size


def _validate_iterations(iterations: int) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise ErosionPreconditionError("iterations must be an integer")
    if iterations < 0:
        raise ErosionPreconditionError(f"iterations must be >= 0, got {iterations}")
    return int(iterations)
