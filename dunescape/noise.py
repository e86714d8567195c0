"""Value noise used by the heightmap source."""

from __future__ import annotations

import numpy as np


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def value_noise_2d(size: int, rng: np.random.Generator, *, res: int) -> np.ndarray:
    """Generate square value noise in [-1, 1] from a coarse random lattice."""

    if size <= 0:
        raise ValueError("size must be positive")
    if res < 1:
        raise ValueError("res must be >= 1")

    lattice = rng.uniform(-1.0, 1.0, size=(res + 1, res + 1)).astype(np.float32)

    coords = np.linspace(0.0, float(res), num=size, endpoint=False, dtype=np.float32)
    c0 = np.floor(coords).astype(np.int32)
    c1 = np.minimum(c0 + 1, res)
    t = _smoothstep(coords - c0)

    g00 = lattice[c0[:, None], c0[None, :]]
    g10 = lattice[c0[:, None], c1[None, :]]
    g01 = lattice[c1[:, None], c0[None, :]]
    g11 = lattice[c1[:, None], c1[None, :]]

    top = g00 * (1.0 - t[None, :]) + g10 * t[None, :]
    bottom = g01 * (1.0 - t[None, :]) + g11 * t[None, :]
    noise = top * (1.0 - t[:, None]) + bottom * t[:, None]
    return noise.astype(np.float32)


def fbm_noise(
    size: int,
    rng: np.random.Generator,
    *,
    octaves: int = 7,
    initial_scale: float = 2.0,
    lacunarity: float = 2.0,
    persistence: float = 0.5,
) -> np.ndarray:
    """Sum `octaves` layers of value noise, each finer and weaker than the last.

    Layer ``k`` uses a lattice of ``initial_scale * lacunarity**k`` cells per
    side and is weighted by ``persistence**k``. The result is not normalized.
    """

    if octaves < 1:
        raise ValueError("octaves must be >= 1")

    field = np.zeros((size, size), dtype=np.float32)
    weight = 1.0
    scale = float(initial_scale)

    for _ in range(octaves):
        res = max(1, int(round(scale)))
        field += np.float32(weight) * value_noise_2d(size, rng, res=res)
        weight *= persistence
        scale *= lacunarity

    return field
