"""Before/after summaries of a heightmap."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class HeightDeltaMetrics:
    """How much an erosion pass moved material around."""

    changed_cells: int
    changed_fraction: float
    total_removed: float
    total_added: float
    net_change: float
    max_removed: float
    max_added: float
    min_height: float
    max_height: float
    mean_height: float


def height_delta_metrics(before: np.ndarray, after: np.ndarray, *, tolerance: float = 0.0) -> HeightDeltaMetrics:
    """Compare two heightmaps of equal shape cell by cell."""

    if before.shape != after.shape:
        raise ValueError("before and after must have the same shape")
    if after.size == 0:
        raise ValueError("heightmaps must not be empty")

    delta = after.astype(np.float64) - before.astype(np.float64)
    changed = np.abs(delta) > tolerance
    removed = np.clip(-delta, 0.0, None)
    added = np.clip(delta, 0.0, None)
    return HeightDeltaMetrics(
        changed_cells=int(changed.sum()),
        changed_fraction=float(changed.mean()),
        total_removed=float(removed.sum()),
        total_added=float(added.sum()),
        net_change=float(delta.sum()),
        max_removed=float(removed.max()),
        max_added=float(added.max()),
        min_height=float(np.min(after)),
        max_height=float(np.max(after)),
        mean_height=float(np.mean(after)),
    )
