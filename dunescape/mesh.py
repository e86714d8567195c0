"""Triangle mesh construction from a square heightmap."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from dunescape.config import MeshConfig


@dataclass(frozen=True)
class MeshData:
    """Vertex, index and normal buffers ready for upload or export."""

    vertices: np.ndarray
    indices: np.ndarray
    normals: np.ndarray
    max_height: float

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.indices.shape[0] // 3)


def build_mesh(heights: np.ndarray, *, config: MeshConfig | None = None) -> MeshData:
    """Build a grid mesh spanning ``[-scale, scale]`` on X/Z with heights on Y.

    Each interior cell with NW vertex ``i`` contributes the triangles
    ``(i + size, i + size + 1, i)`` and ``(i + size + 1, i + 1, i)``.
    """

    if heights.ndim != 2 or heights.shape[0] != heights.shape[1]:
        raise ValueError("heights must be a square 2D array")
    size = int(heights.shape[0])
    if size < 2:
        raise ValueError("heights must be at least 2x2")

    cfg = config or MeshConfig()
    yy, xx = np.indices((size, size), dtype=np.float32)
    denom = np.float32(size - 1)
    vertices = np.empty((size * size, 3), dtype=np.float32)
    vertices[:, 0] = ((xx / denom) * 2.0 - 1.0).ravel() * cfg.scale
    vertices[:, 1] = heights.astype(np.float32).ravel() * cfg.elevation_scale
    vertices[:, 2] = ((yy / denom) * 2.0 - 1.0).ravel() * cfg.scale

    indices = grid_triangle_indices(size)
    normals = vertex_normals(vertices, indices)
    return MeshData(
        vertices=vertices,
        indices=indices,
        normals=normals,
        max_height=float(cfg.elevation_scale),
    )


def grid_triangle_indices(size: int) -> np.ndarray:
    """Flat triangle index buffer for a ``size x size`` vertex grid."""

    cell_y, cell_x = np.indices((size - 1, size - 1), dtype=np.int64)
    i = (cell_y * size + cell_x).ravel()
    tris = np.stack(
        (
            i + size,
            i + size + 1,
            i,
            i + size + 1,
            i + 1,
            i,
        ),
        axis=-1,
    )
    dtype = np.uint16 if size * size <= np.iinfo(np.uint16).max + 1 else np.uint32
    return tris.reshape(-1).astype(dtype)


def vertex_normals(vertices: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals accumulated from face cross products."""

    faces = indices.astype(np.int64).reshape(-1, 3)
    v0 = vertices[faces[:, 0]].astype(np.float64)
    v1 = vertices[faces[:, 1]].astype(np.float64)
    v2 = vertices[faces[:, 2]].astype(np.float64)
    face_normals = np.cross(v1 - v0, v2 - v0)

    accum = np.zeros((vertices.shape[0], 3), dtype=np.float64)
    for corner in range(3):
        np.add.at(accum, faces[:, corner], face_normals)

    lengths = np.linalg.norm(accum, axis=1, keepdims=True)
    normals = np.divide(accum, lengths, out=np.zeros_like(accum), where=lengths > 0.0)
    return normals.astype(np.float32)
