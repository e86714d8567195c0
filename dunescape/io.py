"""Artifact output: per-run directories, staged writes and file encoders."""

from __future__ import annotations

from contextlib import contextmanager
import json
from pathlib import Path
import shutil
import tempfile
from typing import Any, Iterator

import numpy as np
from PIL import Image

from dunescape.mesh import MeshData


def run_dir(out_root: str | Path, seed: int, size: int) -> Path:
    """``<out_root>/seed<seed>/<size>x<size>``; negative seeds keep their sign."""

    return Path(out_root) / f"seed{int(seed)}" / f"{size}x{size}"


@contextmanager
def staged_output(out_root: str | Path, seed: int, size: int, *, overwrite: bool) -> Iterator[Path]:
    """Yield an empty staging directory that replaces the run directory on success.

    Artifacts from a previous run are only removed once every new file has
    been written; if the body raises, the run directory is left as it was.
    """

    root = Path(out_root)
    target = run_dir(root, seed, size)
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(
            f"Output directory already exists and is not empty: {target}. Use --overwrite to replace files."
        )
    target.mkdir(parents=True, exist_ok=True)
    # Refuse to clean anything that resolves outside the output root.
    target.resolve().relative_to(root.resolve())

    stage = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(target.parent)))
    try:
        yield stage
        for child in target.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
        for child in stage.iterdir():
            shutil.move(str(child), str(target / child.name))
    finally:
        shutil.rmtree(stage, ignore_errors=True)


def write_height_npy(path: str | Path, heights: np.ndarray) -> None:
    np.save(Path(path), heights.astype(np.float32), allow_pickle=False)


def write_png(path: str | Path, raster: np.ndarray) -> None:
    """Save a grayscale (uint8/uint16) or RGB (uint8, ``(h, w, 3)``) raster."""

    if raster.dtype not in (np.uint8, np.uint16):
        raise ValueError(f"unsupported raster dtype {raster.dtype}")
    if raster.ndim == 3 and (raster.shape[2] != 3 or raster.dtype != np.uint8):
        raise ValueError("color rasters must be (h, w, 3) uint8")
    Image.fromarray(np.ascontiguousarray(raster)).save(Path(path))


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    Path(path).write_text(text + "\n", encoding="utf-8")


def write_obj(path: str | Path, mesh: MeshData, *, name: str = "Desert") -> None:
    """Write a Wavefront OBJ with positions, normals and 1-based faces."""

    faces = mesh.indices.astype(np.int64).reshape(-1, 3) + 1
    lines = [f"o {name}"]
    lines.extend(f"v {x:.6f} {y:.6f} {z:.6f}" for x, y, z in mesh.vertices.tolist())
    lines.extend(f"vn {x:.6f} {y:.6f} {z:.6f}" for x, y, z in mesh.normals.tolist())
    lines.extend(f"f {a}//{a} {b}//{b} {c}//{c}" for a, b, c in faces.tolist())
    Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")
