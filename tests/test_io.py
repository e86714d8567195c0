from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from dunescape.io import run_dir, staged_output, write_png


def test_run_dir_layout(tmp_path) -> None:
    assert run_dir(tmp_path, -7, 16) == tmp_path / "seed-7" / "16x16"


def test_staged_output_replaces_previous_artifacts(tmp_path) -> None:
    target = run_dir(tmp_path, 1, 8)
    target.mkdir(parents=True)
    (target / "stale.png").write_bytes(b"old")
    (target / "nested").mkdir()

    with staged_output(tmp_path, 1, 8, overwrite=True) as stage:
        assert stage.parent == target.parent
        (stage / "height.npy").write_bytes(b"new")

    assert sorted(child.name for child in target.iterdir()) == ["height.npy"]
    assert not any(child.name.startswith(".staging-") for child in target.parent.iterdir())


def test_failed_run_keeps_previous_artifacts(tmp_path) -> None:
    target = run_dir(tmp_path, 1, 8)
    target.mkdir(parents=True)
    (target / "height.npy").write_bytes(b"old")

    with pytest.raises(RuntimeError):
        with staged_output(tmp_path, 1, 8, overwrite=True) as stage:
            (stage / "height.npy").write_bytes(b"new")
            raise RuntimeError("render failed")

    assert (target / "height.npy").read_bytes() == b"old"
    assert not any(child.name.startswith(".staging-") for child in target.parent.iterdir())


def test_non_empty_run_dir_requires_overwrite(tmp_path) -> None:
    target = run_dir(tmp_path, 3, 8)
    target.mkdir(parents=True)
    (target / "meta.json").write_text("{}", encoding="utf-8")

    with pytest.raises(FileExistsError):
        with staged_output(tmp_path, 3, 8, overwrite=False):
            pass


def test_write_png_keeps_bit_depth_and_channels(tmp_path) -> None:
    gray16 = np.array([[0, 65535], [1024, 30000]], dtype=np.uint16)
    rgb = np.zeros((2, 3, 3), dtype=np.uint8)
    write_png(tmp_path / "h16.png", gray16)
    write_png(tmp_path / "rgb.png", rgb)

    with Image.open(tmp_path / "h16.png") as image:
        assert image.mode in {"I", "I;16"}
        assert np.array_equal(np.asarray(image).astype(np.uint16), gray16)
    with Image.open(tmp_path / "rgb.png") as image:
        assert image.mode == "RGB"
        assert image.size == (3, 2)

    with pytest.raises(ValueError):
        write_png(tmp_path / "bad.png", np.zeros((2, 2), dtype=np.float32))
