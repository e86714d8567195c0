from __future__ import annotations

import json

import numpy as np
import pytest
from PIL import Image

from cli.main import main


def _base_args(out_dir) -> list[str]:
    return [
        "--seed",
        "42",
        "--out",
        str(out_dir),
        "--size",
        "24",
        "--iterations",
        "60",
        "--overwrite",
    ]


def test_runtime_fields_only_in_meta_json(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    assert main(_base_args(out_dir)) == 0

    base = out_dir / "seed42" / "24x24"
    meta = json.loads((base / "meta.json").read_text(encoding="utf-8"))
    deterministic_meta = json.loads((base / "deterministic_meta.json").read_text(encoding="utf-8"))

    assert "erosion_seconds" in meta
    assert meta["erosion_seconds"] >= 0.0
    assert "generated_at_utc" in meta

    assert "erosion_seconds" not in deterministic_meta
    assert "generated_at_utc" not in deterministic_meta
    assert "numpy_version" not in deterministic_meta

    erosion = deterministic_meta["erosion"]
    assert erosion["particles"] == 60
    assert erosion["stalled"] + erosion["off_grid"] + erosion["expired"] == 60
    assert deterministic_meta["config"]["erosion"]["seed"] == 42
    assert deterministic_meta["config"]["erosion"]["direction_bias"] == 0.5
    assert deterministic_meta["mesh"]["vertex_count"] == 24 * 24
    assert deterministic_meta["mesh"]["triangle_count"] == 23 * 23 * 2
    assert "changed_fraction" in deterministic_meta["height_change"]

    for name in (
        "height_pre.npy",
        "height.npy",
        "height_16.png",
        "hillshade.png",
        "terrain_rgb.png",
        "debug_erosion_delta.png",
        "mesh.obj",
    ):
        assert (base / name).exists(), name
    assert not (base / "debug_tick_000.png").exists()

    heights = np.load(base / "height.npy")
    assert heights.shape == (24, 24)
    assert heights.dtype == np.float32
    with Image.open(base / "height_16.png") as image:
        assert image.mode in {"I", "I;16"}
        assert image.size == (24, 24)
    with Image.open(base / "terrain_rgb.png") as image:
        assert image.mode == "RGB"

    obj_lines = (base / "mesh.obj").read_text(encoding="utf-8").splitlines()
    assert sum(1 for line in obj_lines if line.startswith("v ")) == 24 * 24
    assert sum(1 for line in obj_lines if line.startswith("f ")) == 23 * 23 * 2


def test_deterministic_meta_is_reproducible(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_a = tmp_path / "a"
    out_b = tmp_path / "b"
    assert main(_base_args(out_a)) == 0
    assert main(_base_args(out_b) + ["--ticks", "3"]) == 0

    meta_a = json.loads((out_a / "seed42" / "24x24" / "deterministic_meta.json").read_text(encoding="utf-8"))
    meta_b = json.loads((out_b / "seed42" / "24x24" / "deterministic_meta.json").read_text(encoding="utf-8"))
    for key in ("particles", "steps", "stalled", "off_grid", "expired"):
        assert meta_a["erosion"][key] == meta_b["erosion"][key], key
    assert meta_a["erosion"]["eroded"] == pytest.approx(meta_b["erosion"]["eroded"])
    assert meta_a["height_change"] == meta_b["height_change"]
    assert meta_b["ticks"] == 3

    heights_a = np.load(out_a / "seed42" / "24x24" / "height.npy")
    heights_b = np.load(out_b / "seed42" / "24x24" / "height.npy")
    assert np.array_equal(heights_a, heights_b)


def test_overwrite_cleans_stale_outputs(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    args = _base_args(out_dir)

    assert main(args + ["--debug-tier", "1", "--ticks", "2"]) == 0
    base = out_dir / "seed42" / "24x24"
    assert (base / "debug_tick_000.png").exists()
    assert (base / "debug_tick_001.png").exists()

    assert main(args + ["--debug-tier", "0", "--no-mesh"]) == 0
    assert not (base / "debug_tick_000.png").exists()
    assert not (base / "mesh.obj").exists()


def test_existing_output_requires_overwrite(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    args = _base_args(out_dir)
    assert main(args) == 0

    with pytest.raises(FileExistsError):
        main([arg for arg in args if arg != "--overwrite"])


def test_invalid_arguments_exit_with_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"

    with pytest.raises(SystemExit) as exc:
        main(["--out", str(out_dir), "--size", "1"])
    assert exc.value.code == 2

    with pytest.raises(SystemExit) as exc:
        main(["--out", str(out_dir), "--size", "8", "--erosion-radius", "8"])
    assert exc.value.code == 2

    with pytest.raises(SystemExit) as exc:
        main(["--out", str(out_dir), "--size", "8", "--iterations", "5", "--inertia", "1.5"])
    assert exc.value.code == 2


def test_erosion_flags_reach_config(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    flags = {
        "--sediment-capacity-factor": ("sediment_capacity_factor", 6.0),
        "--min-sediment-capacity": ("min_sediment_capacity", 0.02),
        "--erode-speed": ("erode_speed", 0.5),
        "--deposit-speed": ("deposit_speed", 0.25),
        "--evaporate-speed": ("evaporate_speed", 0.05),
        "--gravity": ("gravity", 2.0),
        "--initial-volume": ("initial_volume", 1.5),
        "--initial-speed": ("initial_speed", 0.5),
    }
    extra: list[str] = []
    for flag, (_, value) in flags.items():
        extra += [flag, str(value)]

    assert main(_base_args(out_dir) + extra) == 0

    meta = json.loads((out_dir / "seed42" / "24x24" / "deterministic_meta.json").read_text(encoding="utf-8"))
    erosion_config = meta["config"]["erosion"]
    for field, value in flags.values():
        assert erosion_config[field] == value, field
    assert erosion_config["max_lifetime"] == 30


def test_out_of_range_erosion_flag_is_a_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit) as exc:
        main(["--out", str(tmp_path / "out"), "--size", "8", "--iterations", "5", "--erode-speed", "2"])
    assert exc.value.code == 2
