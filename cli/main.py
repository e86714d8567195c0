"""CLI entry point for desert terrain generation."""

from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import datetime, timezone
import platform

import numpy as np
from dunescape.config import DEFAULT_ITERATIONS, DEFAULT_SIZE, ErosionConfig, GeneratorConfig, MeshConfig
from dunescape.derive import float_preview_u8, height_preview_u16, hillshade, sand_colormap_rgb, signed_preview_u8
from dunescape.erosion import ErosionPreconditionError
from dunescape.io import run_dir, staged_output, write_height_npy, write_json, write_obj, write_png
from dunescape.pipeline import generate_terrain


# (flag, ErosionConfig field, type, help)
_EROSION_FLAGS = (
    ("--erosion-radius", "erosion_radius", int, "Brush radius in cells"),
    ("--inertia", "inertia", float, "Scales the constant direction bias, in [0, 1]"),
    ("--direction-bias", "direction_bias", float, "Constant push added to both axes, in [0, 1]"),
    ("--sediment-capacity-factor", "sediment_capacity_factor", float, "Carry capacity multiplier"),
    ("--min-sediment-capacity", "min_sediment_capacity", float, "Capacity floor on flat or uphill steps"),
    ("--erode-speed", "erode_speed", float, "Fraction of spare capacity eroded per step, in [0, 1]"),
    ("--deposit-speed", "deposit_speed", float, "Fraction of excess sediment dropped per step, in [0, 1]"),
    ("--evaporate-speed", "evaporate_speed", float, "Fraction of water lost per step, in [0, 1]"),
    ("--gravity", "gravity", float, "Speed gained per unit of height lost"),
    ("--max-lifetime", "max_lifetime", int, "Maximum steps per particle"),
    ("--initial-volume", "initial_volume", float, "Starting water volume"),
    ("--initial-speed", "initial_speed", float, "Starting particle speed"),
)


def build_parser() -> argparse.ArgumentParser:
    defaults = ErosionConfig()
    mesh_defaults = MeshConfig()
    parser = argparse.ArgumentParser(description="Procedural desert terrain with particle erosion")
    parser.add_argument("--seed", type=int, default=0, help="Integer seed for heightmap and erosion")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE, help="Grid size in cells per side")
    parser.add_argument(
        "--iterations",
        type=int,
        default=DEFAULT_ITERATIONS,
        help="Number of erosion particles (0 disables erosion)",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=1,
        help="Split erosion across this many incremental steps",
    )
    erosion = parser.add_argument_group("erosion")
    for flag, field, kind, text in _EROSION_FLAGS:
        erosion.add_argument(flag, dest=field, type=kind, default=getattr(defaults, field), help=text)
    parser.add_argument("--scale", type=float, default=mesh_defaults.scale, help="Mesh half-extent on X/Z")
    parser.add_argument(
        "--elevation-scale",
        type=float,
        default=mesh_defaults.elevation_scale,
        help="Mesh height multiplier",
    )
    parser.add_argument(
        "--debug-tier",
        type=int,
        choices=(0, 1),
        default=0,
        help="Debug output tier: 0=core, 1=per-tick previews",
    )
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument(
        "--mesh",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write mesh.obj",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.size < 2:
        parser.error("--size must be >= 2")
    if args.iterations < 0:
        parser.error("--iterations must be >= 0")
    if args.ticks < 1:
        parser.error("--ticks must be >= 1")
    if args.erosion_radius >= args.size:
        parser.error("--erosion-radius must be smaller than --size")

    base = GeneratorConfig()
    config = replace(
        base,
        debug_tier=args.debug_tier,
        erosion=replace(
            base.erosion,
            seed=args.seed,
            **{field: getattr(args, field) for _, field, _, _ in _EROSION_FLAGS},
        ),
        mesh=replace(base.mesh, scale=args.scale, elevation_scale=args.elevation_scale),
    )

    tick_previews: dict[str, np.ndarray] = {}

    def _capture_tick(tick: int, heights: np.ndarray) -> None:
        if config.debug_tier >= 1:
            tick_previews[f"debug_tick_{tick:03d}.png"] = float_preview_u8(heights)

    try:
        result = generate_terrain(
            args.size,
            args.seed,
            args.iterations,
            config=config,
            ticks=args.ticks,
            on_tick=_capture_tick,
        )
    except ErosionPreconditionError as exc:
        parser.error(str(exc))

    render = config.render
    shade = hillshade(
        result.heights,
        mesh=config.mesh,
        azimuth_deg=render.hillshade_azimuth_deg,
        altitude_deg=render.hillshade_altitude_deg,
        vertical_exaggeration=render.hillshade_vertical_exaggeration,
    )
    delta = result.heights.astype(np.float32) - result.heights_pre.astype(np.float32)

    png_outputs: dict[str, np.ndarray] = {
        "height_16.png": height_preview_u16(result.heights),
        "hillshade.png": shade,
        "debug_erosion_delta.png": signed_preview_u8(delta, clip=render.delta_preview_clip),
        "terrain_rgb.png": sand_colormap_rgb(result.heights, shade),
        **tick_previews,
    }

    with staged_output(args.out, args.seed, args.size, overwrite=args.overwrite) as stage_dir:
        write_height_npy(stage_dir / "height_pre.npy", result.heights_pre)
        write_height_npy(stage_dir / "height.npy", result.heights)
        for name, raster in png_outputs.items():
            write_png(stage_dir / name, raster)
        if args.mesh:
            write_obj(stage_dir / "mesh.obj", result.mesh)
        if args.json:
            erosion = result.erosion_metrics
            change = result.delta_metrics
            deterministic_meta = {
                "seed": args.seed,
                "size": args.size,
                "iterations": args.iterations,
                "ticks": result.ticks,
                "config": config.to_dict(),
                "erosion": {
                    "particles": erosion.particles,
                    "steps": erosion.steps,
                    "stalled": erosion.stalled,
                    "off_grid": erosion.off_grid,
                    "expired": erosion.expired,
                    "eroded": erosion.eroded,
                    "deposited": erosion.deposited,
                },
                "height_change": {
                    "changed_cells": change.changed_cells,
                    "changed_fraction": change.changed_fraction,
                    "total_removed": change.total_removed,
                    "total_added": change.total_added,
                    "net_change": change.net_change,
                    "max_removed": change.max_removed,
                    "max_added": change.max_added,
                    "min_height": change.min_height,
                    "max_height": change.max_height,
                    "mean_height": change.mean_height,
                },
                "mesh": {
                    "vertex_count": result.mesh.vertex_count,
                    "triangle_count": result.mesh.triangle_count,
                    "max_height": result.mesh.max_height,
                },
            }
            meta = {
                **deterministic_meta,
                "generated_at_utc": datetime.now(timezone.utc).isoformat(),
                "erosion_seconds": result.erosion_seconds,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

    out_dir = run_dir(args.out, args.seed, args.size)
    print(f"Generated terrain: {out_dir}")
    print(f"Erosion finished ({args.iterations} iterations; {result.erosion_seconds * 1000.0:.0f}ms)")
    print(
        "Particles: "
        f"steps={result.erosion_metrics.steps}, "
        f"off_grid={result.erosion_metrics.off_grid}, "
        f"stalled={result.erosion_metrics.stalled}, "
        f"expired={result.erosion_metrics.expired}"
    )
    print(
        "Height change: "
        f"removed={result.delta_metrics.total_removed:.4f}, "
        f"added={result.delta_metrics.total_added:.4f}, "
        f"changed={result.delta_metrics.changed_fraction * 100.0:.2f}% of cells"
    )
    print(f"Mesh: {result.mesh.vertex_count} vertices, {result.mesh.triangle_count} triangles")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
