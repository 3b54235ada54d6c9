"""
Headless CLI entry point for the CT multiplanar reconstruction engine.

Loads a series folder, samples one plane at the volume center, cross-sections
every structure on that plane and prints a summary. Optionally ray-casts the
volume.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

import numpy as np

from core import CoordinateAuthority, RayCastParamsDTO, ViewerSettingsDTO
from core.progress import (
    CancelFlagObserver,
    LoggingProgressObserver,
    ProgressBus,
    StageProgressMapper,
    TerminalProgressObserver,
)
from loaders import DicomSeriesLoader
from processors import contours_for_plane, render_volume, sample_request


def run_viewer(dto: ViewerSettingsDTO, is_cancelled=None, observers=()) -> dict:
    """
    Load, sample and cross-section according to ``dto``.

    Progress is reported on one 0..100 scale split over the load and the
    optional render stage. ``is_cancelled`` is polled on every progress event
    and aborts the run with InterruptedError.

    Returns:
        Dict with the loaded study, authority, slice image, per-structure
        screen polygons and the optional rendered image.
    """
    stages = ("load", "render") if dto.raycast is not None else ("load",)
    progress_bus = ProgressBus(StageProgressMapper(stages))
    if is_cancelled is not None:
        progress_bus.subscribe(CancelFlagObserver(is_cancelled))
    progress_bus.subscribe(TerminalProgressObserver()).subscribe(LoggingProgressObserver())
    for observer in observers:
        progress_bus.subscribe(observer)

    t_start = time.perf_counter()
    study = DicomSeriesLoader(max_workers=dto.max_workers).load(
        dto.input_path, progress_bus.stage_callback("load")
    )
    volume = study.volume
    print(f"\nVolume: {volume.dimensions} (x, y, z) voxels")
    print(f"  spacing: {tuple(round(s, 3) for s in volume.spacing_mm)} mm")
    print(f"  origin:  {tuple(round(o, 2) for o in volume.origin_mm)} mm")
    stats = volume.statistics()
    print(f"  HU range: {stats['min']:.0f} .. {stats['max']:.0f} (mean {stats['mean']:.1f})")
    for path, reason in study.skipped:
        print(f"  skipped: {path} ({reason})")

    authority = CoordinateAuthority(volume, active_plane=dto.plane)
    plane = authority.active_plane
    request = dto.slice_request(authority.depth_fraction(plane))
    image = sample_request(volume, request)
    print(
        f"\n{plane.value.capitalize()} slice {authority.slice_index(plane) + 1}/{authority.slice_count(plane)}: "
        f"{image.width}x{image.height} px, window {image.window}, "
        f"mean intensity {float(image.pixels.mean()):.3f}"
    )

    overlays = {}
    if study.structure_set is not None:
        depth = authority.depth_mm(plane)
        print(f"\nStructures ({len(study.structure_set)}) at {depth:.2f} mm:")
        for roi in study.structure_set:
            contours = contours_for_plane(roi, plane, depth, dedup_threshold_mm=dto.dedup_threshold_mm)
            overlays[roi.name] = [authority.project_polygon(c.points, plane, dto.viewport) for c in contours]
            points = sum(len(c) for c in contours)
            print(f"  {roi.name:<24} {len(contours):3d} contour(s) {points:5d} point(s)")

    rendered = None
    if dto.raycast is not None:
        rendered = render_volume(volume, dto.raycast, callback=progress_bus.stage_callback("render"))
        coverage = float(np.mean(rendered.rgba[..., 3] > 0.0))
        print(f"\nRendered {rendered.width}x{rendered.height}, {coverage:.1%} of pixels hit tissue")

    print(f"\nDone in {time.perf_counter() - t_start:.2f}s")
    return {
        "study": study,
        "authority": authority,
        "slice": image,
        "overlays": overlays,
        "rendered": rendered,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python cli.py",
        description="Headless CT series viewer (MPR + structure overlay)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Path to YAML or JSON config file. Overrides other flags.",
    )
    parser.add_argument("--input", metavar="DIR", default="", help="Series folder.")
    parser.add_argument("--plane", metavar="PLANE", default="axial", help="axial | sagittal | coronal.")
    parser.add_argument("--window-preset", metavar="NAME", default=None, help="Named window, e.g. bone, lung.")
    parser.add_argument(
        "--window",
        metavar=("CENTER", "WIDTH"),
        nargs=2,
        type=float,
        default=[0.0, 2000.0],
        help="Window center and width in HU.",
    )
    parser.add_argument("--interpolation", metavar="MODE", default="trilinear", help="nearest | trilinear.")
    parser.add_argument("--viewport", metavar=("W", "H"), nargs=2, type=int, default=[512, 512],
                        help="Viewport size for overlay projection.")
    parser.add_argument("--workers", metavar="N", type=int, default=4, help="Parallel decode threads.")
    parser.add_argument("--render", action="store_true", help="Also ray-cast the volume.")
    parser.add_argument("--rotation", metavar="DEG", type=float, default=0.0, help="Ray-cast rotation about z.")
    parser.add_argument("--dry-run", action="store_true", help="Print resolved settings without running.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _resolve_dto(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ViewerSettingsDTO:
    """Resolve settings from config file or inline CLI flags."""
    if args.config:
        cfg_path = args.config
        if cfg_path.endswith((".yaml", ".yml")):
            return ViewerSettingsDTO.from_yaml(cfg_path)
        if cfg_path.endswith(".json"):
            return ViewerSettingsDTO.from_json(cfg_path)
        return ViewerSettingsDTO.from_yaml(cfg_path)

    if not args.input:
        parser.error("Provide --config FILE or --input DIR")

    return ViewerSettingsDTO(
        input_path=args.input,
        max_workers=args.workers,
        plane=args.plane,
        window_preset=args.window_preset,
        window=(args.window[0], args.window[1]),
        interpolation=args.interpolation,
        viewport=(args.viewport[0], args.viewport[1]),
        raycast=RayCastParamsDTO(rotation_deg=args.rotation) if args.render else None,
    )


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    dto = _resolve_dto(args, parser)

    if args.dry_run:
        import json

        print("Resolved ViewerSettingsDTO:")
        print(json.dumps(dto.to_dict(), indent=2))
        return 0

    print("=" * 60)
    print("CT Multiplanar Reconstruction - Headless Viewer")
    print("=" * 60)

    try:
        run_viewer(dto)
    except (KeyboardInterrupt, InterruptedError):
        print("\nAborted by user.")
        return 1
    except Exception as exc:
        import traceback

        print(f"\nViewer failed: {type(exc).__name__}: {exc}")
        traceback.print_exc()
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
