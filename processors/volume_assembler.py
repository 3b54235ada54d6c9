"""
Assemble extracted ImageSlices into one immutable Volume.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from config import ASSEMBLY_DEFAULT_SLICE_THICKNESS_MM, ASSEMBLY_MIN_SPACING_MM
from core.base import ImageSlice, Volume
from core.errors import EmptyInput, InconsistentGeometry

logger = logging.getLogger(__name__)


def slice_positions(slices: Sequence[ImageSlice]) -> np.ndarray:
    """Scalar projection of each slice position onto the first slice's normal."""
    normal = slices[0].normal
    positions = np.asarray([s.position_mm for s in slices], dtype=np.float64)
    return positions @ normal


def _check_geometry(slices: Sequence[ImageSlice]) -> None:
    ref = slices[0]
    for i, s in enumerate(slices[1:], start=1):
        if (s.rows, s.columns) != (ref.rows, ref.columns):
            raise InconsistentGeometry(
                f"Slice {i} is {s.rows}x{s.columns}, expected {ref.rows}x{ref.columns}"
            )
        if s.bits_allocated != ref.bits_allocated:
            raise InconsistentGeometry(
                f"Slice {i} has {s.bits_allocated} bits allocated, expected {ref.bits_allocated}"
            )


def _depth_spacing(sorted_positions: np.ndarray, first: ImageSlice) -> float:
    if len(sorted_positions) == 1:
        thickness = first.slice_thickness
        return float(thickness) if thickness and thickness > 0 else ASSEMBLY_DEFAULT_SLICE_THICKNESS_MM

    # Median is robust to one missing or duplicated slice
    spacing = float(np.median(np.diff(sorted_positions)))
    if spacing <= ASSEMBLY_MIN_SPACING_MM:
        raise InconsistentGeometry(
            f"Slices do not advance along the acquisition normal (median spacing {spacing:.6f} mm)"
        )
    return spacing


def assemble(
    slices: Sequence[ImageSlice],
    callback: Optional[Callable[[int, str], None]] = None,
) -> Volume:
    """
    Order slices along the acquisition normal and stack them.

    Samples are converted with each slice's rescale slope/intercept and
    clipped to int16.

    Args:
        slices: Extracted slices, any order.
        callback: Optional progress callback (percent, message).

    Returns:
        Volume with samples (nz, ny, nx), spacing (col, row, depth) and the
        first sorted slice's position as origin.

    Raises:
        EmptyInput: no slices.
        InconsistentGeometry: mismatched dimensions / bit depth, or zero spacing.
    """
    if not slices:
        raise EmptyInput("No image slices to assemble")
    _check_geometry(slices)

    positions = slice_positions(slices)
    order = np.argsort(positions, kind="stable")
    ordered: List[ImageSlice] = [slices[i] for i in order]
    sorted_positions = positions[order]

    first = ordered[0]
    dz = _depth_spacing(sorted_positions, first)
    row_spacing, col_spacing = first.spacing_mm
    spacing = (float(col_spacing), float(row_spacing), dz)

    total = len(ordered)
    samples = np.empty((total, first.rows, first.columns), dtype=np.int16)
    info = np.iinfo(np.int16)
    for k, s in enumerate(ordered):
        if s.rescale_slope == 1.0 and s.rescale_intercept == 0.0:
            samples[k] = s.samples
        else:
            samples[k] = np.clip(np.rint(s.hounsfield()), info.min, info.max)
        if callback and k % 20 == 0:
            callback(int(100 * (k + 1) / total), f"Stacking slice {k + 1}/{total}...")
    samples.setflags(write=False)

    logger.info(
        "Assembled volume %s (z, y, x), spacing %s, positions %.2f -> %.2f",
        samples.shape, spacing, sorted_positions[0], sorted_positions[-1],
    )
    if callback:
        callback(100, "Volume assembled.")

    return Volume(
        samples=samples,
        spacing_mm=spacing,
        origin_mm=tuple(float(v) for v in first.position_mm),
        metadata={
            "SliceCount": total,
            "Normal": tuple(float(v) for v in first.normal),
            "Window": first.window,
        },
    )
