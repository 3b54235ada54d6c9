"""
Interpret a decoded Dataset as a single-frame grayscale ImageSlice.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from core.base import AXIAL_ORIENTATION, Dataset, ImageSlice
from core.errors import MissingRequiredTag, TypeMismatch

logger = logging.getLogger(__name__)

PIXEL_DATA = 0x7FE00010
ROWS = 0x00280010
COLUMNS = 0x00280011
SAMPLES_PER_PIXEL = 0x00280002
BITS_ALLOCATED = 0x00280100
BITS_STORED = 0x00280101
PIXEL_REPRESENTATION = 0x00280103
NUMBER_OF_FRAMES = 0x00280008
PIXEL_SPACING = 0x00280030
IMAGE_POSITION = 0x00200032
IMAGE_ORIENTATION = 0x00200037
RESCALE_INTERCEPT = 0x00281052
RESCALE_SLOPE = 0x00281053
SLICE_THICKNESS = 0x00180050
INSTANCE_NUMBER = 0x00200013
WINDOW_CENTER = 0x00281050
WINDOW_WIDTH = 0x00281051

SUPPORTED_BITS = (8, 16)


def _geometry(dataset: Dataset, total_samples: int):
    rows = dataset.get_int(ROWS)
    columns = dataset.get_int(COLUMNS)
    if rows and columns:
        return rows, columns

    side = math.isqrt(total_samples)
    if side > 0 and side * side == total_samples:
        logger.warning("Rows/Columns missing; assuming square %dx%d image", side, side)
        return side, side
    raise MissingRequiredTag(f"Rows/Columns missing and {total_samples} samples do not form a square image")


def _to_int16(raw: np.ndarray, bits_stored: int, signed: bool) -> np.ndarray:
    """
    Bring stored samples into the signed 16-bit domain.

    Values are masked to ``bits_stored``; signed data is sign-extended from
    its top stored bit. 16-bit unsigned storage wraps by two's complement.
    """
    values = raw.astype(np.int32) & ((1 << bits_stored) - 1)
    if signed:
        sign_bit = 1 << (bits_stored - 1)
        return ((values ^ sign_bit) - sign_bit).astype(np.int16)
    return values.astype(np.uint16).astype(np.int16)


def extract_image(dataset: Dataset) -> Optional[ImageSlice]:
    """
    Build an ImageSlice from a decoded dataset.

    Returns:
        ImageSlice, or None when the dataset carries no pixel data.

    Raises:
        MissingRequiredTag: geometry cannot be determined.
        TypeMismatch: unsupported bit depth, multi-sample or short pixel data.
    """
    if PIXEL_DATA not in dataset:
        return None

    pixel = dataset[PIXEL_DATA]
    if pixel.undefined_length:
        raise TypeMismatch("Encapsulated (compressed) pixel data is not supported")

    bits_allocated = dataset.get_int(BITS_ALLOCATED, 16)
    if bits_allocated not in SUPPORTED_BITS:
        raise TypeMismatch(f"BitsAllocated={bits_allocated} is not supported (expected 8 or 16)")
    bits_stored = dataset.get_int(BITS_STORED, bits_allocated)
    if not 1 <= bits_stored <= bits_allocated:
        raise TypeMismatch(f"BitsStored={bits_stored} outside 1..{bits_allocated}")

    samples_per_pixel = dataset.get_int(SAMPLES_PER_PIXEL, 1)
    if samples_per_pixel != 1:
        raise TypeMismatch(f"SamplesPerPixel={samples_per_pixel} is not supported")
    frames = dataset.get_int(NUMBER_OF_FRAMES, 1)
    if frames is not None and frames > 1:
        raise TypeMismatch(f"Multi-frame images ({frames} frames) are not supported")

    signed = dataset.get_int(PIXEL_REPRESENTATION, 0) == 1
    bytes_per_sample = bits_allocated // 8
    order = "<" if pixel.little_endian else ">"
    raw = np.frombuffer(pixel.value, dtype=np.dtype(f"{order}u{bytes_per_sample}"),
                        count=len(pixel.value) // bytes_per_sample)

    rows, columns = _geometry(dataset, int(raw.size))
    needed = rows * columns
    if raw.size < needed:
        raise TypeMismatch(f"Pixel data holds {raw.size} samples, {rows}x{columns} needs {needed}")

    samples = _to_int16(raw[:needed], bits_stored, signed).reshape(rows, columns)

    position = dataset.get_floats(IMAGE_POSITION)
    spacing = dataset.get_floats(PIXEL_SPACING)
    orientation = dataset.get_floats(IMAGE_ORIENTATION)
    center = dataset.get_float(WINDOW_CENTER)
    width = dataset.get_float(WINDOW_WIDTH)

    return ImageSlice(
        rows=rows,
        columns=columns,
        bits_allocated=bits_allocated,
        bits_stored=bits_stored,
        signed=signed,
        samples=samples,
        position_mm=tuple(position[:3]) if len(position) >= 3 else (0.0, 0.0, 0.0),
        spacing_mm=tuple(spacing[:2]) if len(spacing) >= 2 else (1.0, 1.0),
        orientation=tuple(orientation[:6]) if len(orientation) >= 6 else AXIAL_ORIENTATION,
        rescale_slope=dataset.get_float(RESCALE_SLOPE, 1.0),
        rescale_intercept=dataset.get_float(RESCALE_INTERCEPT, 0.0),
        slice_thickness=dataset.get_float(SLICE_THICKNESS),
        instance_number=dataset.get_int(INSTANCE_NUMBER),
        window=(center, width) if center is not None and width is not None else None,
    )
