"""
Core data structures and abstract base classes.

Convention (see core.coordinates):
- Voxel buffers are indexed (z, y, x)
- Positions, spacing and origin tuples are (x, y, z) in mm
"""

from __future__ import annotations

import numpy as np
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydicom.tag import BaseTag, Tag

from core.errors import TypeMismatch


Vec3 = Tuple[float, float, float]

AXIAL_ORIENTATION = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


# ==========================================
# Decoded elements
# ==========================================

@dataclass(frozen=True)
class Element:
    """
    One decoded tag-stream element.

    Attributes:
        tag: pydicom tag (``.group`` / ``.element``).
        vr: Two-letter value representation.
        length: Declared payload length in bytes (0 for undefined length).
        value: Raw payload bytes.
        undefined_length: True for the placeholder emitted when the stream
            declared 0xFFFFFFFF; its payload is not interpreted.
        little_endian: Byte order of binary payloads.
    """
    tag: BaseTag
    vr: str
    length: int
    value: bytes = b""
    undefined_length: bool = False
    little_endian: bool = True

    @property
    def keyword(self) -> str:
        from pydicom.datadict import keyword_for_tag
        return keyword_for_tag(self.tag) or ""


_BINARY_INT_FORMATS = {
    "US": "u2",
    "SS": "i2",
    "UL": "u4",
    "SL": "i4",
    "AT": "u2",
}

_BINARY_FLOAT_FORMATS = {
    "FL": "f4",
    "FD": "f8",
}


class Dataset(Mapping):
    """
    Read-only mapping of tag -> Element.

    Keys may be given as pydicom tags, ``(group, element)`` tuples, packed
    ints or keywords (``"Rows"``).
    """

    def __init__(
        self,
        elements: Dict[BaseTag, Element],
        transfer_syntax: Optional[str] = None,
        explicit_vr: bool = False,
        little_endian: bool = True,
    ) -> None:
        self._elements = dict(elements)
        self.transfer_syntax = transfer_syntax
        self.explicit_vr = explicit_vr
        self.little_endian = little_endian

    def __getitem__(self, key) -> Element:
        return self._elements[Tag(key)]

    def __contains__(self, key) -> bool:
        try:
            return Tag(key) in self._elements
        except (ValueError, TypeError, OverflowError):
            return False

    def __iter__(self) -> Iterator[BaseTag]:
        return iter(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __repr__(self) -> str:
        return f"Dataset({len(self)} elements, transfer_syntax={self.transfer_syntax!r})"

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _present(self, key) -> Optional[Element]:
        if key not in self:
            return None
        elem = self[key]
        if elem.undefined_length:
            return None
        return elem

    def get_string(self, key, default: Optional[str] = None) -> Optional[str]:
        """Text value with surrounding whitespace and NUL padding removed."""
        elem = self._present(key)
        if elem is None:
            return default
        return elem.value.decode("latin-1").strip(" \x00\t\r\n")

    def get_strings(self, key) -> List[str]:
        """Backslash-separated multi-value text."""
        text = self.get_string(key)
        if not text:
            return []
        return [part.strip(" \x00") for part in text.split("\\")]

    def get_ints(self, key) -> List[int]:
        elem = self._present(key)
        if elem is None:
            return []
        vr = elem.vr
        if vr == "UN" and len(elem.value) in (2, 4):
            vr = "US" if len(elem.value) == 2 else "UL"
        if vr in _BINARY_INT_FORMATS:
            return [int(v) for v in self._unpack(elem, _BINARY_INT_FORMATS[vr])]
        try:
            return [int(float(part)) for part in self.get_strings(key)]
        except ValueError as exc:
            raise TypeMismatch(f"{elem.tag} ({vr}) is not an integer: {exc}") from exc

    def get_int(self, key, default: Optional[int] = None) -> Optional[int]:
        values = self.get_ints(key)
        return values[0] if values else default

    def get_floats(self, key) -> List[float]:
        elem = self._present(key)
        if elem is None:
            return []
        if elem.vr in _BINARY_FLOAT_FORMATS:
            return [float(v) for v in self._unpack(elem, _BINARY_FLOAT_FORMATS[elem.vr])]
        if elem.vr in _BINARY_INT_FORMATS:
            return [float(v) for v in self.get_ints(key)]
        try:
            return [float(part) for part in self.get_strings(key) if part]
        except ValueError as exc:
            raise TypeMismatch(f"{elem.tag} ({elem.vr}) is not numeric: {exc}") from exc

    def get_float(self, key, default: Optional[float] = None) -> Optional[float]:
        values = self.get_floats(key)
        return values[0] if values else default

    @property
    def modality(self) -> Optional[str]:
        return self.get_string(0x00080060)

    @staticmethod
    def _unpack(elem: Element, fmt: str) -> np.ndarray:
        dtype = np.dtype(("<" if elem.little_endian else ">") + fmt)
        if len(elem.value) % dtype.itemsize:
            raise TypeMismatch(
                f"{elem.tag} ({elem.vr}) length {len(elem.value)} is not a multiple of {dtype.itemsize}"
            )
        return np.frombuffer(elem.value, dtype=dtype)


# ==========================================
# Extracted records
# ==========================================

@dataclass(frozen=True, eq=False)
class ImageSlice:
    """
    A single 2D cross-section with its acquisition geometry.

    ``samples`` is int16 with shape (rows, columns); ``spacing_mm`` is
    (row spacing, column spacing) as stored in PixelSpacing.
    """
    rows: int
    columns: int
    bits_allocated: int
    bits_stored: int
    signed: bool
    samples: np.ndarray
    position_mm: Vec3 = (0.0, 0.0, 0.0)
    spacing_mm: Tuple[float, float] = (1.0, 1.0)
    orientation: Tuple[float, ...] = AXIAL_ORIENTATION
    rescale_slope: float = 1.0
    rescale_intercept: float = 0.0
    slice_thickness: Optional[float] = None
    instance_number: Optional[int] = None
    window: Optional[Tuple[float, float]] = None

    def __post_init__(self) -> None:
        _readonly(self.samples)

    @property
    def normal(self) -> np.ndarray:
        """Unit acquisition normal (row cosines x column cosines)."""
        row = np.asarray(self.orientation[:3], dtype=np.float64)
        col = np.asarray(self.orientation[3:6], dtype=np.float64)
        n = np.cross(row, col)
        norm = float(np.linalg.norm(n))
        if norm < 1e-9:
            return np.array([0.0, 0.0, 1.0])
        return n / norm

    def hounsfield(self) -> np.ndarray:
        """Samples converted with the rescale slope/intercept (float32)."""
        return self.samples.astype(np.float32) * np.float32(self.rescale_slope) + np.float32(self.rescale_intercept)


@dataclass(frozen=True, eq=False)
class Volume:
    """
    Immutable 3D sample grid.

    Attributes:
        samples (np.ndarray): int16, C-contiguous, shape (nz, ny, nx).
        spacing_mm (Vec3): Voxel spacing (x, y, z) in mm.
        origin_mm (Vec3): Position of voxel (0, 0, 0) in mm.
        metadata (Dict[str, Any]): Series information (Modality, SliceCount, ...).
    """
    samples: np.ndarray
    spacing_mm: Vec3 = (1.0, 1.0, 1.0)
    origin_mm: Vec3 = (0.0, 0.0, 0.0)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        arr = np.ascontiguousarray(self.samples, dtype=np.int16)
        if arr.ndim != 3:
            raise ValueError(f"Expected 3D volume, got shape={arr.shape}")
        if arr is self.samples and arr.flags.writeable:
            arr = arr.copy()
        object.__setattr__(self, "samples", _readonly(arr))
        object.__setattr__(self, "spacing_mm", tuple(float(v) for v in self.spacing_mm))
        object.__setattr__(self, "origin_mm", tuple(float(v) for v in self.origin_mm))

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """(nx, ny, nz)."""
        nz, ny, nx = self.samples.shape
        return (nx, ny, nz)

    @property
    def flat_samples(self) -> np.ndarray:
        """Flat view of size nx*ny*nz, x fastest."""
        return self.samples.reshape(-1)

    @property
    def physical_size_mm(self) -> Vec3:
        """Extent per axis as voxel count x spacing."""
        return tuple(d * s for d, s in zip(self.dimensions, self.spacing_mm))

    @property
    def max_corner_mm(self) -> Vec3:
        """Position of the last voxel center."""
        return tuple(o + (d - 1) * s for o, d, s in zip(self.origin_mm, self.dimensions, self.spacing_mm))

    @property
    def center_mm(self) -> Vec3:
        return tuple(o + (d - 1) * s / 2.0 for o, d, s in zip(self.origin_mm, self.dimensions, self.spacing_mm))

    def statistics(self) -> Dict[str, float]:
        data = self.samples
        return {
            "min": float(data.min()),
            "max": float(data.max()),
            "mean": float(data.mean()),
            "std": float(data.std()),
        }


@dataclass(frozen=True, eq=False)
class Contour:
    """
    One polygon of a structure.

    ``points`` is an (N, 3) float64 array of world positions (mm);
    ``slice_position_mm`` is the coordinate along the native plane normal.
    """
    slice_position_mm: float
    points: np.ndarray
    closed: bool = True
    geometric_type: str = "CLOSED_PLANAR"

    def __post_init__(self) -> None:
        pts = np.array(self.points, dtype=np.float64).reshape(-1, 3)
        object.__setattr__(self, "points", _readonly(pts))
        object.__setattr__(self, "slice_position_mm", float(self.slice_position_mm))

    @classmethod
    def from_points(cls, points, closed: bool = True, geometric_type: str = "CLOSED_PLANAR") -> "Contour":
        """Build a contour whose slice position is the mean coordinate on its flat axis."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        axis = _flat_axis(pts)
        position = float(pts[:, axis].mean()) if len(pts) else 0.0
        return cls(position, pts, closed, geometric_type)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    @property
    def native_axis(self) -> int:
        """Axis (0=x, 1=y, 2=z) along which the points are flat."""
        return _flat_axis(self.points)


def _flat_axis(points: np.ndarray) -> int:
    # Fewer than 3 points do not define a plane; assume axial
    if len(points) < 3:
        return 2
    return int(np.argmin(np.ptp(points, axis=0)))


@dataclass(frozen=True)
class ROIStructure:
    name: str
    display_color: Tuple[float, float, float]
    contours: Tuple[Contour, ...] = ()
    number: Optional[int] = None
    interpreted_type: str = ""

    @property
    def point_count(self) -> int:
        return sum(len(c) for c in self.contours)

    def slice_range(self) -> Optional[Tuple[float, float]]:
        if not self.contours:
            return None
        positions = [c.slice_position_mm for c in self.contours]
        return (min(positions), max(positions))

    def contours_near(self, position_mm: float, tolerance_mm: float = 1.0) -> List[Contour]:
        """Contours whose slice position is within ``tolerance_mm``."""
        return [c for c in self.contours if abs(c.slice_position_mm - position_mm) <= tolerance_mm]


@dataclass(frozen=True)
class StructureSet:
    structures: Tuple[ROIStructure, ...] = ()
    label: str = ""
    name: str = ""
    frame_of_reference_uid: str = ""

    def __len__(self) -> int:
        return len(self.structures)

    def __iter__(self) -> Iterator[ROIStructure]:
        return iter(self.structures)

    def get(self, name: str) -> Optional[ROIStructure]:
        key = name.strip().lower()
        for roi in self.structures:
            if roi.name.lower() == key:
                return roi
        return None


@dataclass
class LoadedStudy:
    """
    Result of loading one series folder.

    Attributes:
        volume (Volume): Assembled image volume.
        structure_set (Optional[StructureSet]): Structures found in the folder.
        skipped (List[Tuple[str, str]]): (path, reason) for files that failed.
        structure_report (Optional[Dict]): Validator report for the structure file.
    """
    volume: Volume
    structure_set: Optional[StructureSet] = None
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    structure_report: Optional[Dict[str, Any]] = None

    @property
    def has_structures(self) -> bool:
        return self.structure_set is not None and len(self.structure_set) > 0


class BaseLoader(ABC):
    """Abstract base class for data acquisition strategies."""

    @abstractmethod
    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> LoadedStudy:
        """
        Load data from a source path.

        Args:
            source (str): Path to file or directory.
            callback: Optional progress callback (percent, message).

        Returns:
            LoadedStudy: Assembled volume plus structures and skip report.
        """
        pass
