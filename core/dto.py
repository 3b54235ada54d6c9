"""
Data Transfer Objects (DTOs) for slice, render and viewer requests.

Design rules
------------
* All DTOs are immutable (frozen=True).  The interaction layer builds a new
  DTO and *pushes* it to the engine; the engine never reads UI state.
* ``from_dict`` / ``to_dict`` keep serialisation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from config import (
    CONTOUR_DEDUP_THRESHOLD_MM,
    DEFAULT_INTERPOLATION,
    DEFAULT_VIEWPORT,
    DEFAULT_WINDOW,
    LOADER_MAX_WORKERS,
    RAYCAST_DEFAULT_IMAGE_SIZE,
    RAYCAST_DEFAULT_ROTATION_DEG,
    RAYCAST_DEFAULT_WINDOW,
    RAYCAST_TERMINATION_ALPHA,
)


# ---------------------------------------------------------------------------
# Slice request DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SliceRequestDTO:
    """
    One MPR sampling request.

    ``plane`` is kept as the raw selector; the sampler resolves it and falls
    back to the axial center slice when it is not a known plane.
    """

    plane:           Any                  = "axial"
    depth_fraction:  float                = 0.5
    window_center:   float                = DEFAULT_WINDOW[0]
    window_width:    float                = DEFAULT_WINDOW[1]
    interpolation:   str                  = DEFAULT_INTERPOLATION   # "nearest" | "trilinear"

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SliceRequestDTO":
        return SliceRequestDTO(
            plane          = d.get("plane",                 "axial"),
            depth_fraction = float(d.get("depth_fraction",  0.5)),
            window_center  = float(d.get("window_center",   DEFAULT_WINDOW[0])),
            window_width   = float(d.get("window_width",    DEFAULT_WINDOW[1])),
            interpolation  = str(d.get("interpolation",     DEFAULT_INTERPOLATION)),
        )

    def to_dict(self) -> Dict[str, Any]:
        plane = getattr(self.plane, "value", self.plane)
        return {
            "plane":          plane,
            "depth_fraction": self.depth_fraction,
            "window_center":  self.window_center,
            "window_width":   self.window_width,
            "interpolation":  self.interpolation,
        }


# ---------------------------------------------------------------------------
# Ray-cast DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RayCastParamsDTO:
    """
    Parameters for the volume ray-caster.

    ``step_mm`` of None means "use the smallest voxel spacing".
    """

    width:             int               = RAYCAST_DEFAULT_IMAGE_SIZE[0]
    height:            int               = RAYCAST_DEFAULT_IMAGE_SIZE[1]
    rotation_deg:      float             = RAYCAST_DEFAULT_ROTATION_DEG
    step_mm:           Optional[float]   = None
    window_center:     float             = RAYCAST_DEFAULT_WINDOW[0]
    window_width:      float             = RAYCAST_DEFAULT_WINDOW[1]
    termination_alpha: float             = RAYCAST_TERMINATION_ALPHA

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RayCastParamsDTO":
        step = d.get("step_mm")
        return RayCastParamsDTO(
            width             = int(d.get("width",               RAYCAST_DEFAULT_IMAGE_SIZE[0])),
            height            = int(d.get("height",              RAYCAST_DEFAULT_IMAGE_SIZE[1])),
            rotation_deg      = float(d.get("rotation_deg",      RAYCAST_DEFAULT_ROTATION_DEG)),
            step_mm           = float(step) if step is not None else None,
            window_center     = float(d.get("window_center",     RAYCAST_DEFAULT_WINDOW[0])),
            window_width      = float(d.get("window_width",      RAYCAST_DEFAULT_WINDOW[1])),
            termination_alpha = float(d.get("termination_alpha", RAYCAST_TERMINATION_ALPHA)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width":             self.width,
            "height":            self.height,
            "rotation_deg":      self.rotation_deg,
            "step_mm":           self.step_mm,
            "window_center":     self.window_center,
            "window_width":      self.window_width,
            "termination_alpha": self.termination_alpha,
        }


# ---------------------------------------------------------------------------
# Viewer settings DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ViewerSettingsDTO:
    """
    Immutable configuration for a headless viewing run.

    Used by the CLI and by unit tests that bypass any interaction layer.
    """

    # Input
    input_path:         str                            = ""
    max_workers:        int                            = LOADER_MAX_WORKERS

    # Slice display
    plane:              str                            = "axial"
    window_preset:      Optional[str]                  = None
    window:             Tuple[float, float]            = DEFAULT_WINDOW
    interpolation:      str                            = DEFAULT_INTERPOLATION
    viewport:           Tuple[int, int]                = DEFAULT_VIEWPORT

    # Contours
    dedup_threshold_mm: float                          = CONTOUR_DEDUP_THRESHOLD_MM

    # Volume rendering (None = skip)
    raycast:            Optional[RayCastParamsDTO]     = None

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ViewerSettingsDTO":
        rc_raw = d.get("raycast")
        rc     = RayCastParamsDTO.from_dict(rc_raw) if rc_raw else None
        window = d.get("window", list(DEFAULT_WINDOW))
        vp     = d.get("viewport", list(DEFAULT_VIEWPORT))
        return ViewerSettingsDTO(
            input_path         = str(d.get("input_path",           "")),
            max_workers        = int(d.get("max_workers",          LOADER_MAX_WORKERS)),
            plane              = str(d.get("plane",                "axial")),
            window_preset      = d.get("window_preset"),
            window             = (float(window[0]), float(window[1])),
            interpolation      = str(d.get("interpolation",        DEFAULT_INTERPOLATION)),
            viewport           = (int(vp[0]), int(vp[1])),
            dedup_threshold_mm = float(d.get("dedup_threshold_mm", CONTOUR_DEDUP_THRESHOLD_MM)),
            raycast            = rc,
        )

    @staticmethod
    def from_yaml(path: str) -> "ViewerSettingsDTO":
        """Load config from a YAML file."""
        import yaml  # only needed for CLI configs
        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return ViewerSettingsDTO.from_dict(d or {})

    @staticmethod
    def from_json(path: str) -> "ViewerSettingsDTO":
        """Load config from a JSON file."""
        import json
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return ViewerSettingsDTO.from_dict(d)

    @property
    def resolved_window(self) -> Tuple[float, float]:
        """(center, width): the named preset when set, else ``window``."""
        if self.window_preset:
            from processors.windowing import window_preset  # processors.mpr imports this module
            return window_preset(self.window_preset)
        return self.window

    def slice_request(self, depth_fraction: float) -> SliceRequestDTO:
        center, width = self.resolved_window
        return SliceRequestDTO(
            plane=self.plane,
            depth_fraction=depth_fraction,
            window_center=center,
            window_width=width,
            interpolation=self.interpolation,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path":         self.input_path,
            "max_workers":        self.max_workers,
            "plane":              self.plane,
            "window_preset":      self.window_preset,
            "window":             list(self.window),
            "interpolation":      self.interpolation,
            "viewport":           list(self.viewport),
            "dedup_threshold_mm": self.dedup_threshold_mm,
            "raycast":            self.raycast.to_dict() if self.raycast else None,
        }
