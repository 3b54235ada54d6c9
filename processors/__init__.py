"""
Volume processing package.

Modules:
- volume_assembler: Slice ordering and stacking into a Volume
- windowing: Linear contrast windowing and presets
- mpr: Multiplanar slice sampling (nearest / trilinear)
- contours: Structure cross-sectioning on arbitrary planes
- raycast: Front-to-back volume ray casting
"""

from processors.volume_assembler import assemble
from processors.windowing import apply_window, window_for_range, window_preset
from processors.mpr import SliceImage, sample_slice, sample_request, sample_voxels, sample_world
from processors.contours import cross_section, contours_for_plane, project_to_plane
from processors.raycast import RenderedImage, render_volume, transfer_function

__all__ = [
    'assemble',
    'apply_window',
    'window_preset',
    'window_for_range',
    'SliceImage',
    'sample_slice',
    'sample_request',
    'sample_voxels',
    'sample_world',
    'cross_section',
    'contours_for_plane',
    'project_to_plane',
    'RenderedImage',
    'render_volume',
    'transfer_function',
]
