"""
Rendering hand-off package (PyVista data objects for the display backend).
"""

from rendering.grid import volume_to_image_data, contour_to_polydata

__all__ = [
    'volume_to_image_data',
    'contour_to_polydata',
]
