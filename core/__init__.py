"""
Core module containing data structures, coordinate mapping and progress utilities.
"""

from core.base import (
    Element,
    Dataset,
    ImageSlice,
    Volume,
    Contour,
    ROIStructure,
    StructureSet,
    LoadedStudy,
    BaseLoader,
)
from core.errors import (
    DecodeError,
    InvalidFormat,
    UnexpectedEndOfInput,
    CorruptedData,
    ExtractionError,
    MissingRequiredTag,
    TypeMismatch,
    AssemblyError,
    EmptyInput,
    InconsistentGeometry,
)
from core.dto import SliceRequestDTO, RayCastParamsDTO, ViewerSettingsDTO
from core.progress import (
    ProgressEvent,
    ProgressObserver,
    ProgressBus,
    StageProgressMapper,
    CancelFlagObserver,
    LoggingProgressObserver,
    TerminalProgressObserver,
)
from core.coordinates import (
    Plane,
    PlaneGeometry,
    PLANE_TABLE,
    Rect,
    letterbox_rect,
    plane_image_shape,
    plane_physical_size,
    plane_uv_to_voxel_xyz,
    voxel_xyz_to_plane_uv,
    raw_zyx_to_grid_xyz,
    world_xyz_to_voxel_zyx,
    world_xyz_to_index_zyx,
    voxel_zyx_to_world_xyz,
)
from core.focus import FocusPosition, FocusSnapshot
from core.authority import CoordinateAuthority

__all__ = [
    'Element', 'Dataset', 'ImageSlice', 'Volume', 'Contour', 'ROIStructure',
    'StructureSet', 'LoadedStudy', 'BaseLoader',
    'DecodeError', 'InvalidFormat', 'UnexpectedEndOfInput', 'CorruptedData',
    'ExtractionError', 'MissingRequiredTag', 'TypeMismatch',
    'AssemblyError', 'EmptyInput', 'InconsistentGeometry',
    'SliceRequestDTO', 'RayCastParamsDTO', 'ViewerSettingsDTO',
    'ProgressEvent', 'ProgressObserver', 'ProgressBus', 'StageProgressMapper',
    'CancelFlagObserver', 'LoggingProgressObserver', 'TerminalProgressObserver',
    'Plane', 'PlaneGeometry', 'PLANE_TABLE', 'Rect', 'letterbox_rect',
    'plane_image_shape', 'plane_physical_size', 'plane_uv_to_voxel_xyz', 'voxel_xyz_to_plane_uv',
    'raw_zyx_to_grid_xyz', 'world_xyz_to_voxel_zyx', 'world_xyz_to_index_zyx',
    'voxel_zyx_to_world_xyz',
    'FocusPosition', 'FocusSnapshot', 'CoordinateAuthority',
]
