"""
Data loaders package.
"""

from loaders.dicom_codec import decode, decode_sequence, is_dicom_file, read_file
from loaders.image_extractor import extract_image
from loaders.rtstruct import extract_structures, extract_structure_set, standard_color
from loaders.structure_validator import StructureSetValidator, is_structure_set
from loaders.dicom import DicomSeriesLoader

__all__ = [
    'decode',
    'decode_sequence',
    'is_dicom_file',
    'read_file',
    'extract_image',
    'extract_structures',
    'extract_structure_set',
    'standard_color',
    'StructureSetValidator',
    'is_structure_set',
    'DicomSeriesLoader',
]
