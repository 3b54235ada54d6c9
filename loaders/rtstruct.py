"""
Structure-set (RTSTRUCT) extraction.

Walks StructureSetROISequence (definitions), ROIContourSequence (colors and
polygons) and RTROIObservationsSequence (interpreted type) and joins them on
the ROI number. Partially valid data is kept: a malformed contour drops only
that contour, a missing definition only loses the name.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from config import DEFAULT_ROI_COLOR, STANDARD_ROI_COLORS
from core.base import Contour, Dataset, ROIStructure, StructureSet
from core.errors import DecodeError, ExtractionError
from loaders.dicom_codec import decode_sequence

logger = logging.getLogger(__name__)

STRUCTURE_SET_LABEL = 0x30060002
STRUCTURE_SET_NAME = 0x30060004
REFERENCED_FRAME_OF_REFERENCE_SEQUENCE = 0x30060010
STRUCTURE_SET_ROI_SEQUENCE = 0x30060020
ROI_NUMBER = 0x30060022
ROI_NAME = 0x30060026
ROI_DISPLAY_COLOR = 0x3006002A
ROI_CONTOUR_SEQUENCE = 0x30060039
CONTOUR_SEQUENCE = 0x30060040
CONTOUR_GEOMETRIC_TYPE = 0x30060042
NUMBER_OF_CONTOUR_POINTS = 0x30060046
CONTOUR_DATA = 0x30060050
RT_ROI_OBSERVATIONS_SEQUENCE = 0x30060080
REFERENCED_ROI_NUMBER = 0x30060084
RT_ROI_INTERPRETED_TYPE = 0x300600A4
FRAME_OF_REFERENCE_UID = 0x00200052

CLOSED_TYPES = ("CLOSED_PLANAR",)


def sequence_items(dataset: Dataset, tag: int) -> List[Dataset]:
    """Items of a sequence element, [] when absent."""
    if tag not in dataset:
        return []
    return decode_sequence(dataset[tag], dataset)


def standard_color(name: str) -> Tuple[float, float, float]:
    """Display color for a structure name: exact match, then substring, then red."""
    key = name.strip().lower()
    if key in STANDARD_ROI_COLORS:
        return STANDARD_ROI_COLORS[key]
    for known, color in STANDARD_ROI_COLORS.items():
        if known in key:
            return color
    return DEFAULT_ROI_COLOR


def _display_color(item: Dataset, name: str) -> Tuple[float, float, float]:
    try:
        rgb = item.get_ints(ROI_DISPLAY_COLOR)
    except ExtractionError:
        rgb = []
    if len(rgb) >= 3:
        return tuple(float(np.clip(c / 255.0, 0.0, 1.0)) for c in rgb[:3])
    return standard_color(name)


def _roi_number(item: Dataset, tag: int, what: str) -> Optional[int]:
    """ROI number of a sequence item, None (with a warning) when malformed."""
    try:
        return item.get_int(tag)
    except ExtractionError as exc:
        logger.warning("%s skipped: %s", what, exc)
        return None


def _roi_definitions(dataset: Dataset) -> Dict[int, str]:
    names: Dict[int, str] = {}
    for item in sequence_items(dataset, STRUCTURE_SET_ROI_SEQUENCE):
        number = _roi_number(item, ROI_NUMBER, "Structure definition")
        if number is None:
            logger.warning("Structure definition without ROI number skipped")
            continue
        names[number] = item.get_string(ROI_NAME) or f"ROI-{number}"
    return names


def _interpreted_types(dataset: Dataset) -> Dict[int, str]:
    types: Dict[int, str] = {}
    try:
        items = sequence_items(dataset, RT_ROI_OBSERVATIONS_SEQUENCE)
    except (DecodeError, ExtractionError) as exc:
        logger.warning("RT ROI observations unreadable: %s", exc)
        return types
    for item in items:
        number = _roi_number(item, REFERENCED_ROI_NUMBER, "ROI observation")
        if number is not None:
            types[number] = item.get_string(RT_ROI_INTERPRETED_TYPE) or ""
    return types


def _contours(item: Dataset, roi_name: str) -> Tuple[Contour, ...]:
    try:
        contour_items = sequence_items(item, CONTOUR_SEQUENCE)
    except (DecodeError, ExtractionError) as exc:
        logger.warning("[%s] contour sequence unreadable: %s", roi_name, exc)
        return ()

    contours: List[Contour] = []
    for idx, c_item in enumerate(contour_items):
        try:
            data = c_item.get_floats(CONTOUR_DATA)
        except ExtractionError as exc:
            logger.warning("[%s] contour %d dropped: %s", roi_name, idx, exc)
            continue
        if len(data) < 3 or len(data) % 3:
            logger.warning("[%s] contour %d dropped: %d values is not a list of points", roi_name, idx, len(data))
            continue
        geometric_type = c_item.get_string(CONTOUR_GEOMETRIC_TYPE) or "CLOSED_PLANAR"
        contours.append(Contour.from_points(
            np.asarray(data, dtype=np.float64).reshape(-1, 3),
            closed=geometric_type in CLOSED_TYPES,
            geometric_type=geometric_type,
        ))
    return tuple(contours)


def extract_structure_set(dataset: Dataset) -> Optional[StructureSet]:
    """
    Build a StructureSet from a decoded RTSTRUCT dataset.

    Returns:
        StructureSet, or None when neither required sequence is present.

    Raises:
        ExtractionError / DecodeError: a required sequence cannot be read.
    """
    if STRUCTURE_SET_ROI_SEQUENCE not in dataset and ROI_CONTOUR_SEQUENCE not in dataset:
        return None

    names = _roi_definitions(dataset)
    types = _interpreted_types(dataset)

    structures: List[ROIStructure] = []
    seen = set()
    for item in sequence_items(dataset, ROI_CONTOUR_SEQUENCE):
        try:
            number = item.get_int(REFERENCED_ROI_NUMBER)
        except ExtractionError as exc:
            logger.warning("ROI contour set dropped: %s", exc)
            continue
        name = names.get(number) or f"ROI-{number}"
        structures.append(ROIStructure(
            name=name,
            display_color=_display_color(item, name),
            contours=_contours(item, name),
            number=number,
            interpreted_type=types.get(number, ""),
        ))
        seen.add(number)

    # Defined but never contoured
    for number, name in sorted(names.items()):
        if number not in seen:
            structures.append(ROIStructure(
                name=name,
                display_color=standard_color(name),
                number=number,
                interpreted_type=types.get(number, ""),
            ))

    frame_uid = dataset.get_string(FRAME_OF_REFERENCE_UID) or ""
    if not frame_uid:
        try:
            refs = sequence_items(dataset, REFERENCED_FRAME_OF_REFERENCE_SEQUENCE)
        except (DecodeError, ExtractionError):
            refs = []
        if refs:
            frame_uid = refs[0].get_string(FRAME_OF_REFERENCE_UID) or ""

    logger.info("Extracted %d structures (%d contours)",
                len(structures), sum(len(s.contours) for s in structures))
    return StructureSet(
        structures=tuple(structures),
        label=dataset.get_string(STRUCTURE_SET_LABEL) or "",
        name=dataset.get_string(STRUCTURE_SET_NAME) or "",
        frame_of_reference_uid=frame_uid,
    )


def extract_structures(dataset: Dataset) -> Optional[List[ROIStructure]]:
    """Named structures with display colors and contour polygons, or None."""
    structure_set = extract_structure_set(dataset)
    if structure_set is None:
        return None
    return list(structure_set.structures)
