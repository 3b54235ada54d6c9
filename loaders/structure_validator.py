"""
Structure-set validation service.

Reports human-readable issues for an RTSTRUCT dataset without discarding the
data; extraction stays in loaders.rtstruct.
"""

from __future__ import annotations

from typing import Any, Dict, List

from core.base import Dataset
from core.errors import DecodeError, ExtractionError
from loaders.rtstruct import (
    CONTOUR_DATA,
    CONTOUR_SEQUENCE,
    NUMBER_OF_CONTOUR_POINTS,
    REFERENCED_ROI_NUMBER,
    ROI_CONTOUR_SEQUENCE,
    ROI_NUMBER,
    STRUCTURE_SET_ROI_SEQUENCE,
    sequence_items,
)

STUDY_INSTANCE_UID = 0x0020000D
SERIES_INSTANCE_UID = 0x0020000E

REQUIRED_SEQUENCES = {
    "StructureSetROISequence": STRUCTURE_SET_ROI_SEQUENCE,
    "ROIContourSequence": ROI_CONTOUR_SEQUENCE,
}


def is_structure_set(dataset: Dataset) -> bool:
    """Quick check: RTSTRUCT modality or either structure sequence present."""
    if (dataset.modality or "").upper() == "RTSTRUCT":
        return True
    return any(tag in dataset for tag in REQUIRED_SEQUENCES.values())


class StructureSetValidator:
    """
    Validate a decoded structure-set dataset.
    """

    def __init__(self, strict: bool = False):
        self.strict = bool(strict)

    def validate(self, dataset: Dataset) -> Dict[str, Any]:
        errors: List[str] = []
        warnings: List[str] = []
        checks: Dict[str, bool] = {}

        modality = dataset.modality
        checks["modality"] = (modality or "").upper() == "RTSTRUCT"
        if not modality:
            errors.append("Modality (0008,0060) missing")
        elif not checks["modality"]:
            errors.append(f"Modality is {modality!r}, expected 'RTSTRUCT'")

        for label, tag in REQUIRED_SEQUENCES.items():
            present = tag in dataset
            checks[label] = present
            if not present:
                errors.append(f"{label} missing")
            elif dataset[tag].undefined_length:
                warnings.append(f"{label} has undefined length and was not parsed")

        for label, tag in (("SeriesInstanceUID", SERIES_INSTANCE_UID), ("StudyInstanceUID", STUDY_INSTANCE_UID)):
            checks[label] = bool(dataset.get_string(tag))
            if not checks[label]:
                warnings.append(f"{label} missing")

        defined = self._defined_numbers(dataset, warnings)
        self._check_contours(dataset, defined, warnings)

        report = {
            "ok": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "error_count": len(errors),
            "warning_count": len(warnings),
            "checks": checks,
        }

        if self.strict and errors:
            raise ValueError("Structure set validation failed: " + "; ".join(errors[:5]))
        return report

    @staticmethod
    def _read_int(item: Dataset, tag: int, where: str, warnings: List[str]):
        try:
            return item.get_int(tag), True
        except ExtractionError as exc:
            warnings.append(f"{where}: {exc}")
            return None, False

    @staticmethod
    def _defined_numbers(dataset: Dataset, warnings: List[str]) -> set:
        try:
            items = sequence_items(dataset, STRUCTURE_SET_ROI_SEQUENCE)
        except (DecodeError, ExtractionError) as exc:
            warnings.append(f"StructureSetROISequence unreadable: {exc}")
            return set()
        numbers = set()
        for i, item in enumerate(items):
            number, readable = StructureSetValidator._read_int(item, ROI_NUMBER, f"ROI definition {i}", warnings)
            if not readable:
                continue
            if number is None:
                warnings.append(f"ROI definition {i} has no ROINumber")
            else:
                numbers.add(number)
        return numbers

    @staticmethod
    def _check_contours(dataset: Dataset, defined: set, warnings: List[str]) -> None:
        try:
            roi_items = sequence_items(dataset, ROI_CONTOUR_SEQUENCE)
        except (DecodeError, ExtractionError) as exc:
            warnings.append(f"ROIContourSequence unreadable: {exc}")
            return

        for i, roi_item in enumerate(roi_items):
            number, readable = StructureSetValidator._read_int(
                roi_item, REFERENCED_ROI_NUMBER, f"ROI contour set {i}", warnings
            )
            if not readable:
                continue
            if number not in defined:
                warnings.append(f"ROI contour set {number} has no matching definition")
            try:
                contour_items = sequence_items(roi_item, CONTOUR_SEQUENCE)
            except (DecodeError, ExtractionError) as exc:
                warnings.append(f"ROI {number}: contour sequence unreadable ({exc})")
                continue
            if not contour_items:
                warnings.append(f"ROI {number}: no contours")
            for j, c_item in enumerate(contour_items):
                declared, _ = StructureSetValidator._read_int(
                    c_item, NUMBER_OF_CONTOUR_POINTS, f"ROI {number} contour {j}", warnings
                )
                try:
                    values = c_item.get_floats(CONTOUR_DATA)
                except ExtractionError as exc:
                    warnings.append(f"ROI {number} contour {j}: {exc}")
                    continue
                if len(values) % 3:
                    warnings.append(f"ROI {number} contour {j}: {len(values)} values is not a multiple of 3")
                elif declared is not None and declared != len(values) // 3:
                    warnings.append(
                        f"ROI {number} contour {j}: NumberOfContourPoints={declared} but data holds {len(values) // 3}"
                    )
